"""Learning engine facade.

``LearningEngine`` owns one instance of every learning component and wires
the public operations together. There is no module-level singleton: create
an engine, use it, and ``close()`` it.

Example:
    config = EngineConfig.from_yaml(Path("ostinato.yaml"))
    with LearningEngine(config) as engine:
        action_id = engine.record_action("code_edit", {"language": "python"})
        engine.record_outcome(action_id, {"success": True, "quality": 0.9})
        print(engine.predict_outcome("code_edit", {"language": "python"}))
"""

from __future__ import annotations

import gc
import random
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Any

from ostinato import __version__
from ostinato.core.config import EngineConfig
from ostinato.core.constants import (
    ACTION_HISTORY_FILE,
    LEGACY_PREDICTOR_WEIGHTS_FILE,
    PREDICTOR_WEIGHTS_FILE,
    STRATEGIES_FILE,
)
from ostinato.core.errors import SnapshotCorruptionError, SnapshotWriteError
from ostinato.core.logging import EngineContext, get_logger, with_context
from ostinato.learning import insights
from ostinato.learning.anomaly import AnomalyDetector
from ostinato.learning.clustering import SequenceClusterer
from ostinato.learning.export import EXPORT_FORMATS, export_csv, export_json
from ostinato.learning.knowledge import KnowledgeGraph
from ostinato.learning.ledger import ActionLedger, split_sessions
from ostinato.learning.mining import PatternMiner, Suggestion
from ostinato.learning.models import (
    Action,
    AnomalyRecord,
    Cluster,
    Improvement,
    Insight,
    Optimization,
    OptimizationResult,
    Outcome,
    PatternRecord,
    PerformanceBaseline,
    Prediction,
    ScalarValue,
    Sequence,
    StatsSnapshot,
    validate_action_type,
    validate_scalar_map,
)
from ostinato.learning.predictor import LinearPredictor
from ostinato.learning.sequences import (
    SequenceStore,
    sequence_from_actions,
    sequence_from_steps,
)
from ostinato.learning.strategy import StrategyOptimizer, strategy_key
from ostinato.state.snapshot_store import (
    KIND_ACTION_HISTORY,
    KIND_PREDICTOR_WEIGHTS,
    KIND_STRATEGIES,
    SnapshotStore,
)
from ostinato.utils.time import utc_now

_logger = get_logger("engine")


class LearningEngine:
    """Adaptive learning and behavioural-pattern engine.

    Thread-safe: each component guards its own state, and reads return
    copies. Saves triggered by outcomes run on a single background worker.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        data_dir: Path | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utc_now,
        autoload: bool = True,
    ) -> None:
        """Create an engine.

        Args:
            config: Engine configuration; defaults are used when omitted.
            data_dir: Overrides ``config.persistence.data_dir``.
            rng: Random source for exploration; seeded from config when omitted.
            clock: Source of the current UTC time.
            autoload: Load persisted state from the data directory.
        """
        self.config = config or EngineConfig()
        self._clock = clock
        cfg = self.config

        self._ledger = ActionLedger(cfg.learning, cfg.mining.session_gap_seconds, clock=clock)
        self._knowledge = KnowledgeGraph()
        self._strategies = StrategyOptimizer(cfg.learning, rng=rng, clock=clock)
        self._predictor = LinearPredictor(cfg.learning, cfg.predictor)
        self._anomalies = AnomalyDetector(cfg.anomaly, cfg.mining, clock=clock)
        self._miner = PatternMiner(cfg.mining, clock=clock)
        self._sequences = SequenceStore(cfg.mining.max_sequences)
        self._clusterer = SequenceClusterer(cfg.mining)
        self._store = SnapshotStore(cfg.persistence, data_dir=data_dir, clock=clock)

        self._context = EngineContext(engine_id=cfg.engine_id)
        self._counter_lock = threading.Lock()
        self._actions_recorded = 0
        self._baseline: PerformanceBaseline | None = None

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ostinato-save")
        self._save_lock = threading.Lock()
        self._persist_lock = threading.Lock()
        self._save_pending = False
        self._closed = False

        if autoload:
            self.load()

    def __enter__(self) -> LearningEngine:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def data_dir(self) -> Path:
        return self._store.data_dir

    # ─── Recording ────────────────────────────────────────────────────

    def record_action(
        self,
        action_type: str,
        context: dict[str, Any] | None = None,
        parameters: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Append an action to the ledger and return its ID.

        Raises:
            InvalidActionError: If the type is empty or too long, or a map
                holds a non-scalar value.
        """
        result = self._ledger.record(action_type, context, parameters, metadata)
        self._knowledge.observe(result.action.type, result.previous_type)
        if result.closed_session:
            self._ingest_sequence(sequence_from_actions(result.closed_session))

        with self._counter_lock:
            self._actions_recorded += 1
            mine_now = self._actions_recorded % self.config.mining.mine_every_actions == 0
        if mine_now:
            self.mine_patterns()

        _logger.debug(
            "engine.action_recorded",
            engine_id=self.config.engine_id,
            action_id=result.action.id,
            action_type=result.action.type,
        )
        return result.action.id

    def record_outcome(self, action_id: str, outcome: Outcome | dict[str, Any]) -> None:
        """Attach an outcome and learn from it.

        Unknown IDs (never recorded, or already evicted) are logged and
        ignored.
        """
        if isinstance(outcome, dict):
            outcome = Outcome.from_dict(outcome)

        with with_context(self._context.with_action(action_id)):
            action = self._ledger.attach_outcome(action_id, outcome)
            if action is None or action.metrics is None:
                _logger.warning("engine.unknown_action", action_id=action_id)
                return

            metrics = action.metrics
            self._knowledge.observe_outcome(action.type, metrics)
            key = strategy_key(action.type, action.context)
            update = self._strategies.update(key, action.type, action.parameters, metrics)
            anomalies = self._anomalies.check_outcome(action, update.reward, update.prior)
            features = self._predictor.features(action.timestamp, action.context, action.parameters)
            self._predictor.update(key, features, update.reward)

            _logger.info(
                "engine.outcome_recorded",
                strategy_key=key,
                reward=round(update.reward, 4),
                attempts=update.current.attempts,
                anomalies=len(anomalies),
            )

        if self.config.persistence.autosave:
            self.schedule_save()

    def record_sequence(self, steps: list[dict[str, Any]]) -> str:
        """Record an externally observed sequence and return its ID.

        Raises:
            InvalidActionError: If a step is malformed or the list is empty.
        """
        sequence = sequence_from_steps(steps, started_at=self._clock())
        self._ingest_sequence(sequence)
        return sequence.id

    def _ingest_sequence(self, sequence: Sequence) -> None:
        self._anomalies.check_sequence(sequence, self._sequences.all(), self._miner.keys())
        self._sequences.add(sequence)
        cluster = self._clusterer.assign(sequence)
        _logger.debug(
            "engine.sequence_closed",
            sequence_id=sequence.id,
            length=len(sequence),
            cluster_id=cluster.id,
        )

    # ─── Patterns and clusters ────────────────────────────────────────

    def _mining_input(self) -> list[Sequence]:
        sequences = self._sequences.all()
        open_session = self._ledger.open_session()
        if open_session:
            sequences.append(sequence_from_actions(open_session, sequence_id="open_session"))
        return sequences

    def mine_patterns(self) -> list[PatternRecord]:
        """Re-mine the pattern table from stored sequences and the open session."""
        self._miner.mine(self._mining_input())
        return self._miner.patterns()

    def patterns(self) -> list[PatternRecord]:
        return self._miner.patterns()

    def cluster_workflows(self) -> list[Cluster]:
        """Rebuild all clusters from the stored sequences."""
        return self._clusterer.recluster(self._sequences.all())

    def clusters(self) -> list[Cluster]:
        return self._clusterer.clusters()

    def sequences(self) -> list[Sequence]:
        return self._sequences.all()

    def suggest_next(
        self, current_types: list[str], context: dict[str, Any] | None = None
    ) -> list[Suggestion]:
        """Likely next actions after ``current_types``."""
        return self._miner.suggest_next(current_types, context)

    # ─── Analysis ─────────────────────────────────────────────────────

    def actions(self) -> list[Action]:
        return self._ledger.actions()

    def recent_anomalies(self, limit: int | None = None) -> list[AnomalyRecord]:
        return self._anomalies.recent(limit)

    def analyze_patterns(self) -> list[Insight]:
        return insights.analyze_patterns(
            nodes=self._knowledge.nodes(),
            actions=self._ledger.actions(),
            anomalies=self._anomalies.recent(),
            strategies=self._strategies.strategies(),
            min_support=self.config.mining.min_support,
        )

    def optimized_parameters(
        self, action_type: str, context: dict[str, Any] | None = None
    ) -> dict[str, ScalarValue]:
        return self._strategies.optimized_parameters(action_type, context)

    def predict_outcome(
        self,
        action_type: str,
        context: dict[str, Any] | None = None,
        parameters: dict[str, Any] | None = None,
    ) -> Prediction:
        """Predict how an action would turn out.

        Raises:
            InvalidActionError: If the type or maps are invalid.
        """
        validate_action_type(action_type)
        context = validate_scalar_map("context", context)
        parameters = validate_scalar_map("parameters", parameters)
        key = strategy_key(action_type, context)
        strategy = self._strategies.get(key)
        features = self._predictor.features(self._clock(), context, parameters)
        return insights.predict(strategy, self._predictor.predict(key, features))

    def generate_improvements(self) -> list[Improvement]:
        return insights.generate_improvements(
            self._strategies.strategies(), self.analyze_patterns()
        )

    def self_optimize(self) -> OptimizationResult:
        """Apply every current improvement.

        A strategy improvement re-opens learning for that strategy; other
        improvements are acknowledged.
        """
        improvements = self.generate_improvements()
        optimizations: list[Optimization] = []
        for improvement in improvements:
            if improvement.strategy_key is not None:
                if not self._strategies.relearn(improvement.strategy_key):
                    continue
                action = "relearn_started"
            else:
                action = "acknowledged"
            optimizations.append(
                Optimization(area=improvement.area, action=action, timestamp=self._clock())
            )
        _logger.info(
            "engine.self_optimized",
            improvements=len(improvements),
            applied=len(optimizations),
        )
        return OptimizationResult(
            applied_count=len(optimizations),
            improvements=improvements,
            optimizations=optimizations,
        )

    def get_stats(self) -> StatsSnapshot:
        return insights.compute_stats(
            actions=self._ledger.actions(),
            strategies=self._strategies.strategies(),
            knowledge_nodes=len(self._knowledge),
            predictor_sets=len(self._predictor),
            recent_anomalies=len(self._anomalies.recent()),
            baseline=self._baseline,
            patterns=len(self._miner),
            clusters=len(self._clusterer),
            sequences=len(self._sequences),
        )

    def export_learning_data(self, format: str = "json") -> str:  # noqa: A002
        """Export learning data as JSON or CSV text.

        Raises:
            ValueError: If the format is not "json" or "csv".
        """
        if format not in EXPORT_FORMATS:
            raise ValueError(f"Unsupported export format {format!r}; use one of {EXPORT_FORMATS}")
        if format == "csv":
            return export_csv(self._ledger.actions())

        strategies = self._strategies.snapshot()
        document = {
            "metadata": {
                "exported_at": self._clock().isoformat(),
                "version": __version__,
                "engine_id": self.config.engine_id,
                "total_actions": len(self._ledger),
                "strategies_count": len(strategies),
            },
            "statistics": self.get_stats().to_dict(),
            "action_history": self._ledger.snapshot(),
            "strategies": strategies,
            "predictor_weights": self._predictor.snapshot(),
            "knowledge_graph": {n.action_type: n.to_dict() for n in self._knowledge.nodes()},
            "anomalies": [a.to_dict() for a in self._anomalies.recent()],
            "patterns": [p.to_dict() for p in self._miner.patterns()],
            "clusters": [c.to_dict() for c in self._clusterer.clusters()],
        }
        return export_json(document)

    # ─── Maintenance ──────────────────────────────────────────────────

    def collect_garbage(self) -> dict[str, int]:
        """Drop aged anomalies and stale cluster members, then run gc."""
        live_ids = {s.id for s in self._sequences.all()}
        result = {
            "anomalies_pruned": self._anomalies.prune(),
            "cluster_members_pruned": self._clusterer.forget(live_ids),
            "objects_collected": gc.collect(),
        }
        _logger.debug("engine.garbage_collected", **result)
        return result

    # ─── Persistence ──────────────────────────────────────────────────

    def save(self) -> bool:
        """Write all three snapshot documents.

        Each structure is copied under its own lock and written outside it.
        Saves from the background worker and the maintenance loop are
        serialized, so a later save never writes an older snapshot.
        Write failures are logged; returns False if any document failed.
        """
        ok = True
        with self._persist_lock:
            documents = [
                (ACTION_HISTORY_FILE, KIND_ACTION_HISTORY, self._ledger.snapshot()),
                (STRATEGIES_FILE, KIND_STRATEGIES, self._strategies.snapshot()),
                (PREDICTOR_WEIGHTS_FILE, KIND_PREDICTOR_WEIGHTS, self._predictor.snapshot()),
            ]
            for name, kind, payload in documents:
                try:
                    self._store.write(name, kind, payload)
                except SnapshotWriteError as e:
                    ok = False
                    _logger.error("engine.save_failed", path=str(e.path), reason=e.reason)
        if ok:
            _logger.debug("engine.saved", data_dir=str(self.data_dir))
        return ok

    def schedule_save(self) -> None:
        """Queue a background save; requests arriving before it starts coalesce."""
        with self._save_lock:
            if self._save_pending or self._closed:
                return
            self._save_pending = True
        try:
            self._executor.submit(self._run_scheduled_save)
        except RuntimeError:
            with self._save_lock:
                self._save_pending = False
            _logger.warning("engine.save_not_scheduled", reason="executor shut down")

    def _run_scheduled_save(self) -> None:
        with self._save_lock:
            self._save_pending = False
        try:
            self.save()
        except Exception:
            _logger.exception("engine.background_save_failed")

    def load(self) -> None:
        """Load persisted state and rebuild everything derived from the ledger.

        A corrupt document resets only its own structure.
        """
        history = self._read_document(ACTION_HISTORY_FILE, KIND_ACTION_HISTORY)
        self._ledger.load(history or [])

        strategies = self._read_document(STRATEGIES_FILE, KIND_STRATEGIES)
        self._strategies.load(strategies or {})

        weights = self._read_document(PREDICTOR_WEIGHTS_FILE, KIND_PREDICTOR_WEIGHTS)
        if weights is None:
            weights = self._read_document(LEGACY_PREDICTOR_WEIGHTS_FILE, KIND_PREDICTOR_WEIGHTS)
        self._predictor.load(weights or {})

        self._rebuild_derived()
        _logger.info(
            "engine.loaded",
            data_dir=str(self.data_dir),
            actions=len(self._ledger),
            strategies=len(self._strategies),
            predictor_weight_sets=len(self._predictor),
        )

    def _read_document(self, name: str, kind: str) -> Any | None:
        try:
            return self._store.read(name, kind)
        except SnapshotCorruptionError as e:
            _logger.warning("engine.snapshot_corrupt", path=str(e.path), reason=e.reason)
            return None

    def _rebuild_derived(self) -> None:
        actions = self._ledger.actions()
        self._knowledge.rebuild(actions)
        sessions = split_sessions(actions, self.config.mining.session_gap_seconds)
        closed = [sequence_from_actions(session) for session in sessions[:-1]]
        self._sequences.replace(closed[-self.config.mining.max_sequences:])
        self._anomalies.clear()
        self.mine_patterns()
        self.cluster_workflows()
        self._baseline = insights.performance_baseline(actions, self._clock())

    def close(self, save: bool | None = None) -> None:
        """Drain pending background saves, then save once more.

        Args:
            save: Force (True) or skip (False) the final save. Defaults to
                the ``persistence.autosave`` setting.
        """
        with self._save_lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown(wait=True)
        if self.config.persistence.autosave if save is None else save:
            self.save()
