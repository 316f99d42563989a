"""Tests for ostinato.learning.mining and ostinato.learning.sequences."""

from __future__ import annotations

import pytest

from ostinato.core.config import PatternMiningConfig
from ostinato.core.errors import InvalidActionError
from ostinato.learning.mining import (
    PatternMiner,
    context_similarity,
    generate_subsequences,
    sequence_key,
)
from ostinato.learning.sequences import (
    SequenceStore,
    sequence_from_steps,
    summarize_context,
)


def seq(clock, *types: str, language: str | None = None):
    context = {"language": language} if language else {}
    return sequence_from_steps([{"type": t, "context": context} for t in types], clock())


class TestSubsequences:
    """Tests for contiguous subsequence generation."""

    def test_all_runs_in_range(self):
        subs = generate_subsequences(["a", "b", "c"], 2, 10)
        assert subs == [["a", "b"], ["b", "c"], ["a", "b", "c"]]

    def test_short_input_has_no_runs(self):
        assert generate_subsequences(["a"], 2, 10) == []

    def test_max_length_bounds_runs(self):
        subs = generate_subsequences(["a", "b", "c", "d"], 2, 2)
        assert subs == [["a", "b"], ["b", "c"], ["c", "d"]]

    def test_sequence_key(self):
        assert sequence_key(["a", "b"]) == "a→b"


class TestPatternMiner:
    """Tests for frequent subsequence mining."""

    def test_repeated_pair_is_mined(self, clock):
        miner = PatternMiner(PatternMiningConfig(min_support=3), clock=clock)
        sequences = [seq(clock, "file_read", "code_edit") for _ in range(5)]
        patterns = miner.mine(sequences)
        record = patterns["file_read→code_edit"]
        assert record.frequency == 5
        assert record.confidence == 1.0
        assert record.pattern == ["file_read", "code_edit"]
        assert record.discovered_at == clock.now

    def test_confidence_is_share_of_sequences(self, clock):
        miner = PatternMiner(PatternMiningConfig(min_support=1), clock=clock)
        patterns = miner.mine([seq(clock, "a", "b"), seq(clock, "c", "d"), seq(clock, "a", "b")])
        assert patterns["a→b"].confidence == pytest.approx(2 / 3)
        assert patterns["c→d"].confidence == pytest.approx(1 / 3)

    def test_confidence_capped_when_repeated_in_one_sequence(self, clock):
        miner = PatternMiner(PatternMiningConfig(min_support=1), clock=clock)
        patterns = miner.mine([seq(clock, "a", "b", "a", "b", "a", "b")])
        assert patterns["a→b"].frequency == 3
        assert patterns["a→b"].confidence == 1.0

    def test_below_support_is_dropped(self, clock):
        miner = PatternMiner(PatternMiningConfig(min_support=3), clock=clock)
        miner.mine([seq(clock, "a", "b"), seq(clock, "a", "b")])
        assert len(miner) == 0

    def test_remine_replaces_table(self, clock):
        miner = PatternMiner(PatternMiningConfig(min_support=1), clock=clock)
        miner.mine([seq(clock, "a", "b")])
        miner.mine([seq(clock, "c", "d")])
        assert miner.keys() == {"c→d"}

    def test_patterns_sorted_by_frequency(self, clock):
        miner = PatternMiner(PatternMiningConfig(min_support=1), clock=clock)
        miner.mine([seq(clock, "a", "b"), seq(clock, "a", "b", "c"), seq(clock, "x", "y")])
        assert miner.patterns()[0].key == "a→b"

    def test_contexts_are_capped(self, clock):
        config = PatternMiningConfig(min_support=1, max_pattern_contexts=2)
        miner = PatternMiner(config, clock=clock)
        miner.mine([seq(clock, "a", "b") for _ in range(5)])
        assert len(miner.patterns()[0].contexts) == 2

    def test_suggest_next(self, clock):
        miner = PatternMiner(PatternMiningConfig(min_support=2), clock=clock)
        miner.mine([seq(clock, "a", "b", "c") for _ in range(3)] + [seq(clock, "a", "d")] * 2)
        suggestions = miner.suggest_next(["a"])
        assert {s.action for s in suggestions} == {"b", "d"}
        assert suggestions[0].action == "b"
        assert miner.suggest_next(["a", "b"])[0].action == "c"
        assert miner.suggest_next([]) == []

    def test_suggest_next_weighs_context(self, clock):
        miner = PatternMiner(PatternMiningConfig(min_support=2), clock=clock)
        sequences = [seq(clock, "a", "b", language="python") for _ in range(2)]
        sequences += [seq(clock, "a", "c", language="rust") for _ in range(2)]
        miner.mine(sequences)
        suggestions = miner.suggest_next(["a"], {"language": "rust"})
        assert suggestions[0].action == "c"


class TestContextSimilarity:
    """Tests for context matching in suggestions."""

    def test_empty_inputs_are_neutral(self):
        assert context_similarity(None, [{"languages": ["python"]}]) == 0.5
        assert context_similarity({"language": "python"}, []) == 0.5

    def test_language_match(self):
        contexts = [{"languages": ["python"], "hour": 10}]
        assert context_similarity({"language": "python"}, contexts) == 1.0
        assert context_similarity({"language": "go"}, contexts) == 0.0

    def test_hour_distance(self):
        contexts = [{"hour": 10}]
        assert context_similarity({"hour": 16}, contexts) == pytest.approx(0.75)


class TestSequences:
    """Tests for building and storing sequences."""

    def test_summarize_context(self, clock):
        sequence = sequence_from_steps(
            [
                {"type": "file_read", "context": {"filePath": "src/app.py"}},
                {"type": "code_edit", "context": {"language": "python"}},
            ],
            clock(),
        )
        assert sequence.context["languages"] == ["python"]
        assert sequence.context["file_types"] == [".py"]
        assert sequence.context["action_types"] == ["file_read", "code_edit"]
        assert sequence.context["hour"] == 10

    def test_execution_time_summed(self, clock):
        sequence = sequence_from_steps(
            [{"type": "a", "execution_time": 100}, {"type": "b", "executionTime": 50}], clock()
        )
        assert sequence.execution_time == 150

    def test_empty_steps_rejected(self, clock):
        with pytest.raises(InvalidActionError):
            sequence_from_steps([], clock())

    def test_malformed_step_rejected(self, clock):
        with pytest.raises(InvalidActionError):
            sequence_from_steps([{"context": {}}], clock())
        with pytest.raises(InvalidActionError):
            sequence_from_steps(["a"], clock())

    def test_summarize_context_without_steps(self, clock):
        assert summarize_context([], clock())["action_types"] == []

    def test_store_evicts_oldest(self, clock):
        store = SequenceStore(max_sequences=2)
        first, second, third = seq(clock, "a"), seq(clock, "b"), seq(clock, "c")
        for sequence in (first, second, third):
            store.add(sequence)
        assert [s.id for s in store.all()] == [second.id, third.id]
        assert store.get(first.id) is None
