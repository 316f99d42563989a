"""Greedy clustering of behaviour sequences by LCS similarity."""

from __future__ import annotations

import threading

from ostinato.core.config import PatternMiningConfig
from ostinato.core.logging import get_logger
from ostinato.learning.models import Cluster, Sequence

_logger = get_logger("clustering")


def longest_common_subsequence(a: list[str], b: list[str]) -> list[str]:
    """Classic dynamic-programming LCS with reconstruction."""
    m, n = len(a), len(b)
    dp = [[0] * (n + 1) for _ in range(m + 1)]
    for i in range(1, m + 1):
        for j in range(1, n + 1):
            if a[i - 1] == b[j - 1]:
                dp[i][j] = dp[i - 1][j - 1] + 1
            else:
                dp[i][j] = max(dp[i - 1][j], dp[i][j - 1])

    lcs: list[str] = []
    i, j = m, n
    while i > 0 and j > 0:
        if a[i - 1] == b[j - 1]:
            lcs.append(a[i - 1])
            i -= 1
            j -= 1
        elif dp[i - 1][j] > dp[i][j - 1]:
            i -= 1
        else:
            j -= 1
    lcs.reverse()
    return lcs


def sequence_similarity(a: list[str], b: list[str]) -> float:
    """2*|LCS| / (|a| + |b|); 0 when either side is empty."""
    if not a or not b:
        return 0.0
    return 2 * len(longest_common_subsequence(a, b)) / (len(a) + len(b))


def find_centroid(members: list[Sequence]) -> Sequence:
    """Member with the smallest average distance to all members."""
    best = members[0]
    best_distance = float("inf")
    for candidate in members:
        total = sum(1 - sequence_similarity(candidate.types, other.types) for other in members)
        average = total / len(members)
        if average < best_distance:
            best_distance = average
            best = candidate
    return best


class SequenceClusterer:
    """Owns the cluster table.

    Each new sequence joins the most similar cluster whose centroid is at
    least ``clustering_threshold`` similar, or opens a new cluster.
    """

    def __init__(self, config: PatternMiningConfig) -> None:
        self._config = config
        self._lock = threading.RLock()
        self._clusters: list[Cluster] = []
        self._members: dict[str, list[Sequence]] = {}
        self._next_id = 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._clusters)

    def assign(self, sequence: Sequence) -> Cluster:
        """Place one sequence; returns a copy of the cluster it landed in."""
        with self._lock:
            cluster = self._assign_locked(sequence)
            return _copy_cluster(cluster)

    def recluster(self, sequences: list[Sequence]) -> list[Cluster]:
        """Rebuild every cluster from scratch in the given order."""
        with self._lock:
            self._clusters = []
            self._members = {}
            self._next_id = 1
            for sequence in sequences:
                self._assign_locked(sequence)
            clusters = [_copy_cluster(c) for c in self._clusters]
        _logger.debug("clustering.rebuilt", sequences=len(sequences), clusters=len(clusters))
        return clusters

    def clusters(self) -> list[Cluster]:
        with self._lock:
            return [_copy_cluster(c) for c in self._clusters]

    def forget(self, live_ids: set[str]) -> int:
        """Drop members no longer in the sequence store; returns members removed."""
        removed = 0
        with self._lock:
            kept: list[Cluster] = []
            for cluster in self._clusters:
                members = [s for s in self._members[cluster.id] if s.id in live_ids]
                removed += len(self._members[cluster.id]) - len(members)
                if not members:
                    del self._members[cluster.id]
                    continue
                self._members[cluster.id] = members
                self._refresh_locked(cluster)
                kept.append(cluster)
            self._clusters = kept
        return removed

    def clear(self) -> None:
        with self._lock:
            self._clusters = []
            self._members = {}
            self._next_id = 1

    def _assign_locked(self, sequence: Sequence) -> Cluster:
        best: Cluster | None = None
        best_similarity = -1.0
        for cluster in self._clusters:
            similarity = sequence_similarity(sequence.types, cluster.representative)
            if similarity >= self._config.clustering_threshold and similarity > best_similarity:
                best = cluster
                best_similarity = similarity

        if best is None:
            best = Cluster(
                id=f"cluster_{self._next_id}",
                members=[],
                centroid=sequence.id,
                representative=sequence.types,
            )
            self._next_id += 1
            self._clusters.append(best)
            self._members[best.id] = []

        self._members[best.id].append(sequence)
        self._refresh_locked(best)
        return best

    def _refresh_locked(self, cluster: Cluster) -> None:
        members = self._members[cluster.id]
        centroid = find_centroid(members)
        cluster.members = [s.id for s in members]
        cluster.centroid = centroid.id
        cluster.representative = centroid.types


def _copy_cluster(cluster: Cluster) -> Cluster:
    return Cluster(
        id=cluster.id,
        members=list(cluster.members),
        centroid=cluster.centroid,
        representative=list(cluster.representative),
    )
