"""Barcode bucketing, greedy threshold clustering and global cluster numbering."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

import edlib

from core.config import DISTANCE_METRICS
from core.exceptions import ClusterConsistencyError, ConfigurationError
from core.records import BarcodeRecord, Bucket, Cluster, ClusterSet, GlobalCluster

logger = logging.getLogger(__name__)


def hamming_distance(a: str, b: str) -> int:
    """Mismatches over the shared length; extra bases in the longer one count too."""
    return sum(1 for x, y in zip(a, b) if x != y) + abs(len(a) - len(b))


def edit_distance(a: str, b: str) -> int:
    return edlib.align(a, b, mode="NW", task="distance")["editDistance"]


def within_distance(a: str, b: str, threshold: int, metric: str = "hamming") -> bool:
    """True when distance(a, b) <= threshold, stopping early when possible."""
    if metric == "levenshtein":
        if abs(len(a) - len(b)) > threshold:
            return False
        return edlib.align(a, b, mode="NW", task="distance", k=threshold)["editDistance"] != -1

    mismatches = abs(len(a) - len(b))
    if mismatches > threshold:
        return False
    for x, y in zip(a, b):
        if x != y:
            mismatches += 1
            if mismatches > threshold:
                return False
    return True


def bucket_records(records: Iterable[BarcodeRecord], prefix_length: int) -> dict[str, Bucket]:
    """Group records by the first prefix_length bases, keeping input order.

    Only barcodes that share a prefix can end up in the same cluster, so
    prefix_length 0 (one bucket) is the slow but complete setting.
    """
    if prefix_length < 0:
        raise ConfigurationError(f"Prefix length must be >= 0, got {prefix_length}")

    buckets: dict[str, Bucket] = {}
    for record in records:
        prefix = record.sequence[:prefix_length]
        bucket = buckets.get(prefix)
        if bucket is None:
            bucket = buckets[prefix] = Bucket(prefix)
        bucket.records.append(record)
    return buckets


class GreedyClusterer:
    """Order-dependent greedy clustering of one bucket.

    Each sequence joins the first existing cluster (lowest local id) whose
    representative is within the threshold; the representative never changes.
    Otherwise the sequence founds a new cluster.
    """

    def __init__(self, threshold: int = 0, metric: str = "hamming"):
        if threshold < 0:
            raise ConfigurationError(f"Clustering threshold must be >= 0, got {threshold}")
        if metric not in DISTANCE_METRICS:
            raise ConfigurationError(
                f"Unknown distance metric '{metric}', expected one of: {', '.join(DISTANCE_METRICS)}"
            )
        self.threshold = threshold
        self.metric = metric

    def cluster(self, bucket: Bucket) -> list[Cluster]:
        clusters: list[Cluster] = []
        # A repeated sequence always lands where its first copy did
        assigned: dict[str, Cluster] = {}

        for record in bucket.records:
            seq = record.sequence
            cluster = assigned.get(seq)
            if cluster is not None:
                cluster.add(record, is_new_sequence=False)
                continue

            cluster = self._first_match(clusters, seq)
            if cluster is None:
                cluster = Cluster(local_id=len(clusters), representative=seq)
                clusters.append(cluster)

            cluster.add(record, is_new_sequence=True)
            assigned[seq] = cluster

        return clusters

    def _first_match(self, clusters: list[Cluster], seq: str) -> Cluster | None:
        for cluster in clusters:
            if within_distance(cluster.representative, seq, self.threshold, self.metric):
                return cluster
        return None


def merge_clusters(bucket_results: Mapping[str, list[Cluster]]) -> ClusterSet:
    """Renumber bucket-local clusters into one dense global id space.

    Buckets are taken in lexicographic prefix order and clusters in creation
    order, independent of the order in which workers finished.
    """
    global_clusters = []
    seen_read_pairs: dict[str, int] = {}
    seen_sequences: dict[str, int] = {}

    for prefix in sorted(bucket_results):
        for cluster in bucket_results[prefix]:
            global_id = len(global_clusters)

            for read_pair_id in cluster.members:
                if read_pair_id in seen_read_pairs:
                    raise ClusterConsistencyError(
                        f"Read pair '{read_pair_id}' assigned to clusters "
                        f"{seen_read_pairs[read_pair_id]} and {global_id}"
                    )
                seen_read_pairs[read_pair_id] = global_id

            for seq in cluster.sequences:
                if seq in seen_sequences:
                    raise ClusterConsistencyError(
                        f"Barcode '{seq}' assigned to clusters "
                        f"{seen_sequences[seq]} and {global_id}"
                    )
                seen_sequences[seq] = global_id

            global_clusters.append(
                GlobalCluster(
                    global_id=global_id,
                    representative=cluster.representative,
                    members=frozenset(cluster.members),
                    sequences=tuple(cluster.sequences),
                )
            )

    logger.info(
        "Merged %s buckets into %s clusters covering %s read pairs",
        f"{len(bucket_results):,}",
        f"{len(global_clusters):,}",
        f"{len(seen_read_pairs):,}",
    )
    return ClusterSet(global_clusters)
