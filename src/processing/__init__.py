"""Barcode extraction, clustering, tagging and duplicate calling."""

from .readers import BarcodeExtractor, check_barcode, is_barcode, split_header_barcode
from .clustering import (
    GreedyClusterer,
    bucket_records,
    edit_distance,
    hamming_distance,
    merge_clusters,
    within_distance,
)
from .processors import BucketProcessor, cluster_bucket_worker
from .tagging import BamTagger, Tagger
from .duplicates import ClusterDuplicateMarker, DuplicateCaller, fragment_position
from .cluster_merging import BarcodeDuplicateMerger, ClusterFinalizer, MoleculeCounter

__all__ = [
    # From readers
    "BarcodeExtractor",
    "check_barcode",
    "is_barcode",
    "split_header_barcode",
    # From clustering
    "GreedyClusterer",
    "bucket_records",
    "merge_clusters",
    "hamming_distance",
    "edit_distance",
    "within_distance",
    # From processors
    "BucketProcessor",
    "cluster_bucket_worker",
    # From tagging
    "Tagger",
    "BamTagger",
    # From duplicates
    "DuplicateCaller",
    "ClusterDuplicateMarker",
    "fragment_position",
    # From cluster_merging
    "BarcodeDuplicateMerger",
    "MoleculeCounter",
    "ClusterFinalizer",
]
