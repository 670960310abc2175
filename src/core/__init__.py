"""Core pipeline components."""

from .config import (
    BarcodeConfig,
    ClusteringConfig,
    DuplicateConfig,
    PerformanceConfig,
    PipelineConfig,
    StageConfig,
)
from .exceptions import (
    BAMFormatError,
    BlrError,
    ClusterConsistencyError,
    ConfigurationError,
    InvalidInputError,
    MalformedRecordError,
    ProcessingError,
    ResourceExhaustionError,
)
from .records import (
    UNTAGGED,
    BarcodeRecord,
    Bucket,
    Cluster,
    ClusterSet,
    GlobalCluster,
    TaggedRead,
)

__all__ = [
    # From config
    "PipelineConfig",
    "BarcodeConfig",
    "ClusteringConfig",
    "DuplicateConfig",
    "PerformanceConfig",
    "StageConfig",
    # From records
    "UNTAGGED",
    "BarcodeRecord",
    "Bucket",
    "Cluster",
    "GlobalCluster",
    "ClusterSet",
    "TaggedRead",
    # From exceptions
    "BlrError",
    "InvalidInputError",
    "ConfigurationError",
    "ProcessingError",
    "MalformedRecordError",
    "ClusterConsistencyError",
    "ResourceExhaustionError",
    "BAMFormatError",
]
