"""Configuration classes."""

from dataclasses import dataclass

from core.exceptions import ConfigurationError

BARCODE_LOCATIONS = ("header", "sequence")
DISTANCE_METRICS = ("hamming", "levenshtein")
N_STAGES = 4


@dataclass
class BarcodeConfig:
    """Where the barcode sits in each read pair."""

    location: str = "header"
    separator: str = "_"
    offset: int = 0
    length: int = 20
    read: int = 1


@dataclass
class ClusteringConfig:
    """Barcode clustering parameters."""

    index_nucleotides: int = 3
    threshold: int = 0
    metric: str = "hamming"


@dataclass
class DuplicateConfig:
    """Cluster-aware duplicate calling, cluster merging and filtering parameters."""

    threshold: int = 0
    remove: bool = False
    min_shared_positions: int = 1
    max_molecules: int = 260
    molecule_window: int = 30_000


@dataclass
class PerformanceConfig:
    """Resource management."""

    processors: int = 1


@dataclass
class StageConfig:
    """Step range to run."""

    start_step: int = 1
    end_step: int = N_STAGES
    remove_intermediates: bool = False


class PipelineConfig:
    """Pipeline configuration."""

    def __init__(
        self,
        index_nucleotides: int = 3,
        threshold: int = 0,
        duplicate_threshold: int | None = None,
        metric: str = "hamming",
        remove_duplicates: bool = False,
        min_shared_positions: int = 1,
        max_molecules: int = 260,
        molecule_window: int = 30_000,
        processors: int = 1,
        start_step: int = 1,
        end_step: int = N_STAGES,
        remove_intermediates: bool = False,
        barcode_location: str = "header",
        barcode_separator: str = "_",
        barcode_offset: int = 0,
        barcode_length: int = 20,
        barcode_read: int = 1,
        cluster_tag: str = "BC",
        sequence_tag: str = "RX",
        **kwargs,
    ):
        self.barcode = BarcodeConfig(
            location=barcode_location,
            separator=barcode_separator,
            offset=barcode_offset,
            length=barcode_length,
            read=barcode_read,
        )
        self.clustering = ClusteringConfig(
            index_nucleotides=index_nucleotides, threshold=threshold, metric=metric
        )
        # Both thresholds default to the same value unless set independently
        self.dedup = DuplicateConfig(
            threshold=threshold if duplicate_threshold is None else duplicate_threshold,
            remove=remove_duplicates,
            min_shared_positions=min_shared_positions,
            max_molecules=max_molecules,
            molecule_window=molecule_window,
        )
        self.performance = PerformanceConfig(processors=processors)
        self.stages = StageConfig(
            start_step=start_step,
            end_step=end_step,
            remove_intermediates=remove_intermediates,
        )
        self.cluster_tag = cluster_tag
        self.sequence_tag = sequence_tag

    def validate(self):
        """Raise ConfigurationError on the first out-of-range parameter."""
        validate_barcode_config(self.barcode)

        if self.clustering.index_nucleotides < 0:
            raise ConfigurationError(
                f"index_nucleotides must be >= 0, got {self.clustering.index_nucleotides}"
            )
        if self.clustering.threshold < 0:
            raise ConfigurationError(
                f"Clustering threshold must be >= 0, got {self.clustering.threshold}"
            )
        if self.clustering.metric not in DISTANCE_METRICS:
            raise ConfigurationError(
                f"Unknown distance metric '{self.clustering.metric}', "
                f"expected one of: {', '.join(DISTANCE_METRICS)}"
            )
        if self.dedup.threshold < 0:
            raise ConfigurationError(
                f"Duplicate threshold must be >= 0, got {self.dedup.threshold}"
            )
        if self.dedup.min_shared_positions < 1:
            raise ConfigurationError(
                f"min_shared_positions must be >= 1, got {self.dedup.min_shared_positions}"
            )
        if self.dedup.max_molecules < 0:
            raise ConfigurationError(
                f"max_molecules must be >= 0, got {self.dedup.max_molecules}"
            )
        if self.dedup.molecule_window < 0:
            raise ConfigurationError(
                f"molecule_window must be >= 0, got {self.dedup.molecule_window}"
            )
        if self.performance.processors < 1:
            raise ConfigurationError(
                f"processors must be >= 1, got {self.performance.processors}"
            )

        start, end = self.stages.start_step, self.stages.end_step
        if not 1 <= start <= N_STAGES:
            raise ConfigurationError(f"Start step must be within 1 and {N_STAGES}, got {start}")
        if not 1 <= end <= N_STAGES:
            raise ConfigurationError(f"End step must be within 1 and {N_STAGES}, got {end}")
        if start > end:
            raise ConfigurationError(
                f"Start step ({start}) cannot be larger than end step ({end})"
            )

        for tag in (self.cluster_tag, self.sequence_tag):
            if len(tag) != 2:
                raise ConfigurationError(f"SAM tags must be two characters, got '{tag}'")
        if self.cluster_tag == self.sequence_tag:
            raise ConfigurationError("Cluster tag and sequence tag must differ")

        return self

    def as_dict(self) -> dict:
        return {
            "index_nucleotides": self.clustering.index_nucleotides,
            "threshold": self.clustering.threshold,
            "duplicate_threshold": self.dedup.threshold,
            "metric": self.clustering.metric,
            "remove_duplicates": self.dedup.remove,
            "min_shared_positions": self.dedup.min_shared_positions,
            "max_molecules": self.dedup.max_molecules,
            "molecule_window": self.dedup.molecule_window,
            "processors": self.performance.processors,
            "start_step": self.stages.start_step,
            "end_step": self.stages.end_step,
            "remove_intermediates": self.stages.remove_intermediates,
            "barcode_location": self.barcode.location,
            "barcode_separator": self.barcode.separator,
            "barcode_offset": self.barcode.offset,
            "barcode_length": self.barcode.length,
            "barcode_read": self.barcode.read,
            "cluster_tag": self.cluster_tag,
            "sequence_tag": self.sequence_tag,
        }


def validate_barcode_config(config: BarcodeConfig):
    if config.location not in BARCODE_LOCATIONS:
        raise ConfigurationError(
            f"Unknown barcode location '{config.location}', "
            f"expected one of: {', '.join(BARCODE_LOCATIONS)}"
        )
    if config.length < 0:
        raise ConfigurationError(f"Barcode length must be >= 0, got {config.length}")
    if config.location == "header" and not config.separator:
        raise ConfigurationError("Barcode separator cannot be empty in header mode")
    if config.location == "sequence":
        if config.offset < 0:
            raise ConfigurationError(f"Barcode offset must be >= 0, got {config.offset}")
        if config.length == 0:
            raise ConfigurationError("Barcode length must be set in sequence mode")
        if config.read not in (1, 2):
            raise ConfigurationError(f"Barcode read must be 1 or 2, got {config.read}")
