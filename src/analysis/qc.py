"""Quality control metrics"""

import datetime
import logging
from importlib.metadata import PackageNotFoundError, version

import numpy as np

from core.config import PipelineConfig
from core.records import ClusterSet

logger = logging.getLogger(__name__)


def package_version() -> str:
    try:
        return version("blrtag")
    except PackageNotFoundError:
        return "unknown"


class QCCalculator:
    """Calculate quality control metrics for barcode clustering"""

    def __init__(self, config: PipelineConfig):
        self.config = config

    def cluster_stats(self, cluster_set: ClusterSet) -> dict:
        sizes = np.array([cluster.size for cluster in cluster_set], dtype=np.int64)
        n_sequences = sum(len(cluster.sequences) for cluster in cluster_set)

        if sizes.size == 0:
            return {
                "clusters": 0,
                "read_pairs_clustered": 0,
                "unique_barcodes": 0,
                "singleton_clusters": 0,
                "mean_cluster_size": 0.0,
                "median_cluster_size": 0.0,
                "max_cluster_size": 0,
            }

        return {
            "clusters": int(sizes.size),
            "read_pairs_clustered": int(sizes.sum()),
            "unique_barcodes": n_sequences,
            "singleton_clusters": int((sizes == 1).sum()),
            "mean_cluster_size": float(sizes.mean()),
            "median_cluster_size": float(np.median(sizes)),
            "max_cluster_size": int(sizes.max()),
        }

    def cluster_size_histogram(self, cluster_set: ClusterSet) -> tuple[np.ndarray, np.ndarray]:
        """Return (size, n_clusters) for every observed cluster size."""
        sizes = np.array([cluster.size for cluster in cluster_set], dtype=np.int64)
        if sizes.size == 0:
            return np.array([], dtype=np.int64), np.array([], dtype=np.int64)
        return np.unique(sizes, return_counts=True)

    def collect_run_metadata(
        self, r1_path: str, r2_path: str, output_dir: str, stage_states: dict, counts: dict
    ) -> dict:
        """Collect run metadata and parameters"""
        return {
            "blrtag_version": package_version(),
            "run_date": datetime.datetime.now().isoformat(),
            "input_r1": str(r1_path),
            "input_r2": str(r2_path),
            "output_dir": str(output_dir),
            **{f"stage_{name}": state for name, state in stage_states.items()},
            **counts,
            "parameters": self.config.as_dict(),
        }
