"""Parallel bucket clustering for blrtag."""

import logging
import multiprocessing as mp
from concurrent.futures import ProcessPoolExecutor, as_completed

from tqdm import tqdm

from core.config import PipelineConfig
from core.exceptions import ProcessingError
from processing.clustering import GreedyClusterer

logger = logging.getLogger(__name__)

# Use spawn context on HPC/cluster environments for better stability
# Fork can have issues with certain file handles and threading on HPC
MP_CONTEXT = "spawn"


def cluster_bucket_worker(args):
    bucket, clusterer = args
    return bucket.prefix, clusterer.cluster(bucket)


class BucketProcessor:
    """Clusters independent buckets, sequentially or across worker processes."""

    def __init__(self, config: PipelineConfig):
        self.config = config
        self.clusterer = GreedyClusterer(
            threshold=config.clustering.threshold, metric=config.clustering.metric
        )

    def process_buckets(self, buckets):
        """Return {prefix: [Cluster, ...]} for every bucket.

        Results are keyed by prefix so the merge can consume them in a fixed
        order whatever order the workers finish in.
        """
        n_buckets = len(buckets)
        n_records = sum(len(b) for b in buckets.values())
        avg = n_records / n_buckets if n_buckets > 0 else 0
        logger.info(f"Clustering {n_buckets:,} buckets, {avg:.0f} avg barcodes/bucket")

        processors = self.config.performance.processors
        if processors == 1 or n_buckets <= 1:
            return self._process_sequential(buckets)

        logger.info(f"Using parallel processing with {processors} processes")
        return self._process_parallel(buckets, processors)

    def _process_sequential(self, buckets):
        results = {}
        with tqdm(total=len(buckets), desc="Clustering buckets", unit="bucket") as pbar:
            for prefix, bucket in buckets.items():
                results[prefix] = self.clusterer.cluster(bucket)
                pbar.update(1)
        return results

    def _process_parallel(self, buckets, processors):
        results = {}

        with ProcessPoolExecutor(
            max_workers=processors, mp_context=mp.get_context(MP_CONTEXT)
        ) as executor:
            futures = {
                executor.submit(cluster_bucket_worker, (bucket, self.clusterer)): prefix
                for prefix, bucket in buckets.items()
            }
            with tqdm(total=len(futures), desc="Clustering buckets", unit="bucket") as pbar:
                for future in as_completed(futures):
                    prefix = futures[future]
                    try:
                        done_prefix, clusters = future.result()
                    except Exception as e:
                        raise ProcessingError(
                            f"Clustering failed for bucket '{prefix}': {e}"
                        ) from e
                    results[done_prefix] = clusters
                    pbar.update(1)

        return results
