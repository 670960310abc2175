"""Barcode-duplicate cluster merging and cluster filtering after duplicate calling."""

import logging
from collections import Counter
from collections.abc import Mapping
from pathlib import Path

import pysam
from tqdm import tqdm

from core.config import DuplicateConfig
from core.exceptions import BAMFormatError, ResourceExhaustionError
from core.records import UNTAGGED
from processing.duplicates import cluster_sort_key

logger = logging.getLogger(__name__)


class BarcodeDuplicateMerger:
    """Joins clusters whose fragments land on the same sites.

    Two clusters sharing at least `min_shared` fragment sites are taken to
    be one set of molecules carrying two barcodes. Merging is transitive and
    every merged group keeps its lowest cluster id.
    """

    def __init__(self, min_shared: int = 1):
        self.min_shared = min_shared

    def merge_map(self, shared_sites: Mapping[tuple[str, str], int]) -> dict[str, str]:
        """Return {cluster: merged cluster} for every cluster that changes id."""
        parent: dict[str, str] = {}

        def find(cluster):
            root = cluster
            while parent.get(root, root) != root:
                root = parent[root]
            while cluster != root:
                parent[cluster], cluster = root, parent[cluster]
            return root

        for (a, b), n_shared in sorted(shared_sites.items()):
            if n_shared < self.min_shared:
                continue
            root_a, root_b = find(a), find(b)
            if root_a == root_b:
                continue
            keep, drop = sorted((root_a, root_b), key=cluster_sort_key)
            parent[drop] = keep
            parent.setdefault(keep, keep)

        merges = {cluster: find(cluster) for cluster in parent}
        merges = {cluster: root for cluster, root in merges.items() if cluster != root}

        logger.info(
            "Merged %s barcode clusters into %s others (>= %s shared sites)",
            f"{len(merges):,}",
            f"{len(set(merges.values())):,}",
            self.min_shared,
        )
        return merges


class MoleculeCounter:
    """Counts molecules per cluster from coordinate-sorted reads.

    A new molecule starts whenever a cluster's read lies on another reference
    or more than `window` bp past that cluster's previous read.
    """

    def __init__(self, window: int = 30_000):
        self.window = window
        self.molecules: Counter = Counter()
        self._last: dict[str, tuple[str, int]] = {}

    def add(self, cluster_tag: str, reference: str, position: int):
        last = self._last.get(cluster_tag)
        if last is None or last[0] != reference or position - last[1] > self.window:
            self.molecules[cluster_tag] += 1
        self._last[cluster_tag] = (reference, position)


class ClusterFinalizer:
    """Applies cluster merges and drops the tags of overloaded clusters.

    Clusters with more than `max_molecules` molecules (0 disables the filter)
    are most likely barcode collisions; their reads are retagged 'none'.
    """

    def __init__(self, config: DuplicateConfig, cluster_tag: str = "BC"):
        self.config = config
        self.cluster_tag = cluster_tag
        self.filtered: set[str] = set()
        self.stats = {}

    def count_molecules(self, input_bam, merge_map: Mapping[str, str]) -> Counter:
        counter = MoleculeCounter(self.config.molecule_window)
        with self._open(input_bam) as bam_in:
            for read in bam_in.fetch(until_eof=True):
                if (
                    read.is_unmapped
                    or read.is_secondary
                    or read.is_supplementary
                    or read.is_duplicate
                    or not read.has_tag(self.cluster_tag)
                ):
                    continue
                cluster_tag = str(read.get_tag(self.cluster_tag))
                if cluster_tag == UNTAGGED:
                    continue
                cluster_tag = merge_map.get(cluster_tag, cluster_tag)
                counter.add(cluster_tag, read.reference_name, read.reference_start)
        return counter.molecules

    def process(self, input_bam, output_bam, merge_map: Mapping[str, str]) -> dict:
        input_bam, output_bam = Path(input_bam), Path(output_bam)

        molecules = self.count_molecules(input_bam, merge_map)
        max_molecules = self.config.max_molecules
        self.filtered = (
            {cluster for cluster, n in molecules.items() if n > max_molecules}
            if max_molecules
            else set()
        )
        if self.filtered:
            logger.info(
                "Untagging %s clusters with more than %s molecules",
                f"{len(self.filtered):,}",
                max_molecules,
            )

        retagged = 0
        untagged = 0
        last_offset = -1
        try:
            with self._open(input_bam) as bam_in, pysam.AlignmentFile(
                str(output_bam), "wb", template=bam_in
            ) as bam_out:
                sort_order = bam_in.header.to_dict().get("HD", {}).get("SO")
                for offset, read in enumerate(
                    tqdm(
                        bam_in.fetch(until_eof=True),
                        desc="Finalizing clusters",
                        unit=" read",
                        bar_format="{desc}: {n:,} read [{elapsed}, {rate_fmt}]",
                    )
                ):
                    if read.has_tag(self.cluster_tag):
                        cluster_tag = str(read.get_tag(self.cluster_tag))
                        final_tag = merge_map.get(cluster_tag, cluster_tag)
                        if final_tag in self.filtered:
                            final_tag = UNTAGGED
                            untagged += 1
                        elif final_tag != cluster_tag:
                            retagged += 1
                        if final_tag != cluster_tag:
                            read.set_tag(self.cluster_tag, final_tag, value_type="Z")
                    bam_out.write(read)
                    last_offset = offset
        except (OSError, MemoryError) as e:
            raise ResourceExhaustionError("cluster finalizing", last_offset, str(e)) from e

        if sort_order == "coordinate":
            pysam.index(str(output_bam))

        self.stats = {
            "clusters_merged": len(merge_map),
            "clusters_filtered": len(self.filtered),
            "reads_retagged": retagged,
            "reads_untagged_by_filter": untagged,
        }
        return self.stats

    @staticmethod
    def _open(input_bam):
        try:
            return pysam.AlignmentFile(str(input_bam), "rb")
        except (OSError, ValueError) as e:
            raise BAMFormatError(str(input_bam), f"Cannot open: {e}") from e
