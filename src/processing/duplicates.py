"""Cluster-aware duplicate calling for blrtag."""

import heapq
import logging
from collections import Counter
from pathlib import Path

import pysam
from tqdm import tqdm

from core.config import DuplicateConfig
from core.exceptions import (
    BAMFormatError,
    ConfigurationError,
    ResourceExhaustionError,
)
from core.records import UNTAGGED

logger = logging.getLogger(__name__)


def cluster_sort_key(cluster_tag: str):
    """Numeric cluster ids in numeric order, anything else after them."""
    return (0, int(cluster_tag), "") if cluster_tag.isdigit() else (1, 0, cluster_tag)


def fragment_position(read) -> tuple[int, int, tuple]:
    """(start, end, orientation) of the fragment a mapped read belongs to.

    Mates mapped to the same reference span the whole insert, from the
    leftmost mate start to start + |template length|, and both strands count.
    A mate on another reference adds that reference to the orientation.
    Single reads, and reads whose mate is unmapped, use their 5' end.
    """
    if read.is_paired and not read.mate_is_unmapped:
        if read.reference_id == read.next_reference_id:
            start = min(read.reference_start, read.next_reference_start)
            if read.reference_start <= read.next_reference_start:
                orientation = (read.is_reverse, read.mate_is_reverse)
            else:
                orientation = (read.mate_is_reverse, read.is_reverse)
            if read.template_length:
                end = start + abs(read.template_length)
            else:
                end = max(read.reference_start, read.next_reference_start)
            return start, end, orientation

        orientation = (read.is_reverse, read.mate_is_reverse, read.next_reference_name)
        return read.reference_start, read.next_reference_start, orientation

    if read.is_reverse:
        return read.reference_end, read.reference_end, (True,)
    return read.reference_start, read.reference_start, (False,)


class DuplicateCaller:
    """Calls duplicates among fragments that share a barcode cluster.

    Fragments are grouped by (cluster, reference, orientation). The first
    fragment of a group becomes a representative; a later one is a duplicate
    when a representative of the same group has both its start and its end
    within `threshold` bp. Fragments from different clusters are never
    duplicates of each other, and untagged fragments are never duplicates.

    Calls must arrive in coordinate order. Tables are cleared when the
    reference changes, and advance() drops anchors that no later fragment can
    reach, so memory stays bounded by the fragments within `threshold` bp.
    """

    def __init__(self, threshold: int = 0):
        if threshold < 0:
            raise ConfigurationError(f"Duplicate threshold must be >= 0, got {threshold}")
        self.threshold = threshold
        self.reference = None
        # start -> {(cluster, orientation): {end, ...}}
        self.anchors: dict[int, dict[tuple, set[int]]] = {}
        # start -> {(end, orientation): first cluster seen at that site}
        self.site_owner: dict[int, dict[tuple, str]] = {}
        self._starts: list[int] = []

        # (cluster, cluster) -> number of exact sites the two clusters share
        self.shared_sites: Counter = Counter()

        self.n_duplicates = 0
        self.n_representatives = 0
        self.n_untagged = 0
        self.n_cross_cluster = 0

    def advance(self, reference: str, position: int):
        """Forget anchors that start more than `threshold` bp before `position`."""
        if reference != self.reference:
            self.anchors.clear()
            self.site_owner.clear()
            self._starts.clear()
            self.reference = reference
            return

        limit = position - self.threshold
        while self._starts and self._starts[0] < limit:
            start = heapq.heappop(self._starts)
            self.anchors.pop(start, None)
            self.site_owner.pop(start, None)

    def call(
        self, cluster_tag, reference: str, start: int, end: int, orientation: tuple = ()
    ) -> bool:
        """Return True if this fragment duplicates an earlier one in its cluster."""
        if cluster_tag is None or cluster_tag == UNTAGGED:
            self.n_untagged += 1
            return False
        if reference != self.reference:
            self.advance(reference, start)

        owners = self.site_owner.get(start)
        if owners is None:
            owners = self.site_owner[start] = {}
            self.anchors[start] = {}
            heapq.heappush(self._starts, start)

        # Same fragment under another cluster: a barcode duplicate, only counted
        owner = owners.setdefault((end, orientation), cluster_tag)
        if owner != cluster_tag:
            self.n_cross_cluster += 1
            pair = tuple(sorted((owner, cluster_tag), key=cluster_sort_key))
            self.shared_sites[pair] += 1

        group = (cluster_tag, orientation)
        for anchor_start in range(start - self.threshold, start + self.threshold + 1):
            ends = self.anchors.get(anchor_start, {}).get(group)
            if ends and any(abs(anchor_end - end) <= self.threshold for anchor_end in ends):
                self.n_duplicates += 1
                return True

        self.anchors[start].setdefault(group, set()).add(end)
        self.n_representatives += 1
        return False

    @property
    def n_tracked_sites(self) -> int:
        return sum(len(owners) for owners in self.site_owner.values())

    @property
    def stats(self) -> dict:
        return {
            "representatives": self.n_representatives,
            "duplicates": self.n_duplicates,
            "untagged": self.n_untagged,
            "cross_cluster_positions": self.n_cross_cluster,
        }


class ClusterDuplicateMarker:
    """Streams a tagged, coordinate-sorted BAM and marks or removes duplicates.

    Duplicates are called once per fragment: the first mate seen decides and
    the other mate inherits the decision, including an unmapped mate, so a
    fragment is always kept or dropped as a whole.
    """

    def __init__(self, config: DuplicateConfig, cluster_tag: str = "BC"):
        self.config = config
        self.cluster_tag = cluster_tag
        self.caller = DuplicateCaller(config.threshold)
        self.stats = {}

    def process(self, input_bam, output_bam) -> dict:
        input_bam, output_bam = Path(input_bam), Path(output_bam)
        self.caller = DuplicateCaller(self.config.threshold)
        self.stats = {"total_reads": 0, "duplicate_reads": 0, "written_reads": 0}

        try:
            bam_in = pysam.AlignmentFile(str(input_bam), "rb")
        except (OSError, ValueError) as e:
            raise BAMFormatError(str(input_bam), f"Cannot open: {e}") from e

        sort_order = bam_in.header.to_dict().get("HD", {}).get("SO")
        if sort_order != "coordinate":
            logger.warning(
                "BAM header sort order is '%s', expected 'coordinate': %s", sort_order, input_bam
            )

        # qname -> decision for fragments whose other mate is still to come
        pending_mates: dict[str, bool] = {}
        # qname -> unmapped mate seen before its mapped mate was called
        held_mates: dict = {}
        last_offset = -1

        try:
            with bam_in, pysam.AlignmentFile(str(output_bam), "wb", template=bam_in) as bam_out:
                for offset, read in enumerate(
                    tqdm(
                        bam_in.fetch(until_eof=True),
                        desc="Calling duplicates",
                        unit=" read",
                        bar_format="{desc}: {n:,} read [{elapsed}, {rate_fmt}]",
                    )
                ):
                    self.stats["total_reads"] += 1
                    qname = read.query_name

                    if read.is_secondary or read.is_supplementary:
                        self._emit(bam_out, read, False)
                    elif read.is_unmapped:
                        if read.is_paired and not read.mate_is_unmapped:
                            if qname in pending_mates:
                                self._emit(bam_out, read, pending_mates.pop(qname))
                            else:
                                held_mates[qname] = read
                        else:
                            self._emit(bam_out, read, False)
                    else:
                        is_duplicate = self._call_fragment(read, pending_mates)
                        self._emit(bam_out, read, is_duplicate)

                        held = held_mates.pop(qname, None)
                        if held is not None:
                            pending_mates.pop(qname, None)
                            self._emit(bam_out, held, is_duplicate)

                    last_offset = offset

                # Unmapped mates whose mapped mate never appeared
                for read in held_mates.values():
                    self._emit(bam_out, read, False)
        except (OSError, MemoryError) as e:
            raise ResourceExhaustionError("duplicate calling", last_offset, str(e)) from e

        if sort_order == "coordinate":
            pysam.index(str(output_bam))

        total_reads = self.stats["total_reads"]
        duplicate_reads = self.stats["duplicate_reads"]
        action = "removed" if self.config.remove else "marked"
        logger.info(
            "%s duplicate reads %s (%.1f%%)",
            f"{duplicate_reads:,}",
            action,
            duplicate_reads / total_reads * 100 if total_reads else 0,
        )
        logger.info(
            "%s fragments share their position with a different barcode cluster and were kept",
            f"{self.caller.n_cross_cluster:,}",
        )

        self.stats.update({f"fragment_{k}": v for k, v in self.caller.stats.items()})
        return self.stats

    def _emit(self, bam_out, read, is_duplicate: bool):
        if is_duplicate:
            self.stats["duplicate_reads"] += 1
            if self.config.remove:
                return
            read.is_duplicate = True
        bam_out.write(read)
        self.stats["written_reads"] += 1

    def _call_fragment(self, read, pending_mates: dict[str, bool]) -> bool:
        qname = read.query_name
        if qname in pending_mates:
            return pending_mates.pop(qname)

        self.caller.advance(read.reference_name, read.reference_start)

        cluster_tag = (
            str(read.get_tag(self.cluster_tag)) if read.has_tag(self.cluster_tag) else None
        )
        start, end, orientation = fragment_position(read)
        is_duplicate = self.caller.call(
            cluster_tag, read.reference_name, start, end, orientation
        )

        if read.is_paired:
            pending_mates[qname] = is_duplicate
        return is_duplicate
