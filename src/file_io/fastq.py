"""Tagged FASTQ output."""

import logging
from pathlib import Path

import pysam

from core.records import UNTAGGED, TaggedRead

from .formats import open_text

logger = logging.getLogger(__name__)


class TaggedFastqWriter:
    """Writes mate 1 and mate 2 of each tagged pair to two FASTQ files."""

    def __init__(self, r1_path: Path, r2_path: Path, cluster_tag="BC", sequence_tag="RX"):
        self.r1_path = Path(r1_path)
        self.r2_path = Path(r2_path)
        self.cluster_tag = cluster_tag
        self.sequence_tag = sequence_tag
        self.pairs_written = 0
        self._r1 = None
        self._r2 = None

    def __enter__(self):
        self._r1 = open_text(self.r1_path, "w")
        self._r2 = open_text(self.r2_path, "w")
        return self

    def __exit__(self, exc_type, exc, tb):
        self._r1.close()
        self._r2.close()
        return False

    def write_pair(self, read1: TaggedRead, read2: TaggedRead):
        self._r1.write(self._format(read1))
        self._r2.write(self._format(read2))
        self.pairs_written += 1

    def _format(self, read: TaggedRead) -> str:
        header = read.header(self.cluster_tag, self.sequence_tag)
        return f"{header}\n{read.sequence}\n+\n{read.quality}\n"


class BamFastqExporter:
    """Writes final read pairs from a duplicate-called, cluster-finalized BAM.

    Secondary, supplementary and duplicate records are skipped. Reads are
    written in sequencing orientation with their BAM tags in the header, one
    pair at the time the second mate is seen.
    """

    def __init__(self, cluster_tag="BC", sequence_tag="RX"):
        self.cluster_tag = cluster_tag
        self.sequence_tag = sequence_tag
        self.stats = {"pairs": 0, "orphans": 0, "skipped": 0}

    def to_tagged(self, read) -> TaggedRead:
        qualities = read.get_forward_qualities()
        return TaggedRead(
            name=read.query_name,
            sequence=read.get_forward_sequence() or "",
            quality=pysam.qualities_to_qualitystring(qualities) if qualities is not None else "",
            cluster_tag=(
                str(read.get_tag(self.cluster_tag))
                if read.has_tag(self.cluster_tag)
                else UNTAGGED
            ),
            sequence_tag=(
                str(read.get_tag(self.sequence_tag)) if read.has_tag(self.sequence_tag) else None
            ),
        )

    def write(self, input_bam: Path, r1_path: Path, r2_path: Path) -> dict:
        self.stats = {"pairs": 0, "orphans": 0, "skipped": 0}
        pending: dict = {}

        with pysam.AlignmentFile(str(input_bam), "rb", check_sq=False) as bam_in, TaggedFastqWriter(
            r1_path, r2_path, self.cluster_tag, self.sequence_tag
        ) as writer:
            for read in bam_in.fetch(until_eof=True):
                if (
                    read.is_secondary
                    or read.is_supplementary
                    or read.is_duplicate
                    or not read.is_paired
                ):
                    self.stats["skipped"] += 1
                    continue

                mate = pending.pop(read.query_name, None)
                if mate is None:
                    pending[read.query_name] = read
                    continue

                read1, read2 = (read, mate) if read.is_read1 else (mate, read)
                writer.write_pair(self.to_tagged(read1), self.to_tagged(read2))
                self.stats["pairs"] += 1

        self.stats["orphans"] = len(pending)
        logger.info(
            "Wrote %s final read pairs (%s reads without a mate skipped)",
            f"{self.stats['pairs']:,}",
            f"{self.stats['orphans']:,}",
        )
        return dict(self.stats)
