"""Cluster tagging of paired FASTQ reads and aligned BAM records."""

import logging
from pathlib import Path

import pysam
from tqdm import tqdm

from core.config import BarcodeConfig
from core.exceptions import BAMFormatError, MalformedRecordError, ResourceExhaustionError
from core.records import UNTAGGED, TaggedRead
from file_io.fastq import TaggedFastqWriter
from processing.readers import BarcodeExtractor, check_barcode, split_header_barcode

logger = logging.getLogger(__name__)


class Tagger:
    """Attaches global cluster id and original barcode to every read pair.

    One output pair per input pair, in input order. Pairs whose barcode could
    not be extracted or is missing from the cluster map are tagged 'none'.
    """

    def __init__(
        self,
        cluster_map: dict[str, int],
        extractor: BarcodeExtractor,
        cluster_tag: str = "BC",
        sequence_tag: str = "RX",
    ):
        self.cluster_map = cluster_map
        self.extractor = extractor
        self.cluster_tag = cluster_tag
        self.sequence_tag = sequence_tag
        self.stats = {"pairs": 0, "tagged": 0, "untagged": 0}

    def tag_pairs(self):
        """Yield (TaggedRead, TaggedRead) for each input pair."""
        self.stats = {"pairs": 0, "tagged": 0, "untagged": 0}

        for offset, read1, read2 in self.extractor.iter_pairs():
            try:
                record = self.extractor.parse_pair(offset, read1, read2)
                read_pair_id, barcode = record.read_pair_id, record.sequence
            except MalformedRecordError as e:
                logger.debug("%s", e)
                read_pair_id = self.extractor.read_pair_id(offset, read1, read2)
                barcode = None

            cluster_id = self.cluster_map.get(barcode) if barcode else None
            cluster_tag = UNTAGGED if cluster_id is None else str(cluster_id)

            self.stats["pairs"] += 1
            self.stats["untagged" if cluster_id is None else "tagged"] += 1

            yield (
                self._tagged(read_pair_id, read1, cluster_tag, barcode),
                self._tagged(read_pair_id, read2, cluster_tag, barcode),
            )

    @staticmethod
    def _tagged(name, read, cluster_tag, barcode) -> TaggedRead:
        return TaggedRead(
            name=name,
            sequence=read.sequence,
            quality=read.quality or "",
            cluster_tag=cluster_tag,
            sequence_tag=barcode,
        )

    def write_tagged_fastq(self, r1_out: Path, r2_out: Path) -> dict:
        """Write both tagged mates; returns pair/tagged/untagged counts."""
        writer = TaggedFastqWriter(r1_out, r2_out, self.cluster_tag, self.sequence_tag)
        try:
            with writer, tqdm(desc="Tagging reads", unit=" pair") as pbar:
                for read1, read2 in self.tag_pairs():
                    writer.write_pair(read1, read2)
                    pbar.update(1)
        except (OSError, MemoryError) as e:
            raise ResourceExhaustionError(
                "fastq tagging", writer.pairs_written - 1, str(e)
            ) from e

        logger.info(
            "Tagged %s of %s read pairs (%s untagged)",
            f"{self.stats['tagged']:,}",
            f"{self.stats['pairs']:,}",
            f"{self.stats['untagged']:,}",
        )
        return dict(self.stats)


class BamTagger:
    """Adds cluster and barcode tags to an externally aligned BAM.

    The barcode comes from an existing sequence tag, or from the read-name
    suffix in header mode (the suffix is then removed from the name).
    """

    def __init__(
        self,
        cluster_map: dict[str, int],
        config: BarcodeConfig | None = None,
        cluster_tag: str = "BC",
        sequence_tag: str = "RX",
    ):
        self.cluster_map = cluster_map
        self.config = config or BarcodeConfig()
        self.cluster_tag = cluster_tag
        self.sequence_tag = sequence_tag
        self.stats = {"reads": 0, "tagged": 0, "untagged": 0}

    def barcode_of(self, offset: int, read) -> str | None:
        if read.has_tag(self.sequence_tag):
            try:
                return check_barcode(
                    offset, str(read.get_tag(self.sequence_tag)), self.config.length
                )
            except MalformedRecordError as e:
                logger.debug("%s", e)
                return None

        if self.config.location != "header":
            return None

        # Names keep their suffix unless it is a valid barcode
        name, barcode = split_header_barcode(
            read.query_name, self.config.separator, self.config.length
        )
        if barcode is not None:
            read.query_name = name
        return barcode

    def process(self, input_bam, output_bam) -> dict:
        input_bam, output_bam = Path(input_bam), Path(output_bam)
        self.stats = {"reads": 0, "tagged": 0, "untagged": 0}

        try:
            bam_in = pysam.AlignmentFile(str(input_bam), "rb", check_sq=False)
        except (OSError, ValueError) as e:
            raise BAMFormatError(str(input_bam), f"Cannot open: {e}") from e

        last_written = -1
        try:
            with bam_in, pysam.AlignmentFile(str(output_bam), "wb", template=bam_in) as bam_out:
                for offset, read in enumerate(
                    tqdm(
                        bam_in.fetch(until_eof=True),
                        desc="Tagging BAM",
                        unit=" read",
                        bar_format="{desc}: {n:,} read [{elapsed}, {rate_fmt}]",
                    )
                ):
                    barcode = self.barcode_of(offset, read)
                    cluster_id = self.cluster_map.get(barcode) if barcode else None

                    read.set_tag(
                        self.cluster_tag,
                        UNTAGGED if cluster_id is None else str(cluster_id),
                        value_type="Z",
                    )
                    if barcode:
                        read.set_tag(self.sequence_tag, barcode, value_type="Z")

                    self.stats["reads"] += 1
                    self.stats["untagged" if cluster_id is None else "tagged"] += 1
                    bam_out.write(read)
                    last_written = offset
        except (OSError, MemoryError) as e:
            raise ResourceExhaustionError("bam tagging", last_written, str(e)) from e

        logger.info(
            "Tagged %s of %s alignments (%s untagged)",
            f"{self.stats['tagged']:,}",
            f"{self.stats['reads']:,}",
            f"{self.stats['untagged']:,}",
        )
        return dict(self.stats)
