"""Paired FASTQ reading and barcode extraction."""

import logging
import re
from itertools import zip_longest
from pathlib import Path

import pysam

from core.config import BarcodeConfig, validate_barcode_config
from core.exceptions import (
    InvalidInputError,
    MalformedRecordError,
    ResourceExhaustionError,
)
from core.records import BarcodeRecord

logger = logging.getLogger(__name__)

BARCODE_PATTERN = re.compile(r"^[ACGTN]+$")
MATE_SUFFIX = re.compile(r"/[12]$")


def strip_mate_suffix(name: str) -> str:
    return MATE_SUFFIX.sub("", name)


def is_barcode(sequence: str, length: int = 0) -> bool:
    if not BARCODE_PATTERN.match(sequence.upper()):
        return False
    return not length or len(sequence) == length


def split_header_barcode(
    name: str, separator: str = "_", length: int = 0
) -> tuple[str, str | None]:
    """Split '<name>_<BARCODE>' into (name, barcode).

    The name is only shortened when the suffix is a valid barcode; otherwise
    it is returned whole with barcode None, so 'frag_17' stays 'frag_17'.
    """
    name = strip_mate_suffix(name)
    base, sep, suffix = name.rpartition(separator)
    if not sep or not base or not is_barcode(suffix, length):
        return name, None
    return base, suffix.upper()


class BarcodeExtractor:
    """Extracts one BarcodeRecord per read pair from two synchronised FASTQ files.

    Iterating the extractor reopens both files, so it can be consumed more than
    once (the cluster and tag stages each make a pass). Pairs without a usable
    barcode are counted and skipped here; the tagger sees them through
    iter_pairs() and passes them through untagged.
    """

    def __init__(self, r1_path, r2_path, config: BarcodeConfig | None = None):
        self.r1_path = Path(r1_path)
        self.r2_path = Path(r2_path)
        self.config = config or BarcodeConfig()
        validate_barcode_config(self.config)

        for path in (self.r1_path, self.r2_path):
            if not path.exists():
                raise InvalidInputError(f'FASTQ file not found: "{path}"')

        self.n_pairs = 0
        self.n_malformed = 0

    def __iter__(self):
        self.n_pairs = 0
        self.n_malformed = 0

        for offset, read1, read2 in self.iter_pairs():
            self.n_pairs += 1
            try:
                yield self.parse_pair(offset, read1, read2)
            except MalformedRecordError as e:
                self.n_malformed += 1
                logger.debug("%s", e)

        if self.n_malformed:
            logger.warning(
                "%s of %s read pairs had no usable barcode and will be left untagged",
                f"{self.n_malformed:,}",
                f"{self.n_pairs:,}",
            )

    def iter_pairs(self):
        """Yield (offset, read1, read2) in file order.

        An I/O failure reports the offset of the last pair yielded, -1 if none.
        """
        offset = -1
        try:
            with pysam.FastxFile(str(self.r1_path)) as r1_in, pysam.FastxFile(
                str(self.r2_path)
            ) as r2_in:
                for read1, read2 in zip_longest(r1_in, r2_in):
                    if read1 is None or read2 is None:
                        shorter = self.r1_path if read1 is None else self.r2_path
                        raise InvalidInputError(
                            f"Read files are out of sync: {shorter.name} ended "
                            f"after {offset + 1:,} records"
                        )
                    offset += 1
                    yield offset, read1, read2
        except (OSError, MemoryError) as e:
            raise ResourceExhaustionError("barcode extraction", offset, str(e)) from e

    def read_pair_id(self, offset: int, read1, read2) -> str:
        """Shared name of both mates with mate suffixes and header barcode removed."""
        if self.config.location == "header":
            separator, length = self.config.separator, self.config.length
            name1, _ = split_header_barcode(read1.name, separator, length)
            name2, _ = split_header_barcode(read2.name, separator, length)
        else:
            name1 = strip_mate_suffix(read1.name)
            name2 = strip_mate_suffix(read2.name)

        if name1 != name2:
            raise InvalidInputError(
                f"Read names differ at pair {offset:,}: '{read1.name}' vs '{read2.name}'"
            )
        return name1

    def parse_pair(self, offset: int, read1, read2) -> BarcodeRecord:
        read_pair_id = self.read_pair_id(offset, read1, read2)

        if self.config.location == "header":
            _, barcode = split_header_barcode(
                read1.name, self.config.separator, self.config.length
            )
            if barcode is None:
                raise MalformedRecordError(
                    offset, f"no valid '{self.config.separator}' barcode suffix in '{read1.name}'"
                )
        else:
            read = read1 if self.config.read == 1 else read2
            start = self.config.offset
            barcode = (read.sequence or "")[start : start + self.config.length]

        return BarcodeRecord(read_pair_id, check_barcode(offset, barcode, self.config.length))


def check_barcode(offset: int, barcode: str, length: int = 0) -> str:
    """Upper-cased barcode, or MalformedRecordError if it is not a valid one."""
    barcode = barcode.upper()
    if not barcode or not BARCODE_PATTERN.match(barcode):
        raise MalformedRecordError(offset, f"invalid barcode '{barcode}'")
    if length and len(barcode) != length:
        raise MalformedRecordError(
            offset, f"barcode '{barcode}' has length {len(barcode)}, expected {length}"
        )
    return barcode
