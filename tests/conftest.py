"""Shared fixtures: small paired FASTQ files and tagged BAMs."""

import pysam
import pytest

REFERENCE_LENGTH = 100_000
READ_LENGTH = 20


def write_fastq_pair(directory, pairs, name="reads"):
    """Write (read_name, r1_sequence, r2_sequence) tuples as two FASTQ files."""
    r1_path = directory / f"{name}.1.fastq"
    r2_path = directory / f"{name}.2.fastq"
    with open(r1_path, "w") as r1, open(r2_path, "w") as r2:
        for read_name, seq1, seq2 in pairs:
            r1.write(f"@{read_name}\n{seq1}\n+\n{'I' * len(seq1)}\n")
            r2.write(f"@{read_name}\n{seq2}\n+\n{'I' * len(seq2)}\n")
    return r1_path, r2_path


def make_read(header, name, position, flag=0, tags=(), mate_position=None):
    """20 bp read; paired flags get a mate on chr1 and a matching template length."""
    read = pysam.AlignedSegment(header)
    read.query_name = name
    read.query_sequence = "A" * READ_LENGTH
    read.query_qualities = pysam.qualitystring_to_array("I" * READ_LENGTH)
    read.flag = flag
    read.reference_id = 0
    read.reference_start = position
    if not flag & 0x4:
        read.mapping_quality = 60
        read.cigartuples = [(0, READ_LENGTH)]
    if flag & 0x1:
        mate_position = position if mate_position is None else mate_position
        read.next_reference_id = 0
        read.next_reference_start = mate_position
        if not flag & 0xC:
            if mate_position >= position:
                read.template_length = mate_position + READ_LENGTH - position
            else:
                read.template_length = -(position + READ_LENGTH - mate_position)
    for tag, value in tags:
        read.set_tag(tag, value, value_type="Z")
    return read


def write_bam(path, reads, sort_order="coordinate"):
    """Write (name, position, flag, tags[, mate_position]) tuples to a BAM.

    Reads are written in the given order, so callers list them sorted.
    """
    header = pysam.AlignmentHeader.from_dict(
        {
            "HD": {"VN": "1.6", "SO": sort_order},
            "SQ": [{"SN": "chr1", "LN": REFERENCE_LENGTH}],
        }
    )
    with pysam.AlignmentFile(str(path), "wb", header=header) as bam_out:
        for name, position, flag, tags, *rest in reads:
            mate_position = rest[0] if rest else None
            bam_out.write(make_read(header, name, position, flag, tags, mate_position))
    return path


def read_bam(path):
    with pysam.AlignmentFile(str(path), "rb", check_sq=False) as bam_in:
        return list(bam_in.fetch(until_eof=True))


@pytest.fixture
def header_pairs():
    """Five pairs with barcodes in the read-name suffix; one pair has none."""
    return [
        ("pair1_AAAAA", "ACGTACGTAC", "TTTTGGGGCC"),
        ("pair2_AAAAT", "ACGTACGTAA", "TTTTGGGGCA"),
        ("pair3_GGGGG", "CCCCACGTAC", "TTTTGGGGCT"),
        ("pair4", "GGGGACGTAC", "TTTTGGGGCG"),
        ("pair5_AAAAA", "ACGTACGTTT", "TTTTGGGGTT"),
    ]


@pytest.fixture
def fastq_pair(tmp_path, header_pairs):
    return write_fastq_pair(tmp_path, header_pairs)


@pytest.fixture
def short_barcode_config():
    """Pipeline keyword arguments for the five-base barcodes above."""
    return {
        "index_nucleotides": 1,
        "threshold": 1,
        "barcode_length": 0,
    }
