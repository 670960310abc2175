"""Tests for paired FASTQ reading and barcode extraction."""

import pysam
import pytest
from conftest import write_fastq_pair

from core.config import BarcodeConfig
from core.exceptions import (
    ConfigurationError,
    InvalidInputError,
    MalformedRecordError,
    ResourceExhaustionError,
)
from core.records import BarcodeRecord
from processing.readers import BarcodeExtractor, check_barcode, split_header_barcode


class TestSplitHeaderBarcode:
    def test_suffix(self):
        assert split_header_barcode("read1_ACGT") == ("read1", "ACGT")

    def test_mate_suffix_removed(self):
        assert split_header_barcode("read1_ACGT/1") == ("read1", "ACGT")
        assert split_header_barcode("read1_ACGT/2") == ("read1", "ACGT")

    def test_last_separator_wins(self):
        assert split_header_barcode("run_7_tile_ACGT") == ("run_7_tile", "ACGT")

    def test_no_separator(self):
        assert split_header_barcode("read1") == ("read1", None)

    def test_custom_separator(self):
        assert split_header_barcode("read1:ACGT", ":") == ("read1", "ACGT")

    def test_non_barcode_suffix_kept(self):
        assert split_header_barcode("frag_17") == ("frag_17", None)
        assert split_header_barcode("frag_17/1") == ("frag_17", None)

    def test_wrong_length_suffix_kept(self):
        assert split_header_barcode("read1_ACGT", length=5) == ("read1_ACGT", None)
        assert split_header_barcode("read1_acgta", length=5) == ("read1", "ACGTA")


class TestCheckBarcode:
    def test_upper_cased(self):
        assert check_barcode(0, "acgtn") == "ACGTN"

    @pytest.mark.parametrize("barcode", ["", "ACGX", "AC GT"])
    def test_invalid(self, barcode):
        with pytest.raises(MalformedRecordError) as exc_info:
            check_barcode(7, barcode)
        assert exc_info.value.offset == 7

    def test_length_enforced(self):
        with pytest.raises(MalformedRecordError, match="expected 5"):
            check_barcode(0, "ACGT", length=5)

    def test_zero_length_accepts_any(self):
        assert check_barcode(0, "ACGTACGT", length=0) == "ACGTACGT"


class TestHeaderExtraction:
    def test_records_in_input_order(self, fastq_pair):
        extractor = BarcodeExtractor(*fastq_pair, BarcodeConfig(length=0))
        records = list(extractor)

        assert records == [
            BarcodeRecord("pair1", "AAAAA"),
            BarcodeRecord("pair2", "AAAAT"),
            BarcodeRecord("pair3", "GGGGG"),
            BarcodeRecord("pair5", "AAAAA"),
        ]

    def test_malformed_pairs_counted(self, fastq_pair):
        extractor = BarcodeExtractor(*fastq_pair, BarcodeConfig(length=0))
        list(extractor)

        assert extractor.n_pairs == 5
        assert extractor.n_malformed == 1

    def test_wrong_length_is_malformed(self, fastq_pair):
        extractor = BarcodeExtractor(*fastq_pair, BarcodeConfig(length=6))
        assert list(extractor) == []
        assert extractor.n_malformed == 5

    def test_iteration_is_restartable(self, fastq_pair):
        extractor = BarcodeExtractor(*fastq_pair, BarcodeConfig(length=0))
        assert list(extractor) == list(extractor)
        assert extractor.n_pairs == 5

    def test_mate_suffixes(self, tmp_path):
        r1, r2 = write_fastq_pair(tmp_path, [("frag_ACGT/1", "AAAA", "CCCC")])
        with open(r2, "w") as f:
            f.write("@frag_ACGT/2\nCCCC\n+\nIIII\n")

        records = list(BarcodeExtractor(r1, r2, BarcodeConfig(length=0)))
        assert records == [BarcodeRecord("frag", "ACGT")]


class TestSequenceExtraction:
    def test_fixed_offset_in_read1(self, tmp_path):
        r1, r2 = write_fastq_pair(tmp_path, [("frag", "NNACGTACGG", "TTTTTTTTTT")])
        config = BarcodeConfig(location="sequence", offset=2, length=6)

        assert list(BarcodeExtractor(r1, r2, config)) == [BarcodeRecord("frag", "ACGTAC")]

    def test_read2(self, tmp_path):
        r1, r2 = write_fastq_pair(tmp_path, [("frag", "AAAAAAAAAA", "GGCCTTAAGG")])
        config = BarcodeConfig(location="sequence", offset=0, length=4, read=2)

        assert list(BarcodeExtractor(r1, r2, config)) == [BarcodeRecord("frag", "GGCC")]

    def test_short_read_is_malformed(self, tmp_path):
        r1, r2 = write_fastq_pair(tmp_path, [("frag", "ACG", "TTTT")])
        config = BarcodeConfig(location="sequence", offset=0, length=6)
        extractor = BarcodeExtractor(r1, r2, config)

        assert list(extractor) == []
        assert extractor.n_malformed == 1


class TestInputErrors:
    def test_missing_file(self, tmp_path):
        with pytest.raises(InvalidInputError, match="not found"):
            BarcodeExtractor(tmp_path / "r1.fastq", tmp_path / "r2.fastq")

    def test_out_of_sync(self, tmp_path):
        r1, r2 = write_fastq_pair(tmp_path, [("a_ACGT", "AAAA", "CCCC"), ("b_ACGT", "AAAA", "CCCC")])
        with open(r2, "w") as f:
            f.write("@a_ACGT\nCCCC\n+\nIIII\n")

        with pytest.raises(InvalidInputError, match="out of sync"):
            list(BarcodeExtractor(r1, r2, BarcodeConfig(length=0)))

    def test_name_mismatch(self, tmp_path):
        r1, r2 = write_fastq_pair(tmp_path, [("a_ACGT", "AAAA", "CCCC")])
        with open(r2, "w") as f:
            f.write("@b_ACGT\nCCCC\n+\nIIII\n")

        with pytest.raises(InvalidInputError, match="differ"):
            list(BarcodeExtractor(r1, r2, BarcodeConfig(length=0)))

    def test_bad_config(self, fastq_pair):
        with pytest.raises(ConfigurationError):
            BarcodeExtractor(*fastq_pair, BarcodeConfig(location="index"))

    def test_header_names_without_barcode_stay_distinct(self, tmp_path):
        r1, r2 = write_fastq_pair(
            tmp_path, [("frag_17", "AAAA", "CCCC"), ("frag_18", "AAAA", "CCCC")]
        )
        extractor = BarcodeExtractor(r1, r2, BarcodeConfig(length=0))

        names = [
            extractor.read_pair_id(offset, read1, read2)
            for offset, read1, read2 in extractor.iter_pairs()
        ]
        assert names == ["frag_17", "frag_18"]
        assert list(extractor) == []
        assert extractor.n_malformed == 2


def failing_fastx(fail_at):
    """FastxFile stand-in that raises OSError when reaching record `fail_at`."""
    fastx_file = pysam.FastxFile

    class FailingFastxFile:
        def __init__(self, path):
            self._file = fastx_file(path)

        def __enter__(self):
            return self

        def __exit__(self, *exc_info):
            self._file.close()
            return False

        def __iter__(self):
            for n, record in enumerate(self._file):
                if n == fail_at:
                    raise OSError("No space left on device")
                yield record

    return FailingFastxFile


class TestStreamFailure:
    @pytest.mark.parametrize("fail_at, last_offset", [(0, -1), (2, 1)])
    def test_offset_of_last_pair(self, fastq_pair, monkeypatch, fail_at, last_offset):
        monkeypatch.setattr(pysam, "FastxFile", failing_fastx(fail_at))
        extractor = BarcodeExtractor(*fastq_pair, BarcodeConfig(length=0))

        with pytest.raises(ResourceExhaustionError) as exc_info:
            list(extractor)

        assert exc_info.value.stage == "barcode extraction"
        assert exc_info.value.offset == last_offset
        assert "No space left on device" in str(exc_info.value)

    def test_failure_before_first_record_message(self, fastq_pair, monkeypatch):
        monkeypatch.setattr(pysam, "FastxFile", failing_fastx(0))

        with pytest.raises(ResourceExhaustionError, match="before the first record"):
            list(BarcodeExtractor(*fastq_pair, BarcodeConfig(length=0)).iter_pairs())
