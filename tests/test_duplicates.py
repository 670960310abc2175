"""Tests for cluster-aware duplicate calling."""

import logging

import pysam
import pytest
from conftest import READ_LENGTH, make_read, read_bam, write_bam

from core.config import DuplicateConfig
from core.exceptions import ConfigurationError, ResourceExhaustionError
from processing.duplicates import ClusterDuplicateMarker, DuplicateCaller, fragment_position

FIRST_MATE = 99
SECOND_MATE = 147
SECONDARY = 256
MATE_UNMAPPED = 73
UNMAPPED_MATE = 133

PAIR = (False, True)


class TestFragmentPosition:
    @pytest.fixture
    def header(self):
        return pysam.AlignmentHeader.from_dict(
            {"SQ": [{"SN": "chr1", "LN": 100_000}, {"SN": "chr2", "LN": 100_000}]}
        )

    def test_both_mates_give_same_fragment(self, header):
        first = make_read(header, "a", 1000, FIRST_MATE, mate_position=1200)
        second = make_read(header, "a", 1200, SECOND_MATE, mate_position=1000)

        assert fragment_position(first) == (1000, 1200 + READ_LENGTH, PAIR)
        assert fragment_position(second) == fragment_position(first)

    def test_mate_end_distinguishes_fragments(self, header):
        near = make_read(header, "a", 1000, FIRST_MATE, mate_position=1200)
        far = make_read(header, "d", 1000, FIRST_MATE, mate_position=50000)

        assert fragment_position(near) != fragment_position(far)

    def test_reverse_single_read_uses_alignment_end(self, header):
        read = make_read(header, "r", 1000, 16)
        assert fragment_position(read) == (1000 + READ_LENGTH, 1000 + READ_LENGTH, (True,))

    def test_forward_single_read(self, header):
        read = make_read(header, "f", 1000, 0)
        assert fragment_position(read) == (1000, 1000, (False,))

    def test_mate_unmapped_counts_as_single(self, header):
        read = make_read(header, "u", 1000, MATE_UNMAPPED)
        assert fragment_position(read) == (1000, 1000, (False,))

    def test_mate_on_other_reference(self, header):
        read = make_read(header, "t", 1000, FIRST_MATE, mate_position=300)
        read.next_reference_id = 1

        start, end, orientation = fragment_position(read)
        assert (start, end) == (1000, 300)
        assert orientation[-1] == "chr2"


class TestDuplicateCaller:
    def test_same_cluster_same_fragment(self):
        caller = DuplicateCaller()
        assert caller.call("0", "chr1", 1000, 1220, PAIR) is False
        assert caller.call("0", "chr1", 1000, 1220, PAIR) is True
        assert caller.stats["duplicates"] == 1

    def test_other_cluster_is_distinct_molecule(self):
        caller = DuplicateCaller()
        caller.call("0", "chr1", 1000, 1220, PAIR)

        assert caller.call("1", "chr1", 1000, 1220, PAIR) is False
        assert caller.stats["cross_cluster_positions"] == 1
        assert caller.stats["representatives"] == 2
        assert caller.shared_sites == {("0", "1"): 1}

    def test_shared_sites_ordered_numerically(self):
        caller = DuplicateCaller()
        caller.call("10", "chr1", 1000, 1220, PAIR)
        caller.call("9", "chr1", 1000, 1220, PAIR)

        assert caller.shared_sites == {("9", "10"): 1}

    def test_untagged_never_duplicate(self):
        caller = DuplicateCaller()
        assert caller.call("none", "chr1", 1000, 1000) is False
        assert caller.call("none", "chr1", 1000, 1000) is False
        assert caller.call(None, "chr1", 1000, 1000) is False
        assert caller.stats["untagged"] == 3
        assert caller.stats["duplicates"] == 0

    def test_orientation_and_reference_separate_groups(self):
        caller = DuplicateCaller()
        caller.call("0", "chr1", 1000, 1000, (False,))

        assert caller.call("0", "chr1", 1000, 1000, (True,)) is False
        assert caller.call("0", "chr2", 1000, 1000, (False,)) is False

    def test_same_start_other_end_is_distinct(self):
        caller = DuplicateCaller()
        caller.call("0", "chr1", 1000, 1220, PAIR)

        assert caller.call("0", "chr1", 1000, 50020, PAIR) is False
        assert caller.stats["representatives"] == 2

    def test_threshold_slack_on_start(self):
        caller = DuplicateCaller(threshold=5)
        assert caller.call("0", "chr1", 1000, 1000) is False
        assert caller.call("0", "chr1", 1004, 1004) is True
        assert caller.call("0", "chr1", 995, 995) is True
        assert caller.call("0", "chr1", 1006, 1006) is False
        assert caller.call("0", "chr1", 1010, 1010) is True

    def test_threshold_slack_on_end(self):
        caller = DuplicateCaller(threshold=5)
        caller.call("0", "chr1", 1000, 1300, PAIR)

        assert caller.call("0", "chr1", 1002, 1305, PAIR) is True
        assert caller.call("0", "chr1", 1002, 1306, PAIR) is False

    def test_threshold_zero_exact_only(self):
        caller = DuplicateCaller(threshold=0)
        caller.call("0", "chr1", 1000, 1000)
        assert caller.call("0", "chr1", 1001, 1001) is False
        assert caller.call("0", "chr1", 1000, 1001) is False

    def test_negative_threshold(self):
        with pytest.raises(ConfigurationError):
            DuplicateCaller(threshold=-1)


class TestDuplicateCallerMemory:
    def test_advance_drops_sites_behind_window(self):
        caller = DuplicateCaller(threshold=5)
        most_tracked = 0
        for reference in ["chr1", "chr2", "chr3"]:
            for position in range(0, 10_000, 10):
                caller.advance(reference, position)
                caller.call("0", reference, position, position + 300, PAIR)
                most_tracked = max(most_tracked, caller.n_tracked_sites)

        assert most_tracked == 1
        assert len(caller.anchors) == 1
        assert len(caller._starts) == 1

    def test_sites_within_window_are_kept(self):
        caller = DuplicateCaller(threshold=25)
        for position in range(0, 1000, 10):
            caller.advance("chr1", position)
            caller.call("0", "chr1", position, position + 300, PAIR)

        assert caller.n_tracked_sites == 3

    def test_reference_change_clears_tables(self):
        caller = DuplicateCaller()
        for position in range(1000):
            caller.call("0", "chr1", position, position)
        assert caller.n_tracked_sites == 1000

        caller.call("0", "chr2", 5, 5)
        assert caller.n_tracked_sites == 1
        assert caller.call("0", "chr1", 5, 5) is False

    def test_marker_state_stays_small(self, tmp_path):
        reads = []
        for i in range(200):
            position = 1000 + i * 100
            reads.append((f"f{i}", position, FIRST_MATE, (("BC", "0"),), position + 50))
            reads.append((f"f{i}", position + 50, SECOND_MATE, (("BC", "0"),), position))
        input_bam = write_bam(tmp_path / "in.bam", reads)

        marker = ClusterDuplicateMarker(DuplicateConfig())
        marker.process(input_bam, tmp_path / "out.bam")

        assert marker.caller.n_tracked_sites == 1
        assert marker.stats["duplicate_reads"] == 0


@pytest.fixture
def tagged_bam(tmp_path):
    """Fragments a and b share cluster 0 and coordinates; c is cluster 1."""
    return write_bam(
        tmp_path / "mapped.sorted.tag.bam",
        [
            ("a", 1000, FIRST_MATE, (("BC", "0"),), 1200),
            ("b", 1000, FIRST_MATE, (("BC", "0"),), 1200),
            ("c", 1000, FIRST_MATE, (("BC", "1"),), 1200),
            ("s", 1000, SECONDARY, (("BC", "0"),)),
            ("a", 1200, SECOND_MATE, (("BC", "0"),), 1000),
            ("b", 1200, SECOND_MATE, (("BC", "0"),), 1000),
            ("c", 1200, SECOND_MATE, (("BC", "1"),), 1000),
        ],
    )


class TestClusterDuplicateMarker:
    def test_mark(self, tagged_bam, tmp_path):
        output_bam = tmp_path / "out.bam"
        stats = ClusterDuplicateMarker(DuplicateConfig()).process(tagged_bam, output_bam)

        reads = read_bam(output_bam)
        flagged = [(r.query_name, r.reference_start) for r in reads if r.is_duplicate]
        assert flagged == [("b", 1000), ("b", 1200)]
        assert stats["total_reads"] == 7
        assert stats["duplicate_reads"] == 2
        assert stats["written_reads"] == 7
        assert stats["fragment_cross_cluster_positions"] == 1

    def test_remove(self, tagged_bam, tmp_path):
        output_bam = tmp_path / "out.bam"
        config = DuplicateConfig(remove=True)
        stats = ClusterDuplicateMarker(config).process(tagged_bam, output_bam)

        names = [r.query_name for r in read_bam(output_bam)]
        assert "b" not in names
        assert names.count("a") == 2
        assert names.count("c") == 2
        assert stats["written_reads"] == 5

    def test_shared_sites_collected(self, tagged_bam, tmp_path):
        marker = ClusterDuplicateMarker(DuplicateConfig())
        marker.process(tagged_bam, tmp_path / "out.bam")

        assert marker.caller.shared_sites == {("0", "1"): 1}

    def test_same_start_different_mate_kept(self, tmp_path):
        input_bam = write_bam(
            tmp_path / "in.bam",
            [
                ("a", 1000, FIRST_MATE, (("BC", "0"),), 1200),
                ("d", 1000, FIRST_MATE, (("BC", "0"),), 50000),
                ("a", 1200, SECOND_MATE, (("BC", "0"),), 1000),
                ("d", 50000, SECOND_MATE, (("BC", "0"),), 1000),
            ],
        )
        output_bam = tmp_path / "out.bam"
        stats = ClusterDuplicateMarker(DuplicateConfig(remove=True)).process(
            input_bam, output_bam
        )

        names = [r.query_name for r in read_bam(output_bam)]
        assert names == ["a", "d", "a", "d"]
        assert stats["duplicate_reads"] == 0

    def test_reverse_single_reads_compared_by_end(self, tmp_path):
        input_bam = write_bam(
            tmp_path / "in.bam",
            [
                ("x", 500, 16, (("BC", "0"),)),
                ("y", 500, 16, (("BC", "0"),)),
                ("z", 500, 0, (("BC", "0"),)),
            ],
        )
        output_bam = tmp_path / "out.bam"
        ClusterDuplicateMarker(DuplicateConfig()).process(input_bam, output_bam)

        assert [r.is_duplicate for r in read_bam(output_bam)] == [False, True, False]

    @pytest.mark.parametrize("unmapped_first", [False, True])
    def test_unmapped_mate_follows_decision(self, tmp_path, unmapped_first):
        duplicate_pair = [
            ("y", 500, MATE_UNMAPPED, (("BC", "0"),)),
            ("y", 500, UNMAPPED_MATE, (("BC", "0"),)),
        ]
        if unmapped_first:
            duplicate_pair.reverse()
        input_bam = write_bam(
            tmp_path / "in.bam",
            [
                ("x", 500, MATE_UNMAPPED, (("BC", "0"),)),
                ("x", 500, UNMAPPED_MATE, (("BC", "0"),)),
                *duplicate_pair,
            ],
        )
        output_bam = tmp_path / "out.bam"
        stats = ClusterDuplicateMarker(DuplicateConfig(remove=True)).process(
            input_bam, output_bam
        )

        assert [r.query_name for r in read_bam(output_bam)] == ["x", "x"]
        assert stats["duplicate_reads"] == 2

    def test_unmapped_mate_marked(self, tmp_path):
        input_bam = write_bam(
            tmp_path / "in.bam",
            [
                ("x", 500, MATE_UNMAPPED, (("BC", "0"),)),
                ("y", 500, UNMAPPED_MATE, (("BC", "0"),)),
                ("y", 500, MATE_UNMAPPED, (("BC", "0"),)),
            ],
        )
        output_bam = tmp_path / "out.bam"
        ClusterDuplicateMarker(DuplicateConfig()).process(input_bam, output_bam)

        reads = read_bam(output_bam)
        flagged = sorted((r.query_name, r.is_unmapped) for r in reads if r.is_duplicate)
        assert flagged == [("y", False), ("y", True)]

    def test_output_indexed(self, tagged_bam, tmp_path):
        output_bam = tmp_path / "out.bam"
        ClusterDuplicateMarker(DuplicateConfig()).process(tagged_bam, output_bam)
        assert (tmp_path / "out.bam.bai").exists()

    def test_untagged_reads_kept(self, tmp_path):
        input_bam = write_bam(
            tmp_path / "in.bam",
            [
                ("x", 500, 0, (("BC", "none"),)),
                ("y", 500, 0, (("BC", "none"),)),
                ("z", 500, 0, ()),
            ],
        )
        output_bam = tmp_path / "out.bam"
        stats = ClusterDuplicateMarker(DuplicateConfig(remove=True)).process(
            input_bam, output_bam
        )

        assert len(read_bam(output_bam)) == 3
        assert stats["fragment_untagged"] == 3

    def test_custom_cluster_tag(self, tmp_path):
        input_bam = write_bam(
            tmp_path / "in.bam",
            [("x", 500, 0, (("BX", "7"),)), ("y", 500, 0, (("BX", "7"),))],
        )
        output_bam = tmp_path / "out.bam"
        ClusterDuplicateMarker(DuplicateConfig(), cluster_tag="BX").process(input_bam, output_bam)

        assert [r.is_duplicate for r in read_bam(output_bam)] == [False, True]

    def test_unsorted_header_warns(self, tmp_path, caplog):
        input_bam = write_bam(
            tmp_path / "in.bam", [("x", 500, 0, (("BC", "0"),))], sort_order="unsorted"
        )
        output_bam = tmp_path / "out.bam"

        with caplog.at_level(logging.WARNING):
            ClusterDuplicateMarker(DuplicateConfig()).process(input_bam, output_bam)

        assert "expected 'coordinate'" in caplog.text
        assert not (tmp_path / "out.bam.bai").exists()

    def test_io_failure_reports_last_record(self, tagged_bam, tmp_path, monkeypatch):
        call_fragment = ClusterDuplicateMarker._call_fragment

        def failing_call(self, read, pending_mates):
            if read.query_name == "c":
                raise OSError("Input/output error")
            return call_fragment(self, read, pending_mates)

        monkeypatch.setattr(ClusterDuplicateMarker, "_call_fragment", failing_call)

        with pytest.raises(ResourceExhaustionError) as exc_info:
            ClusterDuplicateMarker(DuplicateConfig()).process(tagged_bam, tmp_path / "out.bam")

        assert exc_info.value.stage == "duplicate calling"
        assert exc_info.value.offset == 1
        assert "Input/output error" in str(exc_info.value)
