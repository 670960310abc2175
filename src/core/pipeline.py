"""Main pipeline orchestration for barcode clustering and cluster-aware tagging."""

import logging
import time
from enum import Enum
from pathlib import Path
from typing import Any

from analysis.qc import QCCalculator
from core.config import PipelineConfig
from core.exceptions import InvalidInputError, ProcessingError
from file_io import (
    BamFastqExporter,
    clstr_filename,
    read_barcode_table,
    read_clstr,
    write_barcode_table,
    write_clstr,
    write_cluster_stats,
    write_parameters_json,
    write_run_summary,
    write_tsv_file,
)
from processing.cluster_merging import BarcodeDuplicateMerger, ClusterFinalizer
from processing.clustering import bucket_records, merge_clusters
from processing.duplicates import ClusterDuplicateMarker
from processing.processors import BucketProcessor
from processing.readers import BarcodeExtractor
from processing.tagging import BamTagger, Tagger
from utils.utils import link_or_replace, remove_files, validate_bam_file, validate_fastq_file

logger = logging.getLogger(__name__)


class StageState(Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    SKIPPED = "skipped"


class Stage:
    """One pipeline step and its state."""

    TRANSITIONS = {
        StageState.PENDING: {StageState.RUNNING, StageState.SKIPPED},
        StageState.RUNNING: {StageState.DONE},
    }

    def __init__(self, number: int, name: str, title: str):
        self.number = number
        self.name = name
        self.title = title
        self.state = StageState.PENDING

    def transition(self, new_state: StageState):
        if new_state not in self.TRANSITIONS.get(self.state, set()):
            raise ProcessingError(
                f"Stage '{self.name}' cannot move from {self.state.value} to {new_state.value}"
            )
        self.state = new_state

    def __repr__(self):
        return f"Stage({self.number}, {self.name!r}, {self.state.value})"


class BlrPipeline:
    """Four-step barcode clustering, tagging and duplicate calling pipeline.

    1. extract: barcode of every read pair to barcodes.tsv.gz
    2. cluster: bucket by prefix, greedy cluster, merge into BC.<N...>.clstr
    3. tag:     tagged FASTQ pairs, plus a tagged BAM when one is supplied
    4. rmdup:   cluster-aware duplicate calling on the tagged BAM, merging of
                clusters that share fragments, cluster filtering and final FASTQ

    Each step reads its inputs from the output directory, so a run can start
    at any step as long as the earlier outputs exist.
    """

    def __init__(
        self,
        r1_path: str,
        r2_path: str,
        output_dir: Path,
        config: PipelineConfig | None = None,
        bam_path: str | None = None,
        sample_name: str = "blrtag",
    ):
        self.r1_path = Path(r1_path)
        self.r2_path = Path(r2_path)
        self.output_dir = Path(output_dir)
        self.config = (config or PipelineConfig()).validate()
        self.bam_path = Path(bam_path) if bam_path else None
        self.sample_name = sample_name

        validate_fastq_file(str(self.r1_path))
        validate_fastq_file(str(self.r2_path))
        if self.bam_path is not None:
            validate_bam_file(str(self.bam_path))

        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.qc_dir = self.output_dir / "qc"

        self.barcode_table = self.output_dir / "barcodes.tsv.gz"
        self.clstr_path = self.output_dir / "barcodes.clstr"
        self.clstr_link = self.output_dir / clstr_filename(
            self.config.clustering.index_nucleotides
        )
        self.tagged_r1 = self.output_dir / "reads.1.tag.fastq.gz"
        self.tagged_r2 = self.output_dir / "reads.2.tag.fastq.gz"
        self.tagged_bam = self.output_dir / "mapped.sorted.tag.bam"
        self.rmdup_bam = self.output_dir / "mapped.sorted.tag.rmdup.bam"
        self.final_bam = self.output_dir / "mapped.sorted.tag.rmdup.x2.filt.bam"
        self.final_r1 = self.output_dir / "reads.1.final.fastq.gz"
        self.final_r2 = self.output_dir / "reads.2.final.fastq.gz"

        self.stages = [
            Stage(1, "extract", "Barcode extraction"),
            Stage(2, "cluster", "Clustering"),
            Stage(3, "tag", "Tagging"),
            Stage(4, "rmdup", "Duplicate removal"),
        ]
        self.counts: dict[str, Any] = {}

    def extractor(self) -> BarcodeExtractor:
        return BarcodeExtractor(self.r1_path, self.r2_path, self.config.barcode)

    def run(self) -> dict[str, Any]:
        start_time = time.time()
        start, end = self.config.stages.start_step, self.config.stages.end_step

        logger.info("ANALYSIS STARTING")
        for stage in self.stages:
            if not start <= stage.number <= end:
                stage.transition(StageState.SKIPPED)
                logger.debug("Skipping step %s (%s): outside steps %s-%s", stage.number, stage.name, start, end)
                continue
            if stage.name == "rmdup" and self.bam_path is None:
                stage.transition(StageState.SKIPPED)
                logger.info("Skipping step 4 (rmdup): no aligned BAM supplied")
                continue

            logger.info("")
            logger.info("%s. %s", stage.number, stage.title)
            stage.transition(StageState.RUNNING)
            getattr(self, f"_run_{stage.name}")()
            stage.transition(StageState.DONE)
            logger.info("%s done", stage.title)

        if self.config.stages.remove_intermediates:
            self._remove_intermediates()

        self._write_summary()

        elapsed = time.time() - start_time
        hours = int(elapsed // 3600)
        minutes = int((elapsed % 3600) // 60)
        seconds = int(elapsed % 60)

        if hours > 0:
            logger.info(f"ANALYSIS FINISHED (Elapsed time: {hours}h {minutes}m {seconds}s)")
        elif minutes > 0:
            logger.info(f"ANALYSIS FINISHED (Elapsed time: {minutes}m {seconds}s)")
        else:
            logger.info(f"ANALYSIS FINISHED (Elapsed time: {seconds}s)")

        return {
            "stages": {stage.name: stage.state.value for stage in self.stages},
            **self.counts,
        }

    def _run_extract(self):
        extractor = self.extractor()
        n_records = write_barcode_table(extractor, self.barcode_table)
        self.counts["read_pairs"] = extractor.n_pairs
        self.counts["barcodes_extracted"] = n_records
        self.counts["malformed_pairs"] = extractor.n_malformed

    def _run_cluster(self):
        self._require(self.barcode_table, "extract")
        clustering = self.config.clustering

        buckets = bucket_records(read_barcode_table(self.barcode_table), clustering.index_nucleotides)
        bucket_results = BucketProcessor(self.config).process_buckets(buckets)
        cluster_set = merge_clusters(bucket_results)

        write_clstr(cluster_set, self.clstr_path, clustering.metric)
        link_or_replace(self.clstr_path, self.clstr_link)

        qc_calc = QCCalculator(self.config)
        cluster_stats = qc_calc.cluster_stats(cluster_set)
        self.qc_dir.mkdir(exist_ok=True, parents=True)
        write_cluster_stats(cluster_stats, self.qc_dir / "cluster_stats.csv")
        self.counts["clusters"] = cluster_stats["clusters"]

        logger.info("Generating HTML QC report...")
        try:
            from analysis.report import generate_html_report

            sizes, n_clusters = qc_calc.cluster_size_histogram(cluster_set)
            generate_html_report(
                self.output_dir, cluster_stats, sizes, n_clusters, title=self.sample_name
            )
        except ImportError:
            logger.warning("matplotlib not installed, skipping HTML report generation")

    def _run_tag(self):
        self._require(self.clstr_path, "cluster")
        cluster_map = read_clstr(self.clstr_path)

        tagger = Tagger(
            cluster_map, self.extractor(), self.config.cluster_tag, self.config.sequence_tag
        )
        fastq_stats = tagger.write_tagged_fastq(self.tagged_r1, self.tagged_r2)
        self.counts.update({f"fastq_{k}": v for k, v in fastq_stats.items()})

        if self.bam_path is None:
            logger.info("No aligned BAM supplied, tagged FASTQ files only")
            return

        bam_tagger = BamTagger(
            cluster_map, self.config.barcode, self.config.cluster_tag, self.config.sequence_tag
        )
        bam_stats = bam_tagger.process(self.bam_path, self.tagged_bam)
        self.counts.update({f"bam_{k}": v for k, v in bam_stats.items()})

    def _run_rmdup(self):
        self._require(self.tagged_bam, "tag")
        dedup, cluster_tag = self.config.dedup, self.config.cluster_tag

        marker = ClusterDuplicateMarker(dedup, cluster_tag)
        stats = marker.process(self.tagged_bam, self.rmdup_bam)

        merge_map = BarcodeDuplicateMerger(dedup.min_shared_positions).merge_map(
            marker.caller.shared_sites
        )
        finalizer = ClusterFinalizer(dedup, cluster_tag)
        stats.update(finalizer.process(self.rmdup_bam, self.final_bam, merge_map))

        exporter = BamFastqExporter(cluster_tag, self.config.sequence_tag)
        stats.update(
            {
                f"final_{k}": v
                for k, v in exporter.write(self.final_bam, self.final_r1, self.final_r2).items()
            }
        )

        self.qc_dir.mkdir(exist_ok=True, parents=True)
        write_tsv_file([stats], self.qc_dir / "rmdup_stats.csv", delimiter=",")
        if merge_map:
            write_tsv_file(
                [{"cluster": k, "merged_into": v} for k, v in sorted(merge_map.items())],
                self.qc_dir / "cluster_merges.tsv",
            )
        self.counts.update({f"rmdup_{k}": v for k, v in stats.items()})

    def _require(self, path: Path, producing_stage: str):
        if not path.exists():
            raise InvalidInputError(
                f"{path.name} not found in {self.output_dir}; run the '{producing_stage}' step first"
            )

    def _remove_intermediates(self):
        states = {stage.name: stage.state for stage in self.stages}
        if states["cluster"] == StageState.DONE:
            remove_files(self.barcode_table)
        if states["rmdup"] == StageState.DONE:
            remove_files(self.tagged_bam, Path(str(self.tagged_bam) + ".bai"))
            remove_files(self.rmdup_bam, Path(str(self.rmdup_bam) + ".bai"))

    def _write_summary(self):
        qc_calc = QCCalculator(self.config)
        run_metadata = qc_calc.collect_run_metadata(
            str(self.r1_path),
            str(self.r2_path),
            str(self.output_dir),
            {stage.name: stage.state.value for stage in self.stages},
            self.counts,
        )
        self.qc_dir.mkdir(exist_ok=True, parents=True)
        write_run_summary(run_metadata, self.qc_dir / "summary.txt")
        write_parameters_json(run_metadata["parameters"], self.qc_dir / "parameters.json")


def run_pipeline(
    r1_path: str,
    r2_path: str,
    output_dir: str,
    bam_path: str | None = None,
    sample_name: str = "blrtag",
    **config_kwargs,
) -> dict[str, Any]:
    """Run the pipeline with individual parameters"""
    config = PipelineConfig(**config_kwargs)

    pipeline = BlrPipeline(
        r1_path=r1_path,
        r2_path=r2_path,
        output_dir=Path(output_dir),
        config=config,
        bam_path=bam_path,
        sample_name=sample_name,
    )
    return pipeline.run()
