"""Utility functions for CLI operations."""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path

from analysis.qc import package_version
from core.config import PipelineConfig
from core.exceptions import (
    ConfigurationError,
    InvalidInputError,
    ProcessingError,
    ResourceExhaustionError,
)
from core.pipeline import run_pipeline

logger = logging.getLogger(__name__)


def setup_file_logging(log_file_path):
    """Setup file logging"""
    file_handler = logging.FileHandler(log_file_path, mode="a")
    file_handler.setLevel(logging.INFO)

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    file_handler.setFormatter(formatter)

    logging.getLogger().addHandler(file_handler)
    return file_handler


def set_verbose(verbose: bool):
    if verbose:
        # Only enable DEBUG for blrtag loggers, not third-party libraries
        for logger_name in ["core", "processing", "file_io", "analysis", "utils", "cli"]:
            logging.getLogger(logger_name).setLevel(logging.DEBUG)


def determine_processors(processors):
    """Determine number of processes to use."""
    if processors is not None:
        return processors

    # Check for SLURM environment variables
    slurm_cpus = os.environ.get("SLURM_CPUS_PER_TASK")
    if slurm_cpus:
        try:
            return max(1, int(slurm_cpus))
        except ValueError:
            logger.warning("Ignoring non-numeric SLURM_CPUS_PER_TASK: %s", slurm_cpus)
    return 1


def run_pipeline_command(
    r1_path,
    r2_path,
    output_dir,
    bam_path=None,
    processors=None,
    verbose=False,
    dry_run=False,
    **config_kwargs,
):
    """Common pipeline execution logic; returns the exit status."""
    set_verbose(verbose)
    logger.info("blrtag version %s", package_version())

    config_kwargs["processors"] = determine_processors(processors)

    file_handler = None
    if not dry_run:
        log_file = Path(output_dir) / "output.log"
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = setup_file_logging(log_file)

        cmd_args = sys.argv
        cmd_path = os.path.realpath(cmd_args[0]) if cmd_args else "blrtag"
        logger.info("Command executed: %s %s", cmd_path, " ".join(cmd_args[1:]))
        logger.info("Working directory: %s", os.getcwd())
        logger.info("Execution time: %s", datetime.now().strftime("%Y-%m-%d %H:%M:%S"))

    try:
        config = PipelineConfig(**config_kwargs).validate()
        _log_configuration(r1_path, r2_path, output_dir, bam_path, config)

        if dry_run:
            return 0

        run_pipeline(
            r1_path=r1_path,
            r2_path=r2_path,
            output_dir=output_dir,
            bam_path=bam_path,
            **config_kwargs,
        )
        return 0

    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return 1
    except InvalidInputError as e:
        logger.error("Input validation failed: %s", e)
        return 1
    except ResourceExhaustionError as e:
        logger.error("Resource failure in %s at record %s: %s", e.stage, f"{e.offset:,}", e)
        return 1
    except ProcessingError as e:
        logger.error("Processing failed: %s", e)
        return 1
    except Exception as e:
        logger.error("Unexpected error: %s", e)
        if verbose:
            import traceback

            traceback.print_exc()
        return 1
    finally:
        if file_handler is not None:
            logging.getLogger().removeHandler(file_handler)
            file_handler.close()


def _log_configuration(r1_path, r2_path, output_dir, bam_path, config: PipelineConfig):
    """Log the pipeline configuration."""
    logger.info("  Read 1:                 %s", os.path.realpath(r1_path))
    logger.info("  Read 2:                 %s", os.path.realpath(r2_path))
    logger.info("  Output directory:       %s", os.path.realpath(output_dir))
    logger.info(
        "  Aligned BAM:            %s",
        os.path.realpath(bam_path) if bam_path else "None (FASTQ tagging only)",
    )
    logger.info("  Processors:             %s", config.performance.processors)
    logger.info(
        "  Steps:                  %s-%s", config.stages.start_step, config.stages.end_step
    )

    barcode = config.barcode
    if barcode.location == "header":
        logger.info("  Barcode:                read name suffix after '%s'", barcode.separator)
    else:
        logger.info(
            "  Barcode:                read %s, bases %s-%s",
            barcode.read,
            barcode.offset,
            barcode.offset + barcode.length,
        )
    logger.info("  Barcode length:         %s", barcode.length or "any")

    index_nucleotides = config.clustering.index_nucleotides
    logger.info(
        "  Index nucleotides:      %s",
        index_nucleotides if index_nucleotides else "0 (single bucket)",
    )
    logger.info(
        "  Clustering threshold:   %s (%s)",
        config.clustering.threshold,
        config.clustering.metric,
    )
    logger.info("  Duplicate slack:        %sbp", config.dedup.threshold)
    logger.info(
        "  Duplicates:             %s", "removed" if config.dedup.remove else "marked (0x400)"
    )
    logger.info("  Cluster merging:        >= %s shared sites", config.dedup.min_shared_positions)
    logger.info(
        "  Cluster filter:         %s",
        f"> {config.dedup.max_molecules} molecules ({config.dedup.molecule_window:,}bp window)"
        if config.dedup.max_molecules
        else "off",
    )
    logger.info("  Tags:                   %s (cluster), %s (barcode)", config.cluster_tag, config.sequence_tag)
    logger.info("  Remove intermediates:   %s", config.stages.remove_intermediates)
