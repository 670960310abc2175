"""Rmdup command for blrtag."""

import logging
from pathlib import Path

import click

from core.config import DuplicateConfig
from core.exceptions import ConfigurationError, InvalidInputError, ProcessingError
from processing.duplicates import ClusterDuplicateMarker
from utils.utils import validate_bam_file

from ..options import duplicate_options
from ..utils import set_verbose

logger = logging.getLogger(__name__)


@click.command()
@click.argument("input_bam", type=click.Path(exists=True, dir_okay=False))
@click.argument("output_bam", type=click.Path(dir_okay=False))
@duplicate_options
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def rmdup(input_bam, output_bam, duplicate_threshold, remove_duplicates, cluster_tag, verbose):
    """Mark or remove duplicates within barcode clusters of a tagged BAM.

    Reads at the same position but in different clusters are kept as distinct
    molecules. Reads without a cluster tag are never called duplicates.
    """
    set_verbose(verbose)

    config = DuplicateConfig(
        threshold=0 if duplicate_threshold is None else duplicate_threshold,
        remove=remove_duplicates,
    )

    try:
        validate_bam_file(input_bam)
        Path(output_bam).parent.mkdir(parents=True, exist_ok=True)
        ClusterDuplicateMarker(config, cluster_tag).process(input_bam, output_bam)
    except KeyboardInterrupt:
        raise SystemExit(130) from None
    except (ConfigurationError, InvalidInputError, ProcessingError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        raise SystemExit(1) from None
