"""Main run command"""

import logging

import click

from ..options import cluster_filter_options, common_options, duplicate_options, read_arguments
from ..utils import run_pipeline_command

logger = logging.getLogger(__name__)


@click.command()
@read_arguments
@common_options
@duplicate_options
@cluster_filter_options
@click.option(
    "--bam",
    "-b",
    "bam_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Coordinate-sorted BAM aligned from the trimmed reads (enables steps 3-4 on BAM)",
)
@click.option(
    "--start",
    "-s",
    "start_step",
    default=1,
    type=click.IntRange(1, 4),
    show_default=True,
    help="Start at this step (1 extract, 2 cluster, 3 tag, 4 rmdup)",
)
@click.option(
    "--end",
    "-e",
    "end_step",
    default=4,
    type=click.IntRange(1, 4),
    show_default=True,
    help="End after this step",
)
@click.option(
    "--remove",
    "-r",
    "remove_intermediates",
    is_flag=True,
    help="Remove intermediate files once the steps using them are done",
)
def run(r1_path, r2_path, output_dir, bam_path, start_step, end_step, **options):
    """Run the barcode clustering pipeline on a pair of trimmed FASTQ files.

    \b
    Pipeline outline:
      1. Barcode extraction
      2. Clustering
      3. Tagging (FASTQ, and BAM if --bam is given)
      4. Cluster-aware duplicate removal, cluster merging and filtering,
         final FASTQ files (requires --bam)
    """
    try:
        status = run_pipeline_command(
            r1_path=r1_path,
            r2_path=r2_path,
            output_dir=output_dir,
            bam_path=bam_path,
            start_step=start_step,
            end_step=end_step,
            **options,
        )
    except KeyboardInterrupt:
        raise SystemExit(130) from None

    if status:
        raise SystemExit(status)
