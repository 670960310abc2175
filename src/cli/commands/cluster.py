"""Cluster command for blrtag."""

import click

from ..options import common_options, read_arguments
from ..utils import run_pipeline_command


@click.command()
@read_arguments
@common_options
def cluster(r1_path, r2_path, output_dir, **options):
    """Extract and cluster barcodes (steps 1-2).

    Writes barcodes.clstr and the BC.<N...>.clstr link into OUTPUT_DIR.
    """
    try:
        status = run_pipeline_command(
            r1_path=r1_path,
            r2_path=r2_path,
            output_dir=output_dir,
            start_step=1,
            end_step=2,
            **options,
        )
    except KeyboardInterrupt:
        raise SystemExit(130) from None

    if status:
        raise SystemExit(status)
