"""Tag command for blrtag."""

import click

from ..options import common_options, read_arguments
from ..utils import run_pipeline_command


@click.command()
@read_arguments
@common_options
@click.option(
    "--bam",
    "-b",
    "bam_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Aligned BAM to tag alongside the FASTQ files",
)
def tag(r1_path, r2_path, output_dir, bam_path, **options):
    """Tag read pairs with their barcode cluster (step 3).

    Expects barcodes.clstr from a previous 'blrtag cluster' run in OUTPUT_DIR.
    """
    try:
        status = run_pipeline_command(
            r1_path=r1_path,
            r2_path=r2_path,
            output_dir=output_dir,
            bam_path=bam_path,
            start_step=3,
            end_step=3,
            **options,
        )
    except KeyboardInterrupt:
        raise SystemExit(130) from None

    if status:
        raise SystemExit(status)
