"""CLI options and decorators for blrtag."""

import click


def read_arguments(f):
    """Positional <r1.fq> <r2.fq> <output_dir> shared by run, cluster and tag."""
    f = click.argument("output_dir", type=click.Path())(f)
    f = click.argument("r2_path", type=click.Path(exists=True, dir_okay=False))(f)
    return click.argument("r1_path", type=click.Path(exists=True, dir_okay=False))(f)


def barcode_options(f):
    """Where to find the barcode in each read pair."""
    # Apply options in reverse order (last decorator applied first)
    f = click.option(
        "--barcode-read",
        "barcode_read",
        type=click.IntRange(1, 2),
        default=1,
        show_default=True,
        help="Read carrying the barcode (sequence location only)",
    )(f)
    f = click.option(
        "--barcode-offset",
        "barcode_offset",
        default=0,
        type=int,
        show_default=True,
        help="Barcode start in the read sequence (sequence location only)",
    )(f)
    f = click.option(
        "--barcode-length",
        "barcode_length",
        default=20,
        type=int,
        show_default=True,
        help="Expected barcode length, 0 accepts any length",
    )(f)
    f = click.option(
        "--barcode-separator",
        "barcode_separator",
        default="_",
        show_default=True,
        help="Separator before the barcode in read names (header location only)",
    )(f)
    return click.option(
        "--barcode-location",
        "barcode_location",
        type=click.Choice(["header", "sequence"], case_sensitive=False),
        default="header",
        show_default=True,
        help="Barcode in the read name suffix or at a fixed offset in the read sequence",
    )(f)


def common_options(f):
    """Options shared by the run, cluster and tag commands."""
    f = click.option(
        "--dry-run",
        is_flag=True,
        help="Show configuration and exit without processing (no output files created)",
    )(f)
    f = click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")(f)
    f = click.option(
        "--processors",
        "-p",
        "processors",
        default=None,
        type=int,
        help="Processes for bucket clustering [default: 1, or SLURM allocation]",
    )(f)
    f = click.option(
        "--metric",
        type=click.Choice(["hamming", "levenshtein"], case_sensitive=False),
        default="hamming",
        show_default=True,
        help="Distance between barcodes",
    )(f)
    f = click.option(
        "--threshold",
        "-t",
        "threshold",
        default=0,
        type=click.IntRange(min=0),
        show_default=True,
        help="Clustering distance threshold (also duplicate position slack by default)",
    )(f)
    f = click.option(
        "--index-nucleotides",
        "-i",
        "index_nucleotides",
        default=3,
        type=click.IntRange(min=0),
        show_default=True,
        help="Barcode prefix length used to bucket barcodes before clustering, 0 disables",
    )(f)
    return barcode_options(f)


def duplicate_options(f):
    """Cluster-aware duplicate calling options."""
    f = click.option(
        "--remove-duplicates",
        "remove_duplicates",
        is_flag=True,
        help="Drop duplicate reads instead of flagging them (0x400)",
    )(f)
    f = click.option(
        "--dup-threshold",
        "duplicate_threshold",
        default=None,
        type=click.IntRange(min=0),
        help="Position slack (bp) for duplicate calling [default: same as --threshold]",
    )(f)
    f = click.option(
        "--cluster-tag",
        "cluster_tag",
        default="BC",
        show_default=True,
        help="BAM tag holding the barcode cluster id",
    )(f)
    return f


def cluster_filter_options(f):
    """Barcode-duplicate merging and cluster filtering after duplicate calling."""
    f = click.option(
        "--molecule-window",
        "molecule_window",
        default=30_000,
        type=click.IntRange(min=0),
        show_default=True,
        help="Gap (bp) between reads of a cluster that starts a new molecule",
    )(f)
    f = click.option(
        "--max-molecules",
        "max_molecules",
        default=260,
        type=click.IntRange(min=0),
        show_default=True,
        help="Untag clusters with more molecules than this, 0 disables the filter",
    )(f)
    return click.option(
        "--min-shared",
        "min_shared_positions",
        default=1,
        type=click.IntRange(min=1),
        show_default=True,
        help="Fragment sites two clusters must share to be merged",
    )(f)
