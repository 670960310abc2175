"""IO module for blrtag"""

from .formats import (
    open_text,
    read_barcode_table,
    write_barcode_table,
    write_cluster_stats,
    write_parameters_json,
    write_run_summary,
    write_tsv_file,
)
from .fastq import BamFastqExporter, TaggedFastqWriter
from .clstr import clstr_filename, index_nucleotides_from_filename, read_clstr, write_clstr

__all__ = [
    "BamFastqExporter",
    "TaggedFastqWriter",
    "clstr_filename",
    "index_nucleotides_from_filename",
    "read_clstr",
    "write_clstr",
    "open_text",
    "read_barcode_table",
    "write_barcode_table",
    "write_cluster_stats",
    "write_parameters_json",
    "write_run_summary",
    "write_tsv_file",
]
