"""Utility functions."""

from .utils import (
    link_or_replace,
    remove_files,
    validate_bam_file,
    validate_fastq_file,
)

__all__ = [
    "link_or_replace",
    "remove_files",
    "validate_bam_file",
    "validate_fastq_file",
]
