"""Utility functions for blrtag."""

import logging
import os
from pathlib import Path

from core.exceptions import InvalidInputError

logger = logging.getLogger(__name__)

FASTQ_EXTENSIONS = (".fastq", ".fq", ".fastq.gz", ".fq.gz")


def validate_fastq_file(fastq_path: str) -> None:
    """Validate input FASTQ file exists and is non-empty."""
    if not os.path.exists(fastq_path):
        raise InvalidInputError(f'FASTQ file not found: "{fastq_path}"')

    if not str(fastq_path).endswith(FASTQ_EXTENSIONS):
        raise InvalidInputError(
            f"Input file must have one of {', '.join(FASTQ_EXTENSIONS)} extensions: {fastq_path}"
        )

    if os.path.getsize(fastq_path) == 0:
        raise InvalidInputError(f"FASTQ file is empty: {fastq_path}")


def validate_bam_file(bam_path: str) -> None:
    """Validate input BAM file exists and has a .bam extension."""
    if not os.path.exists(bam_path):
        raise InvalidInputError(f'BAM file not found: "{bam_path}"')

    if not str(bam_path).endswith(".bam"):
        raise InvalidInputError(f"Input file must have .bam extension: {bam_path}")


def link_or_replace(target: Path, link: Path) -> None:
    """Point `link` at `target`, replacing an existing link."""
    if link.is_symlink() or link.exists():
        link.unlink()
    link.symlink_to(target.name if target.parent == link.parent else target.resolve())


def remove_files(*paths) -> None:
    for path in paths:
        path = Path(path)
        if path.exists():
            path.unlink()
            logger.info("Removed intermediate file: %s", path)
