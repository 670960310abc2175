"""CLI main module for blrtag."""

import logging

from .base import cli, main
from .commands import cluster, rmdup, run, tag

# Setup logger
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

# Register commands in desired help order
cli.add_command(run)
cli.add_command(cluster)
cli.add_command(tag)
cli.add_command(rmdup)

__all__ = ["cli", "main"]
