"""CLI commands package."""

from .cluster import cluster
from .rmdup import rmdup
from .run import run
from .tag import tag

__all__ = ["run", "cluster", "tag", "rmdup"]
