"""Analysis and reporting functions"""

from .qc import QCCalculator, package_version

__all__ = [
    # From qc
    "QCCalculator",
    "package_version",
]
