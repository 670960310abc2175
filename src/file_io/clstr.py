"""Clustering result files (CD-HIT style .clstr)"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from core.exceptions import ClusterConsistencyError, ConfigurationError, InvalidInputError
from core.records import ClusterSet
from processing.clustering import edit_distance, hamming_distance

logger = logging.getLogger(__name__)

CLUSTER_HEADER = re.compile(r"^>Cluster (\d+)$")
MEMBER_LINE = re.compile(r"^\d+\t\d+nt, >([ACGTN]+)\.\.\. (?:\*|at \d+)$")
INDEXED_NAME = re.compile(r"^BC\.(N+)\.clstr$")


def clstr_filename(index_nucleotides: int) -> str:
    """BC.clstr for unindexed runs, BC.NNN.clstr for three index bases, etc."""
    if index_nucleotides < 0:
        raise ConfigurationError(f"index_nucleotides must be >= 0, got {index_nucleotides}")
    if index_nucleotides == 0:
        return "BC.clstr"
    return f"BC.{'N' * index_nucleotides}.clstr"


def index_nucleotides_from_filename(path) -> int:
    name = Path(path).name
    if name == "BC.clstr":
        return 0
    match = INDEXED_NAME.match(name)
    if match is None:
        raise InvalidInputError(f"Not a clustering file name: {name}")
    return len(match.group(1))


def write_clstr(cluster_set: ClusterSet, output_path: Path, metric: str = "hamming"):
    """Write one '>Cluster N' block per cluster, representative marked with '*'."""
    distance = edit_distance if metric == "levenshtein" else hamming_distance

    with open(output_path, "w") as f:
        for cluster in cluster_set:
            f.write(f">Cluster {cluster.global_id}\n")
            for i, seq in enumerate(cluster.sequences):
                if seq == cluster.representative:
                    suffix = "*"
                else:
                    suffix = f"at {distance(cluster.representative, seq)}"
                f.write(f"{i}\t{len(seq)}nt, >{seq}... {suffix}\n")

    logger.info("Wrote %s clusters to: %s", f"{len(cluster_set):,}", output_path)


def read_clstr(input_path) -> dict[str, int]:
    """Load {barcode sequence: cluster id} from a .clstr file."""
    input_path = Path(input_path)
    if not input_path.exists():
        raise InvalidInputError(f'Clustering file not found: "{input_path}"')

    cluster_map: dict[str, int] = {}
    current = None

    with open(input_path) as f:
        for line_number, line in enumerate(f, 1):
            line = line.rstrip("\n")
            if not line:
                continue

            header = CLUSTER_HEADER.match(line)
            if header:
                current = int(header.group(1))
                continue

            member = MEMBER_LINE.match(line)
            if member is None or current is None:
                raise InvalidInputError(
                    f"Cannot parse line {line_number} of {input_path.name}: {line!r}"
                )

            seq = member.group(1)
            if seq in cluster_map and cluster_map[seq] != current:
                raise ClusterConsistencyError(
                    f"Barcode '{seq}' listed under clusters {cluster_map[seq]} and {current} "
                    f"in {input_path.name}"
                )
            cluster_map[seq] = current

    logger.info(
        "Loaded %s barcodes in %s clusters from %s",
        f"{len(cluster_map):,}",
        f"{len(set(cluster_map.values())):,}",
        input_path,
    )
    return cluster_map
