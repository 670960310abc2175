"""Format utilities and writers for TSV/CSV/JSON output"""

import gzip
import io
import json
import logging
from pathlib import Path

from core.exceptions import InvalidInputError
from core.records import BarcodeRecord

logger = logging.getLogger(__name__)


def open_text(path: Path, mode: str = "r"):
    """Open a text file, gzip-compressed when the name ends in .gz

    Compressed output carries a zero timestamp so reruns are byte-identical.
    """
    path = Path(path)
    if path.suffix != ".gz":
        return open(path, mode)
    if mode == "r":
        return gzip.open(path, "rt")
    return io.TextIOWrapper(gzip.GzipFile(path, mode + "b", mtime=0))


def write_barcode_table(records, output_path: Path) -> int:
    """Write read_pair_id<TAB>barcode lines in input order."""
    n_records = 0
    with open_text(output_path, "w") as f:
        for record in records:
            f.write(f"{record.read_pair_id}\t{record.sequence}\n")
            n_records += 1

    logger.info("Wrote %s barcodes to: %s", f"{n_records:,}", output_path)
    return n_records


def read_barcode_table(input_path: Path):
    """Stream BarcodeRecords back from a barcode table."""
    input_path = Path(input_path)
    if not input_path.exists():
        raise InvalidInputError(f'Barcode table not found: "{input_path}"')

    with open_text(input_path) as f:
        for line_number, line in enumerate(f, 1):
            fields = line.rstrip("\n").split("\t")
            if len(fields) != 2 or not fields[1]:
                raise InvalidInputError(
                    f"Cannot parse line {line_number} of {input_path.name}: {line!r}"
                )
            yield BarcodeRecord(fields[0], fields[1])


def write_cluster_stats(cluster_stats: dict, output_path: Path):
    """Write cluster-size summary to a two-column CSV file"""
    with open(output_path, "w") as f:
        f.write("metric,value\n")
        for key, value in cluster_stats.items():
            if isinstance(value, float):
                f.write(f"{key},{value:.2f}\n")
            else:
                f.write(f"{key},{value}\n")

    logger.info("Wrote cluster stats to: %s", output_path)


def write_tsv_file(data: list[dict], output_path: Path, delimiter="\t"):
    """Write data to TSV/CSV file"""
    if not data:
        return

    # Get all unique keys
    all_keys: set[str] = set()
    for row in data:
        all_keys.update(row.keys())
    sorted_keys = sorted(all_keys)

    with open_text(output_path, "w") as f:
        f.write(delimiter.join(sorted_keys) + "\n")
        for row in data:
            values = [str(row.get(key, "")) for key in sorted_keys]
            f.write(delimiter.join(values) + "\n")

    logger.info("Wrote data to: %s", output_path)


def write_run_summary(run_metadata: dict, output_path: Path):
    """Write run summary to text file."""
    with open(output_path, "w") as f:
        f.write("blrtag Run Summary\n")
        f.write("=" * 20 + "\n")

        for key, value in run_metadata.items():
            if key != "parameters":
                f.write(f"{key}: {value}\n")

    logger.info("Wrote run summary to: %s", output_path)


def write_parameters_json(parameters: dict, output_path: Path):
    """Write run parameters to JSON file."""
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w") as f:
        json.dump(parameters, f, indent=2, default=str)

    logger.info("Wrote parameters to: %s", output_path)
