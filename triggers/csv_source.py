"""
Interview Dispatch: CSV input source
Reads the scheduling export. First row is the header; a UTF-8 BOM is
tolerated; ragged rows are kept (missing cells read as empty) and left for
InputRow validation to reject individually.
"""
import csv
import logging
from pathlib import Path
from typing import Iterator, Mapping, Optional, Tuple

logger = logging.getLogger("dispatch.csv_source")


class CsvSourceError(RuntimeError):
    """The file as a whole could not be read."""


def iter_csv_rows(filepath: Path) -> Iterator[Tuple[int, Mapping[str, Optional[str]]]]:
    """Yield (index, header -> value) for each data row, index starting at 0."""
    filepath = Path(filepath)
    if not filepath.is_file():
        raise CsvSourceError(f"CSV file not found: {filepath}")

    try:
        with open(filepath, "r", encoding="utf-8-sig", newline="") as f:
            # DictReader already drops blank lines
            for index, raw in enumerate(csv.DictReader(f)):
                yield index, raw
    except (UnicodeDecodeError, csv.Error) as e:
        raise CsvSourceError(f"Failed to parse CSV file {filepath}: {e}") from e


def read_csv_rows(filepath: Path) -> list:
    """Materialize every row up front so file errors surface before any dispatch."""
    rows = list(iter_csv_rows(filepath))
    logger.info(f"Parsed {len(rows)} records from {Path(filepath).name}")
    return rows
