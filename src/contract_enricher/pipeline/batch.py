"""Batch utilities: loading the input table and tracking run progress."""

import time
from pathlib import Path
from typing import Any, Dict, List, Union

import polars as pl

from ..config import Stage
from ..errors import ConfigurationError
from ..logging_config import get_logger
from .records import FLAG_COLUMNS, InputRecord, required_input_columns

logger = get_logger(__name__)


def read_table(path: Union[str, Path]) -> pl.DataFrame:
    """Read a CSV file with every column as a string and nulls as empty strings."""
    input_path = Path(path)
    if not input_path.exists():
        raise ConfigurationError(f"Input file '{input_path}' not found")

    try:
        df = pl.read_csv(input_path, infer_schema_length=0)
    except pl.exceptions.NoDataError:
        raise ConfigurationError(f"Input file '{input_path}' is empty") from None
    except pl.exceptions.PolarsError as e:
        raise ConfigurationError(f"Cannot parse input file '{input_path}': {e}") from e

    return df.with_columns(pl.all().fill_null(""))


def load_records(path: Union[str, Path], stage: Stage) -> List[InputRecord]:
    """
    Read the whole input into memory as an ordered list of records.

    Args:
        path: Input CSV path
        stage: Stage the records are loaded for (decides required columns)

    Returns:
        Records in file order

    Raises:
        ConfigurationError: If the file is missing, unreadable or lacks a
            required column, a block number is not an integer or an address
            is empty
    """
    df = read_table(path)

    missing_columns = required_input_columns(stage) - set(df.columns)
    if missing_columns:
        raise ConfigurationError(f"Missing required columns: {sorted(missing_columns)}")

    has_code = "code" in df.columns
    records = []
    for line_number, row in enumerate(df.iter_rows(named=True), start=2):
        try:
            block_number = int(row["block_number"])
        except ValueError:
            raise ConfigurationError(
                f"Invalid block_number {row['block_number']!r} on line {line_number}"
            ) from None

        if not row["address"].strip():
            raise ConfigurationError(f"Empty address on line {line_number}")

        records.append(
            InputRecord(
                key=row["address"],
                block_number=block_number,
                flags={flag: row[flag] for flag in FLAG_COLUMNS},
                content=row["code"] if has_code and stage is Stage.CLASSIFY else "",
            )
        )

    logger.info(f"CSV loaded: {len(records)} records")
    return records


def describe_dataset(path: Union[str, Path]) -> Dict[str, Any]:
    """Summary counts for an input or output table."""
    df = read_table(path)
    summary: Dict[str, Any] = {
        "rows": len(df),
        "columns": df.columns,
    }

    if "is_erc20" in df.columns:
        summary["non_erc20"] = df.filter(
            pl.col("is_erc20").str.to_lowercase() != "true"
        ).height
    if "is_erc721" in df.columns:
        summary["erc721"] = df.filter(
            pl.col("is_erc721").str.to_lowercase() == "true"
        ).height
    if "code" in df.columns:
        summary["with_code"] = df.filter(pl.col("code") != "").height

    return summary


class ProgressTracker:
    """Track and report progress of a pipeline run."""

    COUNTERS = (
        "enriched",
        "empty",
        "skipped_processed",
        "skipped_short",
        "skipped_duplicate",
        "failed",
    )
    
    def __init__(self, total_items: int, report_every: int = 100):
        self.total_items = total_items
        self.report_every = report_every
        self.counts: Dict[str, int] = {name: 0 for name in self.COUNTERS}
        self.start_time = time.monotonic()

    @property
    def seen(self) -> int:
        return sum(self.counts.values())

    @property
    def skipped(self) -> int:
        return (
            self.counts["skipped_processed"]
            + self.counts["skipped_short"]
            + self.counts["skipped_duplicate"]
        )

    @property
    def processed(self) -> int:
        return self.counts["enriched"] + self.counts["empty"]

    @property
    def failed(self) -> int:
        return self.counts["failed"]
    
    def update(self, status: str) -> None:
        """Count one record under the given status."""
        if status not in self.counts:
            raise ValueError(f"Unknown status: {status}")
        self.counts[status] += 1
        
        # Report progress
        if self.seen % self.report_every == 0:
            self.report()
    
    def report(self) -> None:
        """Report current progress."""
        elapsed = time.monotonic() - self.start_time
        rate = self.seen / elapsed if elapsed > 0 else 0
        progress_pct = (self.seen / self.total_items) * 100 if self.total_items else 100.0
        
        logger.info(
            f"Progress: {self.seen}/{self.total_items} "
            f"({progress_pct:.1f}%) - "
            f"Processed: {self.processed}, Skipped: {self.skipped}, Failed: {self.failed} - "
            f"Rate: {rate:.1f}/s"
        )
    
    def final_report(self) -> None:
        """Report final statistics."""
        elapsed = time.monotonic() - self.start_time
        
        logger.info(
            f"=== completed: {self.seen} records in {elapsed:.1f}s - "
            f"Processed: {self.processed} (empty: {self.counts['empty']}), "
            f"Skipped: {self.skipped} "
            f"(already: {self.counts['skipped_processed']}, "
            f"short: {self.counts['skipped_short']}, "
            f"duplicate: {self.counts['skipped_duplicate']}), "
            f"Failed: {self.failed} ==="
        )
