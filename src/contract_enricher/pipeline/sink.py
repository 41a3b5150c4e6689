"""Append-only CSV output with durable per-row writes."""

import os
from pathlib import Path
from typing import BinaryIO, Mapping, Optional, Sequence, Union

import polars as pl

from ..errors import PersistenceError
from ..logging_config import get_logger

logger = get_logger(__name__)

_CHUNK = 64 * 1024


def complete_length(path: Union[str, Path]) -> int:
    """
    Byte length of the file up to and including its last newline.

    Anything after that is a row torn by an interrupted write.
    """
    with open(path, "rb") as fh:
        fh.seek(0, os.SEEK_END)
        end = fh.tell()
        if end == 0:
            return 0
        fh.seek(end - 1)
        if fh.read(1) == b"\n":
            return end

        position = end
        while position > 0:
            start = max(0, position - _CHUNK)
            fh.seek(start)
            chunk = fh.read(position - start)
            newline = chunk.rfind(b"\n")
            if newline != -1:
                return start + newline + 1
            position = start
        return 0


def drop_partial_row(path: Union[str, Path]) -> int:
    """Cut an unterminated last row off the file. Returns the bytes removed."""
    size = os.path.getsize(path)
    keep = complete_length(path)
    if keep < size:
        os.truncate(path, keep)
        logger.warning(f"Removed {size - keep} bytes of a partial row from the end of {path}")
    return size - keep


class CsvSink:
    """
    Append rows to a CSV file, one durable write per row.

    The header is written only when the file is new or empty. A partial
    row left at the end of the file by an interrupted write is removed on
    open. Empty values are written as blank fields. Every
    `append` is flushed and fsynced before it returns, so a killed process
    loses at most the row that was being produced.
    """

    def __init__(self, path: Union[str, Path], columns: Sequence[str]):
        self.path = Path(path)
        self.columns = list(columns)
        self._schema = {column: pl.String for column in self.columns}
        self._fh: Optional[BinaryIO] = None
        self.rows_written = 0

    def open(self) -> "CsvSink":
        """Open the destination for append, writing the header if needed."""
        try:
            if self.path.parent and not self.path.parent.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
            if self.path.exists():
                drop_partial_row(self.path)
            needs_header = not self.path.exists() or self.path.stat().st_size == 0
            self._fh = open(self.path, "ab")
            if needs_header:
                pl.DataFrame(schema=self._schema).write_csv(self._fh, include_header=True)
                self._sync()
                logger.debug(f"Created {self.path} with header")
        except OSError as e:
            raise PersistenceError(f"Cannot open output {self.path}: {e}") from e
        return self

    def append(self, row: Mapping[str, str]) -> None:
        """Persist one row."""
        if self._fh is None:
            raise PersistenceError(f"Output {self.path} is not open")

        frame = pl.from_dicts(
            [{column: row.get(column) or None for column in self.columns}],
            schema=self._schema,
        )
        try:
            frame.write_csv(self._fh, include_header=False)
            self._sync()
        except OSError as e:
            raise PersistenceError(f"Failed to append to {self.path}: {e}") from e
        self.rows_written += 1

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def _sync(self) -> None:
        self._fh.flush()
        os.fsync(self._fh.fileno())

    def __enter__(self) -> "CsvSink":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
