"""Progress ledger: which keys are already recorded in the output."""

import io
from pathlib import Path
from typing import Dict, Optional, Set, Union

import polars as pl

from ..errors import PersistenceError
from ..logging_config import get_logger
from .records import KEY_COLUMN_INDEX
from .sink import complete_length

logger = get_logger(__name__)


def load_processed_keys(output_path: Union[str, Path]) -> Set[str]:
    """
    Read the keys already present in an output file.

    A missing, empty or header-only file yields an empty set. A partial
    last row (no trailing newline) is not counted.

    Args:
        output_path: Output file written by a previous run

    Returns:
        Set of keys with an existing output row
    """
    path = Path(output_path)
    if not path.exists() or path.stat().st_size == 0:
        return set()

    try:
        size = path.stat().st_size
        complete = complete_length(path)
        source = path
        if complete < size:
            logger.warning(f"Ignoring partial last row in {path}")
            with open(path, "rb") as fh:
                source = io.BytesIO(fh.read(complete))
        df = pl.read_csv(
            source,
            columns=[KEY_COLUMN_INDEX],
            infer_schema_length=0,
        )
    except pl.exceptions.NoDataError:
        return set()
    except (pl.exceptions.PolarsError, OSError) as e:
        raise PersistenceError(f"Cannot read existing output {path}: {e}") from e

    keys = {key for key in df.to_series(0).to_list() if key}
    logger.info(f"Found {len(keys)} already processed keys in {path}")
    return keys


class ProgressLedger:
    """In-memory view of completed keys and of content seen during this run."""

    def __init__(self, processed_keys: Optional[Set[str]] = None):
        self.processed_keys: Set[str] = set(processed_keys or ())
        self.content_index: Dict[str, str] = {}

    @classmethod
    def from_output(cls, output_path: Union[str, Path], resume: bool = True) -> "ProgressLedger":
        """Build the ledger from prior output, or start empty when not resuming."""
        if not resume:
            return cls()
        return cls(load_processed_keys(output_path))

    def is_processed(self, key: str) -> bool:
        return key in self.processed_keys

    def original_for(self, content: str) -> Optional[str]:
        """Key that first carried this content during the current run."""
        return self.content_index.get(content)

    def mark_processed(self, key: str, content: Optional[str] = None) -> None:
        self.processed_keys.add(key)
        if content is not None:
            self.content_index.setdefault(content, key)

    def __len__(self) -> int:
        return len(self.processed_keys)
