"""Record and result types flowing through the pipeline."""

import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Union

from ..config import Stage
from ..utils.typing import ClassifyRow, FetchRow

FLAG_COLUMNS = ("is_erc20", "is_erc721")

FETCH_COLUMNS = ["block_number", "address", "is_erc20", "is_erc721", "code"]
CLASSIFY_COLUMNS = FETCH_COLUMNS + ["artistic_score", "artistic_reason", "duplicate_of_address"]

# Position of the key column in every output table
KEY_COLUMN_INDEX = 1

TOO_SHORT_MARKER = "TOO_SHORT"
FAILED_MARKER = "FAILED"

_LINE_BREAK = re.compile(r"\r?\n")


def escape_newlines(text: str) -> str:
    """Replace embedded line breaks with a literal backslash-n so a row stays on one line."""
    return _LINE_BREAK.sub(r"\\n", text)


def output_columns(stage: Stage) -> list[str]:
    """Output header for a stage."""
    return list(CLASSIFY_COLUMNS if stage is Stage.CLASSIFY else FETCH_COLUMNS)


def required_input_columns(stage: Stage) -> set[str]:
    """Columns the input table must carry for a stage."""
    columns = {"block_number", "address", *FLAG_COLUMNS}
    if stage is Stage.CLASSIFY:
        columns.add("code")
    return columns


@dataclass(frozen=True)
class InputRecord:
    """One input row. `content` is the payload to enrich (empty for the fetch stage)."""

    key: str
    block_number: int
    flags: Mapping[str, str] = field(default_factory=dict)
    content: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "flags", MappingProxyType(dict(self.flags)))


@dataclass(frozen=True)
class Annotation:
    """Parsed classification reply."""

    score: int
    reason: str


class SkipReason(str, Enum):
    NONE = "NONE"
    TOO_SHORT = "TOO_SHORT"
    DUPLICATE = "DUPLICATE"
    FAILED = "FAILED"


@dataclass(frozen=True)
class EnrichmentResult:
    """Exactly one of these is written for every record the driver handles."""

    key: str
    block_number: int
    flags: Mapping[str, str]
    content: str = ""
    annotation: Optional[Annotation] = None
    skip_reason: SkipReason = SkipReason.NONE
    duplicate_of: Optional[str] = None

    @classmethod
    def placeholder(
        cls,
        record: InputRecord,
        reason: SkipReason,
        duplicate_of: Optional[str] = None,
    ) -> "EnrichmentResult":
        """Result for a record that was not enriched."""
        return cls(
            key=record.key,
            block_number=record.block_number,
            flags=record.flags,
            skip_reason=reason,
            duplicate_of=duplicate_of,
        )

    @property
    def skip_marker(self) -> str:
        """Value of the `duplicate_of_address` column."""
        if self.skip_reason is SkipReason.TOO_SHORT:
            return TOO_SHORT_MARKER
        if self.skip_reason is SkipReason.DUPLICATE:
            return self.duplicate_of or ""
        if self.skip_reason is SkipReason.FAILED:
            return FAILED_MARKER
        return ""

    def to_row(self, stage: Stage) -> Union[FetchRow, ClassifyRow]:
        """Flatten into an output row for the given stage."""
        row: FetchRow = {
            "block_number": str(self.block_number),
            "address": self.key,
            "is_erc20": self.flags.get("is_erc20", ""),
            "is_erc721": self.flags.get("is_erc721", ""),
            "code": escape_newlines(self.content),
        }
        if stage is Stage.FETCH:
            return row

        return ClassifyRow(
            **row,
            artistic_score=str(self.annotation.score) if self.annotation else "",
            artistic_reason=self.annotation.reason if self.annotation else "",
            duplicate_of_address=self.skip_marker,
        )
