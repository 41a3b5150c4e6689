"""Type definitions for the application."""

from typing import TypedDict


class FetchRow(TypedDict):
    """Output row of the source-fetch stage."""
    block_number: str
    address: str
    is_erc20: str
    is_erc721: str
    code: str


class ClassifyRow(FetchRow):
    """Output row of the classification stage."""
    artistic_score: str
    artistic_reason: str
    duplicate_of_address: str
