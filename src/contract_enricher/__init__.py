"""Contract Enricher - Resumable, rate-limited enrichment of smart contract datasets."""

__version__ = "0.1.0"

from .config import Settings, PipelineConfig

__all__ = ["Settings", "PipelineConfig"]
