"""Command-line interface for the contract enricher."""

import asyncio
from typing import Optional

import httpx
import typer
from openai import AsyncOpenAI
from rich.console import Console
from rich.table import Table

from .cache import cache_stats, clear_cache, get_cache
from .config import PipelineConfig, Stage, settings
from .errors import ConfigurationError, EnricherError
from .fetchers.base import RetryPolicy
from .fetchers.classifier import ArtisticClassifier
from .fetchers.etherscan import SourceFetchAdapter
from .logging_config import setup_logging, get_logger
from .pipeline.batch import ProgressTracker, describe_dataset
from .pipeline.enricher import run_pipeline

# Initialize CLI app
app = typer.Typer(
    name="contract-enricher",
    help="Resumable, rate-limited enrichment of smart contract datasets",
    add_completion=False,
)
console = Console()
logger = get_logger(__name__)


@app.callback()
def main(
    log_level: str = typer.Option(
        "INFO",
        "--log-level",
        help="Set logging level",
        case_sensitive=False,
    ),
    cache_dir: str = typer.Option(
        settings.cache_dir,
        "--cache-dir",
        help="Directory for disk cache",
    ),
) -> None:
    """Contract Enricher CLI - fetch contract source and classify it."""
    settings.cache_dir = cache_dir
    try:
        setup_logging(log_level)
    except ConfigurationError as e:
        console.print(f"[red]Error: {e}")
        raise typer.Exit(1)
    settings.log_level = log_level.upper()


def _retry_policy(max_retries: Optional[int]) -> RetryPolicy:
    return RetryPolicy(
        throttle_backoff=settings.throttle_backoff_seconds,
        status_backoff=settings.status_backoff_seconds,
        network_backoff=settings.network_backoff_seconds,
        max_attempts=max_retries,
    )


def _build_config(
    stage: Stage,
    input_file: str,
    output: str,
    rate: float,
    skip_processed: bool,
    min_length: int,
) -> PipelineConfig:
    try:
        return PipelineConfig.create(
            input_path=input_file,
            output_path=output,
            stage=stage,
            rate_per_second=rate,
            skip_already_processed=skip_processed,
            minimum_content_length=min_length,
        )
    except EnricherError as e:
        console.print(f"[red]Error: {e}")
        raise typer.Exit(1)


def _print_summary(tracker: ProgressTracker, output: str) -> None:
    table = Table(title="Run Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    
    table.add_row("Records in input", str(tracker.total_items))
    for name, count in tracker.counts.items():
        table.add_row(name.replace("_", " ").capitalize(), str(count))
    table.add_row("Output file", output)
    
    console.print(table)


def _run(coro, output: str) -> None:
    try:
        tracker = asyncio.run(coro)
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠️  Run interrupted by user")
        console.print(f"[yellow]📄 Completed rows are saved in: {output}")
        raise typer.Exit(130)
    except EnricherError as e:
        console.print(f"\n[red]❌ Run failed: {e}")
        raise typer.Exit(1)
    except Exception as e:
        console.print(f"\n[red]❌ Run failed: {e}")
        logger.exception("Run failed")
        raise typer.Exit(1)
    
    console.print("\n[green]✅ Run completed")
    _print_summary(tracker, output)


@app.command()
def fetch(
    input_file: str = typer.Argument(..., help="CSV with block_number, address, is_erc20, is_erc721"),
    output: str = typer.Option(
        "code.csv",
        "--out", "-o",
        help="Output CSV (appended to, created with header if missing)",
    ),
    rate: float = typer.Option(
        settings.fetch_rate_per_second,
        "--rate",
        help="Maximum Etherscan calls per second",
    ),
    skip_processed: bool = typer.Option(
        settings.skip_already_processed,
        "--skip-processed/--no-skip-processed",
        help="Skip addresses already present in the output",
    ),
    max_retries: Optional[int] = typer.Option(
        settings.max_retries,
        "--max-retries",
        help="Give up on a record after this many attempts (default: retry forever)",
        min=1,
    ),
    use_cache: bool = typer.Option(
        True,
        "--cache/--no-cache",
        help="Reuse source lookups stored in the disk cache",
    ),
) -> None:
    """Fetch verified contract source code from Etherscan."""
    if not settings.etherscan_api_key:
        console.print("[red]Error: ETHERSCAN_API_KEY environment variable is required")
        raise typer.Exit(1)
    
    config = _build_config(
        Stage.FETCH, input_file, output, rate, skip_processed, settings.min_code_length
    )
    
    async def go() -> ProgressTracker:
        async with httpx.AsyncClient(
            timeout=settings.http_timeout,
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            http2=True,
        ) as client:
            adapter = SourceFetchAdapter(
                client,
                retry_policy=_retry_policy(max_retries),
                cache=get_cache() if use_cache else None,
            )
            return await run_pipeline(config, adapter)
    
    _run(go(), output)


@app.command()
def classify(
    input_file: str = typer.Argument(..., help="CSV produced by the fetch command"),
    output: str = typer.Option(
        "classified.csv",
        "--out", "-o",
        help="Output CSV (appended to, created with header if missing)",
    ),
    rate: float = typer.Option(
        settings.classify_rate_per_second,
        "--rate",
        help="Maximum OpenAI calls per second",
    ),
    skip_processed: bool = typer.Option(
        settings.skip_already_processed,
        "--skip-processed/--no-skip-processed",
        help="Skip addresses already present in the output",
    ),
    min_length: int = typer.Option(
        settings.min_code_length,
        "--min-length",
        help="Code of this length or shorter is recorded as TOO_SHORT",
    ),
    model: str = typer.Option(
        settings.openai_model,
        "--model",
        help="Chat model used for classification",
    ),
    max_retries: Optional[int] = typer.Option(
        settings.max_retries,
        "--max-retries",
        help="Give up on a record after this many attempts (default: retry forever)",
        min=1,
    ),
) -> None:
    """Score how artistic each contract's code is (1-3) with a language model."""
    if not settings.openai_api_key:
        console.print("[red]Error: OPENAI_API_KEY environment variable is required")
        raise typer.Exit(1)
    
    config = _build_config(Stage.CLASSIFY, input_file, output, rate, skip_processed, min_length)
    
    async def go() -> ProgressTracker:
        client = AsyncOpenAI(
            api_key=settings.openai_api_key,
            timeout=settings.http_timeout,
            max_retries=0,
        )
        try:
            adapter = ArtisticClassifier(
                client,
                model=model,
                retry_policy=_retry_policy(max_retries),
            )
            return await run_pipeline(config, adapter)
        finally:
            await client.close()
    
    _run(go(), output)


@app.command()
def info(
    input_file: str = typer.Argument(..., help="Input or output CSV to analyze"),
) -> None:
    """Display row counts for a dataset."""
    try:
        summary = describe_dataset(input_file)
    except EnricherError as e:
        console.print(f"[red]Error: {e}")
        raise typer.Exit(1)
    
    table = Table(title=f"File Analysis: {input_file}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    
    table.add_row("Rows", str(summary["rows"]))
    table.add_row("Columns", ", ".join(summary["columns"]))
    if "non_erc20" in summary:
        table.add_row("Non-ERC20", str(summary["non_erc20"]))
    if "erc721" in summary:
        table.add_row("ERC721", str(summary["erc721"]))
    if "with_code" in summary:
        table.add_row("With code", str(summary["with_code"]))
    
    console.print(table)


@app.command()
def cache(
    action: str = typer.Argument(..., help="Cache action: 'stats', 'clear'"),
) -> None:
    """Manage the source lookup cache."""
    if action == "stats":
        stats = cache_stats()
        
        table = Table(title="Cache Statistics")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")
        
        table.add_row("Cache entries", str(stats["size"]))
        table.add_row("Cache volume", f"{stats['volume'] / 1024 / 1024:.1f} MB")
        table.add_row("Cache directory", settings.cache_dir)
        
        console.print(table)
        
    elif action == "clear":
        if typer.confirm("Are you sure you want to clear the cache?"):
            clear_cache()
            console.print("[green]✅ Cache cleared successfully")
        else:
            console.print("Cancelled.")
    else:
        console.print(f"[red]Error: Unknown cache action '{action}'")
        console.print("Available actions: stats, clear")
        raise typer.Exit(1)


@app.command()
def config() -> None:
    """Display current configuration."""
    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    
    # Show key settings (mask sensitive values)
    table.add_row(
        "Etherscan API Key",
        "***" + settings.etherscan_api_key[-4:] if settings.etherscan_api_key else "[red]Not set",
    )
    table.add_row(
        "OpenAI API Key",
        "***" + settings.openai_api_key[-4:] if settings.openai_api_key else "[red]Not set",
    )
    
    table.add_row("OpenAI Model", settings.openai_model)
    table.add_row("Fetch Rate", f"{settings.fetch_rate_per_second:g}/s")
    table.add_row("Classify Rate", f"{settings.classify_rate_per_second:g}/s")
    table.add_row("Min Code Length", str(settings.min_code_length))
    table.add_row("Skip Processed", str(settings.skip_already_processed))
    table.add_row(
        "Backoff (throttle/status/network)",
        f"{settings.throttle_backoff_seconds:g}s / {settings.status_backoff_seconds:g}s / "
        f"{settings.network_backoff_seconds:g}s",
    )
    table.add_row("Max Retries", str(settings.max_retries) if settings.max_retries else "unbounded")
    table.add_row("Cache Directory", settings.cache_dir)
    table.add_row("Cache TTL", f"{settings.cache_ttl_days} days")
    table.add_row("HTTP Timeout", f"{settings.http_timeout}s")
    table.add_row("Log Level", settings.log_level)
    
    console.print(table)


if __name__ == "__main__":
    app()
