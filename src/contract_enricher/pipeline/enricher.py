"""Main enrichment pipeline orchestrator."""

from typing import Any, Callable, Optional, Sequence

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeRemainingColumn

from ..config import PipelineConfig, Stage
from ..errors import ConfigurationError, PersistenceError
from ..fetchers.base import Outcome, OutcomeKind, ServiceAdapter
from ..logging_config import get_logger
from .batch import ProgressTracker, load_records
from .ledger import ProgressLedger
from .rate_limiter import RateLimiter
from .records import EnrichmentResult, InputRecord, SkipReason, output_columns
from .sink import CsvSink

logger = get_logger(__name__)
console = Console()


class EnrichmentDriver:
    """
    Walks the input one record at a time and writes one row per record.

    For each record, in order:

    1. keys already in the ledger are skipped without output;
    2. (classify) content at or below the minimum length gets a TOO_SHORT row;
    3. (classify) content already seen this run gets a row naming the first key;
    4. otherwise the service is called through the rate limiter and the
       result is appended.

    A record's row is durably appended before the next record starts.
    """

    def __init__(
        self,
        stage: Stage,
        adapter: ServiceAdapter,
        rate_limiter: RateLimiter,
        sink: CsvSink,
        ledger: ProgressLedger,
        minimum_content_length: int = 20,
        tracker: Optional[ProgressTracker] = None,
        on_record: Optional[Callable[[], Any]] = None,
    ):
        self.stage = stage
        self.adapter = adapter
        self.rate_limiter = rate_limiter
        self.sink = sink
        self.ledger = ledger
        self.minimum_content_length = minimum_content_length
        self.tracker = tracker
        self.on_record = on_record

    @property
    def content_is_input(self) -> bool:
        return self.stage is Stage.CLASSIFY

    async def run(self, records: Sequence[InputRecord]) -> ProgressTracker:
        """Process every record and return the run's counters."""
        if self.tracker is None:
            self.tracker = ProgressTracker(len(records), report_every=50)

        for record in records:
            status = await self.process_record(record)
            self.tracker.update(status)
            if self.on_record is not None:
                self.on_record()

        self.tracker.final_report()
        return self.tracker

    async def process_record(self, record: InputRecord) -> str:
        """Handle one record. Returns the status it was counted under."""
        key = record.key

        if self.ledger.is_processed(key):
            logger.debug(f"[SKIP-ADDR] already processed address: {key}")
            return "skipped_processed"

        if self.content_is_input:
            content = record.content
            if len(content) <= self.minimum_content_length:
                logger.info(f"[SKIP-SHORT] code is too short: {key} (length={len(content)})")
                self._write(EnrichmentResult.placeholder(record, SkipReason.TOO_SHORT))
                self.ledger.mark_processed(key)
                return "skipped_short"

            original = self.ledger.original_for(content)
            if original is not None:
                logger.info(f"[SKIP-CODE] duplicate code: {key} (original={original})")
                self._write(
                    EnrichmentResult.placeholder(record, SkipReason.DUPLICATE, duplicate_of=original)
                )
                self.ledger.mark_processed(key)
                return "skipped_duplicate"

        outcome = await self._call_service(record)
        result, status = self._result_for(record, outcome)
        self._write(result)

        if outcome.kind is OutcomeKind.FAILURE:
            self.ledger.mark_processed(key)
        else:
            self.ledger.mark_processed(key, record.content if self.content_is_input else None)
        return status

    async def _call_service(self, record: InputRecord) -> Outcome:
        payload = record.content if self.content_is_input else record.key
        logger.info(f"[processing] address: {record.key}")

        async with self.rate_limiter:
            try:
                return await self.adapter.invoke(payload)
            except (ConfigurationError, PersistenceError):
                # Fatal for the whole run; the record stays unprocessed
                raise
            except Exception as e:
                logger.exception(f"Error enriching {record.key}")
                return Outcome.failure(f"unexpected error: {e}")

    def _result_for(self, record: InputRecord, outcome: Outcome) -> tuple[EnrichmentResult, str]:
        if outcome.kind is OutcomeKind.FAILURE:
            logger.error(f"[FAILED] {record.key}: {outcome.reason}")
            return EnrichmentResult.placeholder(record, SkipReason.FAILED), "failed"

        if outcome.kind is OutcomeKind.EMPTY:
            logger.info(f"[NG] No result for {record.key}: {outcome.reason}")
            return EnrichmentResult.placeholder(record, SkipReason.NONE), "empty"

        if self.content_is_input:
            result = EnrichmentResult(
                key=record.key,
                block_number=record.block_number,
                flags=record.flags,
                content=record.content,
                annotation=outcome.value,
            )
        else:
            result = EnrichmentResult(
                key=record.key,
                block_number=record.block_number,
                flags=record.flags,
                content=outcome.value or "",
            )
        logger.info(f"[OK] Saved: {record.key}")
        return result, "enriched"

    def _write(self, result: EnrichmentResult) -> None:
        self.sink.append(result.to_row(self.stage))


async def run_pipeline(
    config: PipelineConfig,
    adapter: ServiceAdapter,
    rate_limiter: Optional[RateLimiter] = None,
    show_progress: bool = True,
) -> ProgressTracker:
    """
    Run one stage end to end.

    Everything that can fail for the whole run (rate, input layout, prior
    output, output destination) is checked before the first record.

    Args:
        config: Run configuration
        adapter: Service adapter for the stage
        rate_limiter: Limiter to use; built from `config.rate_per_second` if omitted
        show_progress: Display a rich progress bar

    Returns:
        Counters for the run
    """
    if rate_limiter is None:
        rate_limiter = RateLimiter(config.rate_per_second, name=adapter.name)

    records = load_records(config.input_path, config.stage)
    ledger = ProgressLedger.from_output(config.output_path, resume=config.skip_already_processed)
    tracker = ProgressTracker(len(records), report_every=50)

    if show_progress:
        console.print(f"[blue]Starting {config.stage.value} of {len(records)} records...")
        console.print(
            f"[blue]Rate: {config.rate_per_second:g}/s, "
            f"already processed: {len(ledger)}"
        )

    with CsvSink(config.output_path, output_columns(config.stage)) as sink:
        driver = EnrichmentDriver(
            stage=config.stage,
            adapter=adapter,
            rate_limiter=rate_limiter,
            sink=sink,
            ledger=ledger,
            minimum_content_length=config.minimum_content_length,
            tracker=tracker,
        )

        if not show_progress:
            return await driver.run(records)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.1f}%"),
            TimeRemainingColumn(),
            console=console,
        ) as progress:
            task = progress.add_task(f"Running {config.stage.value}...", total=len(records))
            driver.on_record = lambda: progress.update(task, advance=1)
            return await driver.run(records)
