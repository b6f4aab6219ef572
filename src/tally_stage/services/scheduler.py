"""Background scheduler driving vote aggregation over the ledger.

This module provides the TallyScheduler class that repeatedly pulls pages
of uncounted votes from the vote ledger and folds them into tallies through
the aggregation transaction. It handles:

- Interval-driven runs with a per-run page cap and a resumable cursor
- Manual "drain everything now" requests
- Single-flight protection shared by every kind of run
- Enabling or disabling interval runs without restarting the timer
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Literal

from tally_stage.core.entry_kinds import EntryKind, parse_entry_kind
from tally_stage.core.settings import Settings, settings
from tally_stage.services.counting import CountSummary, VoteCounter
from tally_stage.services.errors import (
    AggregationInProgressError,
    TallyError,
    TallyValidationError,
)
from tally_stage.services.ledger import VoteLedger

# Configure logger for this module
logger = logging.getLogger(__name__)

# Failures that end a run without taking the scheduler down.
RUN_ERRORS = (TallyError, OSError, TimeoutError)

RunTrigger = Literal["interval", "manual", "batch"]


@dataclass
class SchedulerConfig:
    """Tunable knobs of the aggregation scheduler."""

    interval_ms: int = 60_000
    batch_size: int = 100
    max_pages_per_run: int = 10
    enabled: bool = True
    entry_kinds: tuple[EntryKind, ...] = (EntryKind.THREAD, EntryKind.SUBMISSION)
    batch_delay_ms: int = 0

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> SchedulerConfig:
        """Build a configuration from application settings."""
        source = source or settings
        return cls(
            interval_ms=source.tally_interval_ms,
            batch_size=source.tally_batch_size,
            max_pages_per_run=source.tally_max_pages_per_run,
            enabled=source.tally_enabled,
            entry_kinds=tuple(parse_entry_kind(kind) for kind in source.tally_entry_kinds),
            batch_delay_ms=source.tally_batch_delay_ms,
        )


@dataclass
class RunReport:
    """Progress of one aggregation run.

    ``completed`` is True when every queried slice of the ledger was drained;
    it stays False when a run stops at its page cap or on an error.
    """

    trigger: RunTrigger
    success: bool = True
    total_processed: int = 0
    pages_processed: int = 0
    completed: bool = False
    error: str | None = None


@dataclass
class SchedulerStatus:
    """Read-only snapshot of scheduler state and configuration."""

    enabled: bool
    running: bool
    busy: bool
    interval_ms: int
    batch_size: int
    max_pages_per_run: int
    entry_kinds: list[EntryKind] = field(default_factory=list)
    last_run: RunReport | None = None


class TallyScheduler:
    """Periodically drains the vote ledger into tallies.

    One instance is constructed per process and shared by the interval
    timer and the operator endpoints. Every run (interval, manual drain or
    direct batch) holds the same busy flag; a run requested while another
    is active is skipped (interval) or rejected (manual and batch).
    """

    def __init__(
        self,
        ledger: VoteLedger,
        counter: VoteCounter,
        config: SchedulerConfig | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            ledger: Source of uncounted votes.
            counter: Runner for the aggregation transaction.
            config: Optional configuration; defaults to application settings.
        """
        self.ledger = ledger
        self.counter = counter
        self.config = config or SchedulerConfig.from_settings()
        self.last_run: RunReport | None = None
        self._busy = False
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()
        # Resume points of interval runs that stopped at the page cap.
        self._bookmarks: dict[EntryKind, str] = {}

    @property
    def busy(self) -> bool:
        """Whether an aggregation run is in flight."""
        return self._busy

    @property
    def running(self) -> bool:
        """Whether the interval timer is active."""
        return self._task is not None and not self._task.done()

    @property
    def enabled(self) -> bool:
        """Whether interval-triggered runs are allowed."""
        return self.config.enabled

    def set_enabled(self, enabled: bool) -> bool:
        """Allow or suppress interval runs without touching the timer."""
        self.config.enabled = enabled
        logger.info("Vote aggregation %s", "enabled" if enabled else "disabled")
        return enabled

    def toggle(self) -> bool:
        """Flip the enabled flag and return its new value."""
        return self.set_enabled(not self.config.enabled)

    async def start(self) -> None:
        """Start the interval timer; the first run happens immediately if enabled."""
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())
            logger.info(
                "Vote aggregation timer started (interval=%dms, batch=%d, max_pages=%d)",
                self.config.interval_ms,
                self.config.batch_size,
                self.config.max_pages_per_run,
            )

    async def stop(self) -> None:
        """Stop the interval timer, letting an in-flight page finish."""
        if self._task is None:
            return

        self._stopping.set()
        await self._task
        self._task = None
        logger.info("Vote aggregation timer stopped")

    async def _run(self) -> None:
        while not self._stopping.is_set():
            if self.config.enabled:
                try:
                    await self.run_once()
                except (ValueError, TypeError, KeyError, AttributeError, ArithmeticError) as e:
                    logger.error(
                        "Vote aggregation timer encountered unexpected error: %s",
                        e,
                        exc_info=True,
                    )

            interval = max(0.001, self.config.interval_ms / 1000)
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except TimeoutError:
                continue

    async def run_once(self) -> RunReport | None:
        """Run one interval-style aggregation pass.

        Pages are drained per configured entry kind, starting from the saved
        bookmark, until the ledger is empty or ``max_pages_per_run`` pages
        were processed. Failures are logged and end the run; saved bookmarks
        are dropped so the next run re-queries from the start.

        Returns:
            The run report, or None when the run was skipped because the
            scheduler is disabled or busy.
        """
        if not self.config.enabled:
            logger.debug("Vote aggregation disabled; skipping interval run")
            return None
        if self._busy:
            logger.info("Vote aggregation already in progress; skipping interval run")
            return None

        self._busy = True
        report = RunReport(trigger="interval")
        try:
            drained = 0
            for kind in self.config.entry_kinds:
                remaining = self.config.max_pages_per_run - report.pages_processed
                if remaining <= 0:
                    break
                bookmark = await self._drain(
                    kind,
                    report,
                    bookmark=self._bookmarks.get(kind),
                    max_pages=remaining,
                )
                if bookmark is None:
                    self._bookmarks.pop(kind, None)
                    drained += 1
                else:
                    self._bookmarks[kind] = bookmark
            report.completed = drained == len(self.config.entry_kinds)
        except RUN_ERRORS as exc:
            logger.warning(
                "Vote aggregation run failed after %d pages: %s",
                report.pages_processed,
                exc,
                exc_info=True,
            )
            report.success = False
            report.error = str(exc)
            self._bookmarks.clear()
        finally:
            self._busy = False

        self.last_run = report
        logger.info(
            "Vote aggregation run finished: %d votes in %d pages (completed=%s)",
            report.total_processed,
            report.pages_processed,
            report.completed,
        )
        return report

    async def process_all(
        self,
        thread_id: str | None = None,
        entry_id: str | None = None,
        entry_kind: EntryKind | str | None = None,
    ) -> RunReport:
        """Drain every uncounted vote matching the filter, without a page cap.

        Args:
            thread_id: Optional thread filter.
            entry_id: Optional entry filter; requires ``thread_id``.
            entry_kind: Restrict the drain to one kind; defaults to all
                configured kinds.

        Returns:
            Report with the number of votes and pages processed. If a page
            after the first fails, the drain stops early and the report
            carries the error alongside the progress already committed.

        Raises:
            AggregationInProgressError: If another run is active.
            TallyError: If the very first page of the drain fails.
        """
        if self._busy:
            raise AggregationInProgressError()
        kinds = self._resolve_kinds(entry_kind)

        self._busy = True
        report = RunReport(trigger="manual")
        logger.info(
            "Starting manual vote drain (thread=%s, entry=%s)",
            thread_id or "all",
            entry_id or "all",
        )
        try:
            for kind in kinds:
                await self._drain(kind, report, thread_id=thread_id, entry_id=entry_id)
            report.completed = True
        except RUN_ERRORS as exc:
            if report.pages_processed == 0:
                logger.error("Manual vote drain failed on first page: %s", exc)
                self.last_run = RunReport(trigger="manual", success=False, error=str(exc))
                raise
            logger.warning(
                "Manual vote drain stopped after %d pages: %s", report.pages_processed, exc
            )
            report.error = str(exc)
        finally:
            self._busy = False

        self.last_run = report
        logger.info(
            "Manual vote drain finished: %d votes in %d pages",
            report.total_processed,
            report.pages_processed,
        )
        return report

    async def count_batch(
        self,
        vote_keys: Sequence[str],
        thread_id: str | None = None,
        entry_id: str | None = None,
    ) -> CountSummary:
        """Count an explicit list of votes under the single-flight guard.

        Raises:
            AggregationInProgressError: If another run is active.
            TallyError: If the aggregation transaction fails.
        """
        if self._busy:
            raise AggregationInProgressError()

        self._busy = True
        try:
            summary = await self.counter.count(vote_keys, thread_id=thread_id, entry_id=entry_id)
        except RUN_ERRORS as exc:
            self.last_run = RunReport(trigger="batch", success=False, error=str(exc))
            raise
        finally:
            self._busy = False

        self.last_run = RunReport(
            trigger="batch",
            total_processed=summary.counted,
            pages_processed=1,
            completed=True,
        )
        return summary

    def status(self) -> SchedulerStatus:
        """Return the current configuration and run state."""
        return SchedulerStatus(
            enabled=self.config.enabled,
            running=self.running,
            busy=self._busy,
            interval_ms=self.config.interval_ms,
            batch_size=self.config.batch_size,
            max_pages_per_run=self.config.max_pages_per_run,
            entry_kinds=list(self.config.entry_kinds),
            last_run=self.last_run,
        )

    def _resolve_kinds(self, entry_kind: EntryKind | str | None) -> Iterable[EntryKind]:
        if entry_kind is None:
            return self.config.entry_kinds
        try:
            return (parse_entry_kind(entry_kind),)
        except ValueError as exc:
            raise TallyValidationError(str(exc)) from exc

    async def _drain(
        self,
        kind: EntryKind,
        report: RunReport,
        *,
        thread_id: str | None = None,
        entry_id: str | None = None,
        bookmark: str | None = None,
        max_pages: int | None = None,
    ) -> str | None:
        """Process pages for one entry kind.

        Returns:
            The bookmark to resume from when ``max_pages`` was reached, or
            None once the matching votes are exhausted.
        """
        pages = 0
        while max_pages is None or pages < max_pages:
            page = await self.ledger.fetch_uncounted(
                kind,
                thread_id=thread_id,
                entry_id=entry_id,
                bookmark=bookmark,
                limit=self.config.batch_size,
            )
            if not page.items:
                logger.debug("No more uncounted %s votes", kind.value)
                return None

            await self.counter.count(
                [vote.key for vote in page.items], thread_id=thread_id, entry_id=entry_id
            )
            pages += 1
            report.pages_processed += 1
            report.total_processed += len(page.items)
            logger.debug(
                "Counted page %d of %s votes (%d votes, total %d)",
                report.pages_processed,
                kind.value,
                len(page.items),
                report.total_processed,
            )

            if page.next_bookmark is None:
                return None
            bookmark = page.next_bookmark

            if self.config.batch_delay_ms > 0 and (max_pages is None or pages < max_pages):
                await asyncio.sleep(self.config.batch_delay_ms / 1000)

        return bookmark
