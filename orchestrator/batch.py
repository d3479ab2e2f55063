"""
Interview Dispatch: Batch Orchestrator
Flow per row: validate -> parse Added On -> split rounds -> dispatch each round.

Rows and rounds are processed strictly in order. The quota flag on the
per-run BatchContext must be visible to every later round, and a repeated
idempotency key must see the earlier write. Row-level problems are logged
and the row is skipped; nothing here raises for a single bad row or round.
"""
import logging
from datetime import datetime
from typing import Callable, Iterable, Mapping, Optional, Tuple, Union

from orchestrator.dispatch import RoundDispatcher
from orchestrator.identity import parse_added_on
from orchestrator.models import BatchContext, BatchSummary, InputRow, RowValidationError, UnitResult
from orchestrator.round_splitter import split_rounds

logger = logging.getLogger("dispatch.batch")

# A source may yield ready InputRows or (index, raw mapping) pairs
RowLike = Union[InputRow, Tuple[int, Mapping[str, Optional[str]]]]


class BatchOrchestrator:
    """One instance per run; owns the summary and the backpressure context."""

    def __init__(self, dispatcher: RoundDispatcher, timezone_name: str = "Asia/Kolkata",
                 force_send: bool = False,
                 on_result: Optional[Callable[[UnitResult], None]] = None,
                 now: Optional[Callable[[], datetime]] = None):
        self.dispatcher = dispatcher
        self.timezone_name = timezone_name
        self.context = BatchContext(force_send=force_send)
        self.summary = BatchSummary()
        self.on_result = on_result
        self._now = now

    def run(self, rows: Iterable[RowLike]) -> BatchSummary:
        for item in rows:
            self.process_row(item)

        average = self.summary.average_tat
        logger.info(
            f"Batch complete: {self.summary.total_units} rounds, {self.summary.sent} sent, "
            f"{self.summary.failed} failed, {self.summary.skipped} skipped, "
            f"{self.summary.queued} queued, {self.summary.already_processed} already processed"
            + (f", average TAT {average:.0f}s" if average is not None else "")
        )
        return self.summary

    def process_row(self, item: RowLike) -> list:
        """Run one source row through the pipeline. Returns its unit results."""
        try:
            row = item if isinstance(item, InputRow) else InputRow.from_mapping(item[1], item[0])
        except RowValidationError as e:
            logger.warning(f"Row {e.index + 1}: {e}")
            self.summary.rows_skipped += 1
            return []

        now = self._now() if self._now else None
        added_on = parse_added_on(row.added_on_raw, self.timezone_name, now=now)
        if added_on is None:
            logger.warning(f'Row {row.index + 1}: Could not parse "Added On" date: {row.added_on_raw}')
            self.summary.rows_skipped += 1
            return []

        rounds = split_rounds(row.scheduling_method)
        if not rounds:
            logger.warning(f"Row {row.index + 1}: No rounds detected for {row.candidate}")
            self.summary.rows_skipped += 1
            return []

        logger.info(f"Processing {row.candidate} at {row.company} ({len(rounds)} rounds)")

        results = []
        for round_unit in rounds:
            result = self.dispatcher.dispatch(row, added_on, round_unit, self.context)
            self.summary.record(result)
            results.append(result)
            if self.on_result:
                self.on_result(result)
        return results
