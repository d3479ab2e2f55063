"""
Interview Dispatch: Data models
Typed input rows, round units, per-unit outcomes and the batch summary.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Mapping, Optional, Union


# ============================================================
# Failure reasons persisted in the failure_reason field
# ============================================================

REASON_INVALID_EMAIL = "invalid_email"
REASON_NO_LINK = "no_scheduling_link"
REASON_INVALID_URL = "invalid_url"
REASON_QUOTA_EXHAUSTED = "quota_exhausted"
REASON_ADDED_ON_IN_FUTURE = "added_on_in_future"
REASON_LOOKUP_FAILED = "store_lookup_failed"

# CSV header -> InputRow attribute
COLUMN_MAP = {
    "Company": "company",
    "Interviewer": "interviewer",
    "Interviewer Email": "interviewer_email",
    "Candidate": "candidate",
    "Candidate Email": "candidate_email",
    "Scheduling method": "scheduling_method",
    "Added On": "added_on_raw",
}

REQUIRED_COLUMNS = (
    "Company",
    "Interviewer",
    "Interviewer Email",
    "Candidate",
    "Candidate Email",
    "Added On",
)


class RowValidationError(ValueError):
    """A source row is missing required fields and cannot be processed."""

    def __init__(self, index: int, missing: list):
        self.index = index
        self.missing = list(missing)
        super().__init__(f"Missing required field: {', '.join(self.missing)}")


# ============================================================
# Input
# ============================================================

@dataclass(frozen=True)
class InputRow:
    """One source record. `index` is the 0-based position in the input."""
    index: int
    company: str
    interviewer: str
    interviewer_email: str
    candidate: str
    candidate_email: str
    added_on_raw: str
    scheduling_method: str = ""

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Optional[str]], index: int) -> "InputRow":
        """Build a row from a header -> value mapping.

        Header lookup ignores case and surrounding whitespace. Raises
        RowValidationError when any required column is absent or blank.
        """
        by_key = {}
        for key, value in mapping.items():
            if key is None:
                continue  # overflow cells from ragged CSV rows
            by_key[key.strip().lower()] = (value or "").strip()

        values = {}
        missing = []
        for column, attr in COLUMN_MAP.items():
            value = by_key.get(column.lower(), "")
            if column in REQUIRED_COLUMNS and not value:
                missing.append(column)
            values[attr] = value

        if missing:
            raise RowValidationError(index, missing)
        return cls(index=index, **values)


@dataclass(frozen=True)
class RoundUnit:
    """One interview round derived from a row's scheduling text."""
    round_name: str
    round_link: Optional[str] = None


# ============================================================
# Outcomes (closed set)
# ============================================================

@dataclass(frozen=True)
class Sent:
    sent_at: datetime
    tat_seconds: int
    # Data-quality annotation, e.g. added_on_in_future; the send itself succeeded
    note: Optional[str] = None
    status = "sent"


@dataclass(frozen=True)
class Failed:
    reason: str
    status = "failed"


@dataclass(frozen=True)
class Queued:
    reason: str = REASON_QUOTA_EXHAUSTED
    status = "queued"


@dataclass(frozen=True)
class Skipped:
    reason: str
    status = "skipped"


Outcome = Union[Sent, Failed, Queued, Skipped]


@dataclass(frozen=True)
class AlreadyProcessed:
    """A record already exists for the key; nothing is written."""
    record_id: str
    status = "already_processed"


def _iso_utc(value: datetime) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2025-11-03T00:45:00.000Z."""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class DispatchOutcomeRecord:
    """Persisted representation of one round unit's processing result."""
    row: InputRow
    added_on: datetime
    round_unit: RoundUnit
    outcome: Outcome
    idempotency_key: str

    @property
    def processed(self) -> bool:
        return isinstance(self.outcome, Sent)

    @property
    def failure_reason(self) -> Optional[str]:
        if isinstance(self.outcome, Sent):
            return self.outcome.note
        return self.outcome.reason

    def to_fields(self) -> dict:
        """Field payload for the outcome store.

        Optional fields are sent as null so an update clears stale values.
        """
        outcome = self.outcome
        sent = isinstance(outcome, Sent)
        return {
            "company": self.row.company,
            "interviewer": self.row.interviewer,
            "interviewer_email": self.row.interviewer_email,
            "candidate": self.row.candidate,
            "candidate_email": self.row.candidate_email,
            "round_name": self.round_unit.round_name,
            "round_link": self.round_unit.round_link,
            "added_on_raw": self.row.added_on_raw,
            "added_on_parsed": _iso_utc(self.added_on),
            "mail_sent_at": _iso_utc(outcome.sent_at) if sent else None,
            "mail_status": outcome.status,
            "failure_reason": self.failure_reason,
            "tat_seconds": outcome.tat_seconds if sent else None,
            "processed": self.processed,
            "idempotency_key": self.idempotency_key,
        }


@dataclass
class UnitResult:
    """What happened to one round unit during this run."""
    row_index: int
    candidate: str
    round_unit: RoundUnit
    idempotency_key: str
    outcome: Union[Outcome, AlreadyProcessed]
    persisted: bool = False
    record_id: Optional[str] = None
    unverified_domain: bool = False
    # Sent with a future-dated added-on: excluded from the TAT average
    future_dated: bool = False


# ============================================================
# Batch state
# ============================================================

@dataclass
class BatchContext:
    """Mutable per-run state shared by every unit in one batch."""
    force_send: bool = False
    quota_exhausted: bool = False

    def engage_backpressure(self):
        self.quota_exhausted = True


@dataclass
class BatchSummary:
    """Aggregate counters for one run. Not persisted."""
    total_units: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    queued: int = 0
    already_processed: int = 0
    rows_skipped: int = 0
    persist_failures: int = 0
    tat_values: list = field(default_factory=list)
    results: list = field(default_factory=list)

    @property
    def average_tat(self) -> Optional[float]:
        if not self.tat_values:
            return None
        return sum(self.tat_values) / len(self.tat_values)

    def record(self, result: UnitResult):
        self.results.append(result)
        self.total_units += 1

        outcome = result.outcome
        if isinstance(outcome, AlreadyProcessed):
            self.already_processed += 1
        elif isinstance(outcome, Sent):
            self.sent += 1
            if not result.future_dated:
                self.tat_values.append(outcome.tat_seconds)
        elif isinstance(outcome, Failed):
            self.failed += 1
        elif isinstance(outcome, Queued):
            self.queued += 1
        elif isinstance(outcome, Skipped):
            self.skipped += 1

        if not isinstance(outcome, AlreadyProcessed) and not result.persisted:
            self.persist_failures += 1
