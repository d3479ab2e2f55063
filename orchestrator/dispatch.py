"""
Interview Dispatch: Round Dispatch State Machine
Decides, for one round unit, whether to skip, send, queue or fail, and
writes the outcome to the store.

Checks run in a fixed order, first match wins:
  a. record already exists for the key (and not force-send) -> nothing written
  b. invalid candidate email      -> skipped / invalid_email
  c. round has no link            -> skipped / no_scheduling_link
  d. link fails validation        -> skipped / invalid_url
  e. backpressure engaged         -> queued  / quota_exhausted
  f. send: ok -> sent, 429 -> queued + engage backpressure, else -> failed
Every branch but (a) does exactly one create-or-update. Store write errors
are logged and never abort the batch.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from orchestrator.identity import (
    DEFAULT_ALLOWED_DOMAINS,
    calculate_tat,
    create_source_identifier,
    generate_idempotency_key,
    is_in_future,
    is_valid_email,
    validate_url,
)
from orchestrator.models import (
    REASON_ADDED_ON_IN_FUTURE,
    REASON_INVALID_EMAIL,
    REASON_INVALID_URL,
    REASON_LOOKUP_FAILED,
    REASON_NO_LINK,
    REASON_QUOTA_EXHAUSTED,
    AlreadyProcessed,
    BatchContext,
    DispatchOutcomeRecord,
    Failed,
    InputRow,
    Queued,
    RoundUnit,
    Sent,
    Skipped,
    UnitResult,
)
from outputs.mailersend_notifier import InvitationEmail

logger = logging.getLogger("dispatch.round")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RoundDispatcher:
    """
    Runs the per-round state machine against an outcome store and a notifier.

    store:    find_by_key(key) -> record with .id or None; create(fields) -> id; update(id, fields)
    notifier: send(InvitationEmail) -> SendResult
    """

    def __init__(self, store, notifier, allowed_domains: Iterable[str] = DEFAULT_ALLOWED_DOMAINS,
                 clock: Callable[[], datetime] = _utc_now):
        self.store = store
        self.notifier = notifier
        self.allowed_domains = tuple(allowed_domains)
        self.clock = clock

    def dispatch(self, row: InputRow, added_on: datetime, round_unit: RoundUnit,
                 context: BatchContext) -> UnitResult:
        key = generate_idempotency_key(
            create_source_identifier(row), round_unit.round_name, row.candidate_email,
        )
        result = UnitResult(
            row_index=row.index,
            candidate=row.candidate,
            round_unit=round_unit,
            idempotency_key=key,
            outcome=None,
        )

        # --- a. Already processed ---
        try:
            existing = self.store.find_by_key(key)
        except Exception as e:
            # Create vs update is unknown, so nothing is sent or written
            logger.error(f"Row {row.index + 1} {round_unit.round_name}: store lookup failed: {e}")
            result.outcome = Failed(f"{REASON_LOOKUP_FAILED}: {e}")
            return result

        record_id = existing.id if existing else None
        if existing and not context.force_send:
            result.outcome = AlreadyProcessed(record_id)
            result.record_id = record_id
            return result

        result.outcome = self._decide(row, added_on, round_unit, key, context, result)

        record = DispatchOutcomeRecord(
            row=row,
            added_on=added_on,
            round_unit=round_unit,
            outcome=result.outcome,
            idempotency_key=key,
        )
        result.record_id, result.persisted = self._write(record_id, record)
        return result

    # -------------------------------------------------------
    # Decision (b-f)
    # -------------------------------------------------------

    def _decide(self, row: InputRow, added_on: datetime, round_unit: RoundUnit, key: str,
                context: BatchContext, result: UnitResult):
        if not is_valid_email(row.candidate_email):
            logger.info(f"{round_unit.round_name}: invalid email {row.candidate_email!r}")
            return Skipped(REASON_INVALID_EMAIL)

        link = round_unit.round_link
        if not link:
            logger.info(f"{round_unit.round_name}: no scheduling link provided")
            return Skipped(REASON_NO_LINK)

        check = validate_url(link, self.allowed_domains)
        if not check.valid:
            logger.info(f"{round_unit.round_name}: invalid URL {link!r}")
            return Skipped(REASON_INVALID_URL)
        if check.unverified_domain:
            # Still sent; flagged on the result only
            logger.info(f"{round_unit.round_name}: URL domain not in allowlist: {link}")
            result.unverified_domain = True

        if context.quota_exhausted:
            return Queued(REASON_QUOTA_EXHAUSTED)

        try:
            send_result = self.notifier.send(InvitationEmail(
                to=row.candidate_email.strip(),
                candidate_name=row.candidate,
                company=row.company,
                interviewer=row.interviewer,
                round_name=round_unit.round_name,
                round_link=link,
                idempotency_key=key,
            ))
        except Exception as e:
            logger.error(f"{round_unit.round_name}: notifier raised: {e}")
            return Failed(str(e))
        mail_sent_at = self.clock()

        if send_result.success:
            if is_in_future(added_on, now=mail_sent_at):
                result.future_dated = True
                return Sent(sent_at=mail_sent_at, tat_seconds=0, note=REASON_ADDED_ON_IN_FUTURE)
            return Sent(sent_at=mail_sent_at, tat_seconds=calculate_tat(mail_sent_at, added_on))

        if send_result.quota_exhausted:
            logger.warning("Sending quota exhausted - queueing every remaining round in this run")
            context.engage_backpressure()
            return Queued(REASON_QUOTA_EXHAUSTED)

        return Failed(send_result.error or "unknown send failure")

    # -------------------------------------------------------
    # Persistence
    # -------------------------------------------------------

    def _write(self, record_id: Optional[str], record: DispatchOutcomeRecord):
        """Create or update. Returns (record_id, persisted)."""
        fields = record.to_fields()
        try:
            if record_id:
                self.store.update(record_id, fields)
                return record_id, True
            return self.store.create(fields), True
        except Exception as e:
            logger.error(f"Airtable write failed for {record.round_unit.round_name} "
                         f"(key {record.idempotency_key[:12]}): {e}")
            return record_id, False
