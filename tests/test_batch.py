"""
End-to-end batch tests against in-memory store and notifier fakes.
Covers ordering, backpressure across rows, rerun idempotency and row-level skips.
"""
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from memory.airtable_store import StoredRecord
from orchestrator.batch import BatchOrchestrator
from orchestrator.dispatch import RoundDispatcher
from orchestrator.models import AlreadyProcessed, InputRow, Queued, Sent, Skipped
from outputs.mailersend_notifier import SendResult

IST = ZoneInfo("Asia/Kolkata")
RUN_NOW = datetime(2025, 11, 10, 12, 0, tzinfo=IST)
SEND_CLOCK = datetime(2025, 11, 10, 6, 30, tzinfo=timezone.utc)


class FakeStore:
    """Outcome table held in a dict keyed by record id."""

    def __init__(self):
        self.records = {}
        self.creates = 0
        self.updates = 0

    def find_by_key(self, key):
        for record_id, fields in self.records.items():
            if fields.get("idempotency_key") == key:
                return StoredRecord(id=record_id, fields=fields)
        return None

    def create(self, fields):
        self.creates += 1
        record_id = f"rec{len(self.records) + 1:03d}"
        self.records[record_id] = dict(fields)
        return record_id

    def update(self, record_id, fields):
        self.updates += 1
        self.records[record_id] = dict(fields)


class FakeNotifier:
    """Accepts sends until `quota` is reached, then answers like a 429."""

    def __init__(self, quota=None):
        self.quota = quota
        self.sent = []

    def send(self, email):
        if self.quota is not None and len(self.sent) >= self.quota:
            return SendResult.quota()
        self.sent.append(email)
        return SendResult.ok()


def csv_row(index, **overrides):
    raw = {
        "Company": "Acme",
        "Interviewer": "Sam",
        "Interviewer Email": "sam@acme.com",
        "Candidate": "Jo",
        "Candidate Email": "jo@x.com",
        "Scheduling method": "Round1: https://calendly.com/a\nRound2: https://calendly.com/b",
        "Added On": "03 Nov 6:15",
    }
    raw.update(overrides)
    return index, raw


def make_batch(store, notifier, force_send=False, results=None):
    dispatcher = RoundDispatcher(store, notifier, clock=lambda: SEND_CLOCK)
    return BatchOrchestrator(
        dispatcher,
        timezone_name="Asia/Kolkata",
        force_send=force_send,
        on_result=results.append if results is not None else None,
        now=lambda: RUN_NOW,
    )


@pytest.fixture
def store():
    return FakeStore()


# -------------------------------------------------------
# Happy path
# -------------------------------------------------------

def test_two_rounds_sent_with_distinct_keys(store):
    notifier = FakeNotifier()
    summary = make_batch(store, notifier).run([csv_row(0)])

    assert summary.total_units == 2
    assert summary.sent == 2
    assert summary.persist_failures == 0
    assert [e.round_name for e in notifier.sent] == ["Round 1", "Round 2"]
    assert [e.round_link for e in notifier.sent] == ["https://calendly.com/a", "https://calendly.com/b"]

    keys = {fields["idempotency_key"] for fields in store.records.values()}
    assert len(keys) == 2
    for fields in store.records.values():
        assert fields["mail_status"] == "sent"
        assert fields["processed"] is True
        assert fields["tat_seconds"] >= 0


def test_tat_measured_from_added_on(store):
    summary = make_batch(store, FakeNotifier()).run([csv_row(0)])
    # 03 Nov 06:15 IST -> 10 Nov 06:30 UTC
    expected = 7 * 86400 + 5 * 3600 + 45 * 60
    assert summary.tat_values == [expected, expected]
    assert summary.average_tat == expected


def test_invalid_email_skips_every_round(store):
    notifier = FakeNotifier()
    summary = make_batch(store, notifier).run([csv_row(0, **{"Candidate Email": "not-an-email"})])

    assert summary.skipped == 2
    assert summary.sent == 0
    assert notifier.sent == []
    assert len(store.records) == 2
    assert {f["failure_reason"] for f in store.records.values()} == {"invalid_email"}
    assert summary.average_tat is None


def test_results_reported_in_order(store):
    results = []
    make_batch(store, FakeNotifier(), results=results).run([
        csv_row(0),
        csv_row(1, Candidate="Ann", **{"Candidate Email": "ann@x.com", "Scheduling method": "R1: https://cal.com/z"}),
    ])
    assert [(r.row_index, r.round_unit.round_name) for r in results] == [
        (0, "Round 1"), (0, "Round 2"), (1, "Round 1"),
    ]


def test_accepts_prebuilt_input_rows(store):
    row = InputRow(
        index=0, company="Acme", interviewer="Sam", interviewer_email="sam@acme.com",
        candidate="Jo", candidate_email="jo@x.com", added_on_raw="03 Nov 6:15",
        scheduling_method="https://forms.gle/abc",
    )
    summary = make_batch(store, FakeNotifier()).run([row])
    assert summary.sent == 1


# -------------------------------------------------------
# Backpressure
# -------------------------------------------------------

def test_quota_exhaustion_queues_rest_of_batch(store):
    notifier = FakeNotifier(quota=1)
    results = []
    summary = make_batch(store, notifier, results=results).run([
        csv_row(0),
        csv_row(1, Candidate="Ann", **{"Candidate Email": "ann@x.com"}),
    ])

    assert summary.sent == 1
    assert summary.queued == 3
    assert isinstance(results[0].outcome, Sent)
    assert all(isinstance(r.outcome, Queued) for r in results[1:])
    # Rounds after the 429 never reach the notifier
    assert len(notifier.sent) == 1
    assert len(store.records) == 4


def test_skips_still_apply_after_backpressure(store):
    notifier = FakeNotifier(quota=0)
    summary = make_batch(store, notifier).run([
        csv_row(0, **{"Scheduling method": "R1: https://calendly.com/a"}),
        csv_row(1, **{"Candidate Email": "broken"}),
    ])
    assert summary.queued == 1
    assert summary.skipped == 2


# -------------------------------------------------------
# Idempotency
# -------------------------------------------------------

def test_rerun_sends_nothing_new(store):
    rows = [csv_row(0)]
    make_batch(store, FakeNotifier()).run(rows)

    notifier = FakeNotifier()
    summary = make_batch(store, notifier).run(rows)

    assert notifier.sent == []
    assert summary.already_processed == 2
    assert summary.sent == 0
    assert summary.persist_failures == 0
    assert store.creates == 2
    assert store.updates == 0


def test_rerun_leaves_queued_rounds_alone(store):
    rows = [csv_row(0)]
    make_batch(store, FakeNotifier(quota=0)).run(rows)

    notifier = FakeNotifier()
    results = []
    make_batch(store, notifier, results=results).run(rows)

    assert notifier.sent == []
    assert all(isinstance(r.outcome, AlreadyProcessed) for r in results)


def test_force_send_updates_in_place(store):
    rows = [csv_row(0)]
    make_batch(store, FakeNotifier()).run(rows)

    notifier = FakeNotifier()
    summary = make_batch(store, notifier, force_send=True).run(rows)

    assert summary.sent == 2
    assert len(notifier.sent) == 2
    assert store.creates == 2
    assert store.updates == 2
    assert len(store.records) == 2


def test_duplicate_round_in_one_row_sent_once(store):
    notifier = FakeNotifier()
    summary = make_batch(store, notifier).run([
        csv_row(0, **{"Scheduling method": "Round 1: https://calendly.com/a\nR1: https://calendly.com/b"}),
    ])
    assert summary.total_units == 1
    assert len(notifier.sent) == 1


def test_identical_rows_at_different_positions_are_distinct(store):
    notifier = FakeNotifier()
    summary = make_batch(store, notifier).run([csv_row(0), csv_row(1)])
    assert summary.sent == 4
    assert len(store.records) == 4


# -------------------------------------------------------
# Row-level skips
# -------------------------------------------------------

def test_missing_required_field_skips_row(store):
    notifier = FakeNotifier()
    summary = make_batch(store, notifier).run([
        csv_row(0, Company=""),
        csv_row(1),
    ])
    assert summary.rows_skipped == 1
    assert summary.sent == 2


def test_unparseable_added_on_skips_row(store):
    summary = make_batch(store, FakeNotifier()).run([csv_row(0, **{"Added On": "TBD"})])
    assert summary.rows_skipped == 1
    assert summary.total_units == 0
    assert store.records == {}


def test_blank_scheduling_method_skips_row(store):
    summary = make_batch(store, FakeNotifier()).run([csv_row(0, **{"Scheduling method": "  "})])
    assert summary.rows_skipped == 1
    assert store.records == {}


def test_label_without_link_is_recorded(store):
    results = []
    make_batch(store, FakeNotifier(), results=results).run([
        csv_row(0, **{"Scheduling method": "Round 1: https://calendly.com/a\nRound 2"}),
    ])
    assert isinstance(results[0].outcome, Sent)
    assert results[1].outcome == Skipped("no_scheduling_link")


# -------------------------------------------------------
# Write failures
# -------------------------------------------------------

class FlakyStore(FakeStore):
    def create(self, fields):
        raise RuntimeError("Airtable API error (500)")


def test_write_failures_do_not_abort_batch():
    store = FlakyStore()
    notifier = FakeNotifier()
    results = []
    summary = make_batch(store, notifier, results=results).run([csv_row(0)])

    assert summary.sent == 2
    assert summary.persist_failures == 2
    assert all(not r.persisted for r in results)


class ExplodingNotifier(FakeNotifier):
    def send(self, email):
        if email.round_name == "Round 1":
            raise RuntimeError("unexpected notifier bug")
        return super().send(email)


def test_notifier_exception_does_not_abort_batch(store):
    notifier = ExplodingNotifier()
    summary = make_batch(store, notifier).run([csv_row(0)])

    assert summary.failed == 1
    assert summary.sent == 1
    assert [e.round_name for e in notifier.sent] == ["Round 2"]
