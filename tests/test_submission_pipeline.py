from __future__ import annotations

import threading

from lead_intake.adapters.remote_store import LeadStore, SubmittedContactsStore
from lead_intake.adapters.storage import MemoryStorage
from lead_intake.orchestrator.graph import LeadSubmissionPipeline
from lead_intake.orchestrator.stages import ErrorKind
from lead_intake.schemas.tracking import TrackingData
from lead_intake.services.cache import KeyValueCache
from lead_intake.services.cooldown import CooldownTracker
from lead_intake.services.duplicate_guard import DuplicateGuard, LocalContactRepository
from lead_intake.services.lead import LeadService


class CountingDuplicateGuard(DuplicateGuard):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.check_calls = 0

    def check_duplicate(self, mobile, email, check_local=True, check_remote=True):
        self.check_calls += 1
        return super().check_duplicate(mobile, email, check_local=check_local, check_remote=check_remote)


class ExplodingLeadService(LeadService):
    def create_lead(self, payload):
        raise ValueError("unexpected payload")


def _build_pipeline(rest_store, clock, backend=None, lead_service_cls=LeadService, tracking=None):
    durable = KeyValueCache(backend or MemoryStorage(), prefix="d25_client-1_", clock=clock)
    guard = CountingDuplicateGuard(
        local=LocalContactRepository(durable, clock=clock),
        remote=SubmittedContactsStore(rest_store, clock=clock),
    )
    cooldown = CooldownTracker(durable, clock=clock)
    lead_service = lead_service_cls(lead_store=LeadStore(rest_store, clock=clock), clock=clock)
    pipeline = LeadSubmissionPipeline(
        lead_service=lead_service,
        duplicate_guard=guard,
        cooldown=cooldown,
        cooldown_minutes=5,
        tracking_source=tracking,
        utm_source=lambda: {"utm_source": "newsletter"},
        lock=threading.Lock(),
    )
    return pipeline, guard, cooldown


def _form(mobile="9876543210", email="a@b.com"):
    return {"name": "Asha Rao", "mobile": mobile, "email": email}


def test_end_to_end_scenario(rest_store, clock):
    pipeline, _, _ = _build_pipeline(rest_store, clock)

    first = pipeline.submit(_form())
    assert first.ok is True
    assert first.lead_id is not None

    second = pipeline.submit(_form())
    assert second.ok is False
    assert second.error_kind == ErrorKind.COOLDOWN
    assert 0 < second.remaining_seconds <= 300

    clock.advance(minutes=5, seconds=1)
    third = pipeline.submit(_form())
    assert third.ok is False
    assert third.error_kind == ErrorKind.DUPLICATE
    assert third.matched_fields == ["mobile", "email"]

    fourth = pipeline.submit(_form(mobile="9123456780", email="new@b.com"))
    assert fourth.ok is True
    assert len(rest_store.collections["leads"]) == 2
    assert len(rest_store.collections["submittedContacts"]) == 2


def test_cooldown_rejects_before_duplicate_check(rest_store, clock):
    pipeline, guard, cooldown = _build_pipeline(rest_store, clock)
    guard.record_submission("9876543210", "a@b.com")
    cooldown.mark_submitted()

    result = pipeline.submit(_form())

    assert result.error_kind == ErrorKind.COOLDOWN
    assert guard.check_calls == 0
    assert result.stages == ["INIT", "COOLDOWN_CHECK"]


def test_validation_errors_stop_before_network(rest_store, clock):
    pipeline, guard, _ = _build_pipeline(rest_store, clock)

    result = pipeline.submit(_form(mobile="123", email="nope"))

    assert result.error_kind == ErrorKind.VALIDATION
    assert set(result.field_errors) == {"mobile", "email"}
    assert result.message
    assert guard.check_calls == 0
    assert rest_store.calls == []


def test_successful_submission_records_everything(rest_store, clock):
    tracking = TrackingData(ip_address="49.36.10.20", device_type="mobile")
    pipeline, guard, cooldown = _build_pipeline(rest_store, clock, tracking=lambda: tracking)

    result = pipeline.submit(_form(mobile="+91 98765 43210"))

    assert result.ok is True
    assert result.stages == [
        "INIT",
        "COOLDOWN_CHECK",
        "FIELD_VALIDATION",
        "DUPLICATE_CHECK",
        "SUBMIT",
        "RECORD",
        "DONE",
    ]
    lead = rest_store.collections["leads"][0]
    assert lead["mobile"] == "9876543210"
    assert lead["ipAddress"] == "49.36.10.20"
    assert lead["utmSource"] == "newsletter"
    assert guard.get_local_submissions()[0]["mobile"] == "9876543210"
    assert cooldown.was_form_submitted() is True


def test_remote_create_failure_records_nothing(rest_store, clock):
    pipeline, guard, cooldown = _build_pipeline(rest_store, clock)
    rest_store.fail_writes_to.add("leads")

    result = pipeline.submit(_form())

    assert result.ok is False
    assert result.error_kind == ErrorKind.SUBMISSION
    assert result.message == "Failed to submit your inquiry. Please try again."
    assert guard.get_local_submissions() == []
    assert cooldown.check_cooldown(5).in_cooldown is False


def test_unexpected_error_in_submit_maps_to_submission(rest_store, clock):
    pipeline, _, _ = _build_pipeline(rest_store, clock, lead_service_cls=ExplodingLeadService)

    result = pipeline.submit(_form())

    assert result.ok is False
    assert result.error_kind == ErrorKind.SUBMISSION


def test_remote_check_outage_still_accepts_lead(rest_store, clock):
    pipeline, _, _ = _build_pipeline(rest_store, clock)
    rest_store.fail_reads = True

    result = pipeline.submit(_form())

    assert result.ok is True


def test_record_failures_do_not_undo_the_lead(rest_store, clock):
    pipeline, guard, cooldown = _build_pipeline(rest_store, clock)
    rest_store.fail_writes_to.add("submittedContacts")

    result = pipeline.submit(_form())

    assert result.ok is True
    assert len(rest_store.collections["leads"]) == 1
    assert len(guard.get_local_submissions()) == 1
    assert cooldown.check_cooldown(5).in_cooldown is True


def test_concurrent_attempts_from_one_client_create_one_lead(rest_store, clock):
    pipeline, _, _ = _build_pipeline(rest_store, clock)
    results = []

    def _submit():
        results.append(pipeline.submit(_form()))

    threads = [threading.Thread(target=_submit) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(1 for r in results if r.ok) == 1
    assert all(r.error_kind == ErrorKind.COOLDOWN for r in results if not r.ok)
    assert len(rest_store.collections["leads"]) == 1
