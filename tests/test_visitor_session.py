from __future__ import annotations

from lead_intake.adapters.storage import MemoryStorage
from lead_intake.services.cache import KeyValueCache
from lead_intake.services.visitor_session import VisitorSession


def _session(clock):
    return VisitorSession(KeyValueCache(MemoryStorage(), prefix="d25_", clock=clock), clock=clock)


def test_session_id_is_stable_within_session(clock):
    session = _session(clock)

    first = session.get_or_create_session_id()
    clock.advance(seconds=45)

    assert first.startswith("session_")
    assert session.get_or_create_session_id() == first
    assert session.session_duration_seconds() == 45


def test_landing_without_utm_keeps_earlier_params(clock):
    session = _session(clock)
    session.capture_utm_params("https://district25.example/?utm_source=facebook&utm_medium=cpc&ref=x")

    assert session.capture_utm_params("https://district25.example/amenities") == {}
    assert session.get_utm_params() == {"utm_source": "facebook", "utm_medium": "cpc"}


def test_no_session_means_zero_duration(clock):
    assert _session(clock).session_duration_seconds() == 0
    assert _session(clock).get_utm_params() == {}
