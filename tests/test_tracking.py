from __future__ import annotations

from typing import Any, List

import requests

from lead_intake.adapters.geo_providers import IpApiComProvider, IpApiCoProvider
from lead_intake.adapters.storage import MemoryStorage
from lead_intake.services.cache import KeyValueCache
from lead_intake.services.tracking import IP_DATA_KEY, TrackingCollector

IPAPI_CO_PAYLOAD = {
    "ip": "49.36.10.20",
    "city": "Bengaluru",
    "region": "Karnataka",
    "country_name": "India",
    "country_code": "IN",
    "latitude": 12.97,
    "longitude": 77.59,
    "timezone": "Asia/Kolkata",
    "org": "Reliance Jio",
    "postal": "560001",
}

IP_API_COM_PAYLOAD = {
    "status": "success",
    "query": "49.36.10.20",
    "city": "Bengaluru",
    "regionName": "Karnataka",
    "country": "India",
    "countryCode": "IN",
    "lat": 12.97,
    "lon": 77.59,
    "timezone": "Asia/Kolkata",
    "isp": "Reliance Jio",
    "zip": "560001",
}

CHROME_ANDROID_UA = (
    "Mozilla/5.0 (Linux; Android 13; Pixel 7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.6099.144 Mobile Safari/537.36"
)


class FakeResponse:
    def __init__(self, status_code: int, payload: Any) -> None:
        self.status_code = status_code
        self._payload = payload

    def json(self) -> Any:
        return self._payload


class ScriptedSession:
    """Returns queued responses; an exception in the queue is raised instead."""

    def __init__(self, *responses: Any) -> None:
        self._responses = list(responses)
        self.requested: List[str] = []

    def get(self, url: str, headers=None, timeout=None):
        self.requested.append(url)
        outcome = self._responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _collector(clock, primary_session, fallback_session, client_ip=None):
    cache = KeyValueCache(MemoryStorage(), prefix="d25_", clock=clock)
    providers = [
        IpApiCoProvider(session=primary_session),
        IpApiComProvider(session=fallback_session),
    ]
    return TrackingCollector(
        cache,
        providers,
        max_age_minutes=60,
        client_ip=client_ip,
        default_timezone="Asia/Kolkata",
        clock=clock,
    ), cache


def test_primary_provider_snapshot_is_cached(clock):
    primary = ScriptedSession(FakeResponse(200, IPAPI_CO_PAYLOAD))
    fallback = ScriptedSession()
    collector, cache = _collector(clock, primary, fallback)

    first = collector.get_tracking_snapshot()
    second = collector.get_tracking_snapshot()

    assert first.ip == "49.36.10.20"
    assert first.country == "India"
    assert first.isp == "Reliance Jio"
    assert first.captured_at == "2024-06-01T09:00:00Z"
    assert second == first
    assert len(primary.requested) == 1
    assert cache.get(IP_DATA_KEY)["city"] == "Bengaluru"


def test_cached_snapshot_expires_after_max_age(clock):
    primary = ScriptedSession(FakeResponse(200, IPAPI_CO_PAYLOAD), FakeResponse(200, IPAPI_CO_PAYLOAD))
    collector, _ = _collector(clock, primary, ScriptedSession())
    collector.get_tracking_snapshot()

    clock.advance(minutes=59, seconds=59)
    assert collector.get_cached_snapshot() is not None

    clock.advance(seconds=2)
    assert collector.get_cached_snapshot() is None
    collector.get_tracking_snapshot()
    assert len(primary.requested) == 2


def test_fallback_provider_called_once_with_same_shape(clock):
    primary = ScriptedSession(requests.Timeout("timed out"))
    fallback = ScriptedSession(FakeResponse(200, IP_API_COM_PAYLOAD))
    collector, _ = _collector(clock, primary, fallback)

    snapshot = collector.get_tracking_snapshot()

    reference, _ = _collector(clock, ScriptedSession(FakeResponse(200, IPAPI_CO_PAYLOAD)), ScriptedSession())
    assert len(fallback.requested) == 1
    assert snapshot == reference.get_tracking_snapshot()


def test_primary_error_payload_triggers_fallback(clock):
    primary = ScriptedSession(FakeResponse(200, {"error": True, "reason": "RateLimited"}))
    fallback = ScriptedSession(FakeResponse(200, IP_API_COM_PAYLOAD))
    collector, _ = _collector(clock, primary, fallback)

    snapshot = collector.get_tracking_snapshot()

    assert snapshot.ip == "49.36.10.20"
    assert snapshot.region == "Karnataka"


def test_all_providers_failing_yields_unknown_and_nothing_cached(clock):
    primary = ScriptedSession(FakeResponse(500, {}))
    fallback = ScriptedSession(FakeResponse(200, {"status": "fail", "message": "reserved range"}))
    collector, cache = _collector(clock, primary, fallback)

    data = collector.get_tracking_data(CHROME_ANDROID_UA)

    assert data.ip_address == "Unknown"
    assert data.location.city == "Unknown"
    assert data.timezone == "Asia/Kolkata"
    assert data.browser.name == "Chrome"
    assert data.device_type == "mobile"
    assert cache.get(IP_DATA_KEY) is None


def test_public_client_ip_is_looked_up_directly(clock):
    primary = ScriptedSession(FakeResponse(200, IPAPI_CO_PAYLOAD))
    collector, _ = _collector(clock, primary, ScriptedSession(), client_ip="49.36.10.20")

    collector.get_tracking_snapshot()

    assert primary.requested == ["https://ipapi.co/49.36.10.20/json/"]


def test_tracking_data_lead_fields(clock):
    primary = ScriptedSession(FakeResponse(200, IPAPI_CO_PAYLOAD))
    collector, _ = _collector(clock, primary, ScriptedSession())

    fields = collector.get_tracking_data(CHROME_ANDROID_UA).to_lead_fields()

    assert fields["ipAddress"] == "49.36.10.20"
    assert fields["location"]["state"] == "Karnataka"
    assert fields["browser"] == {"name": "Chrome", "version": "120"}
    assert fields["deviceType"] == "mobile"
    assert fields["userAgent"] == CHROME_ANDROID_UA
