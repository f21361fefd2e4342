from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional, Sequence

from pydantic import ValidationError

from lead_intake.adapters.geo_providers import GeolocationError, GeoProvider
from lead_intake.schemas.tracking import TrackingData, TrackingLocation, TrackingSnapshot
from lead_intake.services.cache import KeyValueCache
from lead_intake.services.user_agent import detect_browser, detect_device_type
from lead_intake.utils.timeutil import Clock, parse_iso, to_iso, utc_now

logger = logging.getLogger(__name__)

IP_DATA_KEY = "ip_data"
DEFAULT_MAX_AGE_MINUTES = 60


class TrackingCollector:
    """Resolves the visitor's IP geolocation through an ordered provider chain.

    Snapshots are cached in the session cache for ``max_age_minutes``. Provider
    failures never reach the caller: when every provider fails the collector
    returns an all-unknown snapshot and the lead pipeline carries on without
    tracking data.
    """

    def __init__(
        self,
        session_cache: KeyValueCache,
        providers: Sequence[GeoProvider],
        max_age_minutes: float = DEFAULT_MAX_AGE_MINUTES,
        client_ip: Optional[str] = None,
        default_timezone: Optional[str] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._cache = session_cache
        self._providers = list(providers)
        self._max_age = timedelta(minutes=max_age_minutes)
        self._max_age_minutes = max_age_minutes
        self._client_ip = client_ip
        self._default_timezone = default_timezone
        self._clock = clock or utc_now

    def get_tracking_snapshot(self, force_refresh: bool = False) -> TrackingSnapshot:
        if not force_refresh:
            cached = self.get_cached_snapshot()
            if cached is not None:
                return cached

        snapshot = self._fetch_with_fallback()
        if snapshot.is_known:
            self._cache.set(IP_DATA_KEY, snapshot.model_dump(), ttl_minutes=self._max_age_minutes)
        return snapshot

    def get_cached_snapshot(self) -> Optional[TrackingSnapshot]:
        raw = self._cache.get(IP_DATA_KEY)
        if not isinstance(raw, dict):
            return None
        try:
            snapshot = TrackingSnapshot.model_validate(raw)
        except ValidationError:
            self._cache.remove(IP_DATA_KEY)
            return None
        captured_at = parse_iso(snapshot.captured_at)
        if captured_at is None or self._clock() - captured_at > self._max_age:
            self._cache.remove(IP_DATA_KEY)
            return None
        return snapshot

    def get_tracking_data(self, user_agent: Optional[str], force_refresh: bool = False) -> TrackingData:
        snapshot = self.get_tracking_snapshot(force_refresh=force_refresh)
        ua = user_agent or "Unknown"
        return TrackingData(
            ip_address=snapshot.ip or "Unknown",
            location=TrackingLocation(
                city=snapshot.city or "Unknown",
                state=snapshot.region or "Unknown",
                country=snapshot.country or "Unknown",
                latitude=snapshot.latitude,
                longitude=snapshot.longitude,
            ),
            user_agent=ua,
            browser=detect_browser(ua),
            device_type=detect_device_type(ua),
            timezone=snapshot.timezone or self._default_timezone,
        )

    def _fetch_with_fallback(self) -> TrackingSnapshot:
        for provider in self._providers:
            try:
                snapshot = provider.fetch(self._client_ip)
            except (GeolocationError, ValidationError) as exc:
                logger.warning("Geolocation provider %s failed: %s", provider.name, exc)
                continue
            if not snapshot.is_known:
                logger.warning("Geolocation provider %s returned no IP", provider.name)
                continue
            return snapshot.model_copy(update={"captured_at": to_iso(self._clock())})

        logger.warning(
            "tracking-unavailable: all geolocation providers failed",
            extra={"providers": [p.name for p in self._providers]},
        )
        return TrackingSnapshot.unknown()
