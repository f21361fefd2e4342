from __future__ import annotations

import uuid
from typing import Dict, Optional
from urllib.parse import parse_qs, urlparse

from lead_intake.services.cache import KeyValueCache
from lead_intake.utils.timeutil import Clock, parse_iso, to_iso, utc_now

UTM_KEYS = ("utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content")

UTM_PARAMS_KEY = "utm_params"
SESSION_ID_KEY = "session_id"
SESSION_START_KEY = "session_start"


class VisitorSession:
    """Per-session visitor bookkeeping held in the session cache."""

    def __init__(self, session_cache: KeyValueCache, clock: Optional[Clock] = None) -> None:
        self._cache = session_cache
        self._clock = clock or utc_now

    def get_or_create_session_id(self, preferred: Optional[str] = None) -> str:
        session_id = self._cache.get(SESSION_ID_KEY)
        if not session_id:
            session_id = preferred or f"session_{uuid.uuid4().hex[:12]}"
            self._cache.set(SESSION_ID_KEY, session_id)
            self._cache.set(SESSION_START_KEY, to_iso(self._clock()))
        return session_id

    def session_duration_seconds(self) -> int:
        started = parse_iso(self._cache.get(SESSION_START_KEY))
        if started is None:
            return 0
        return max(0, int((self._clock() - started).total_seconds()))

    def capture_utm_params(self, url: Optional[str]) -> Dict[str, str]:
        """Store UTM parameters found in ``url``; an URL without any leaves earlier ones intact."""
        if not url:
            return {}
        query = parse_qs(urlparse(url).query)
        params = {key: query[key][0] for key in UTM_KEYS if query.get(key) and query[key][0]}
        if params:
            self._cache.set(UTM_PARAMS_KEY, params)
        return params

    def get_utm_params(self) -> Dict[str, str]:
        params = self._cache.get(UTM_PARAMS_KEY, {})
        return params if isinstance(params, dict) else {}
