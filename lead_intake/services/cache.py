"""Namespaced key/value cache with optional per-entry expiry."""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from typing import Any, Optional

from lead_intake.adapters.storage import AVAILABILITY_TEST_KEY, StorageBackend
from lead_intake.utils.timeutil import Clock, parse_iso, to_iso, utc_now

logger = logging.getLogger(__name__)


class KeyValueCache:
    """Wraps a storage backend with JSON envelopes, expiry and a prefix.

    The backend is checked before first use and again after any failure.
    While the backend is not writable the cache degrades to a no-op that
    hands back the caller's default, so callers never need to handle
    storage errors.
    """

    def __init__(self, backend: StorageBackend, prefix: str = "", clock: Optional[Clock] = None) -> None:
        self._backend = backend
        self._prefix = prefix
        self._clock = clock or utc_now
        self._available = False

    def is_available(self) -> bool:
        if self._available:
            return True
        try:
            self._available = bool(self._backend.check_writable())
        except Exception:
            self._available = False
        if not self._available:
            logger.warning("Storage backend unavailable: %s", type(self._backend).__name__)
        return self._available

    def set(self, key: str, value: Any, ttl_minutes: Optional[float] = None) -> bool:
        if not self.is_available():
            return False
        now = self._clock()
        item = {"value": value, "timestamp": to_iso(now)}
        if ttl_minutes:
            item["expiresAt"] = to_iso(now + timedelta(minutes=ttl_minutes))
        try:
            self._backend.set_item(self._key(key), json.dumps(item))
            return True
        except Exception as exc:
            self._available = False
            logger.warning("Error setting cache key %s: %s", key, exc)
            return False

    def get(self, key: str, default: Any = None) -> Any:
        if not self.is_available():
            return default
        prefixed = self._key(key)
        try:
            raw = self._backend.get_item(prefixed)
            if not raw:
                return default
            item = json.loads(raw)
            if not isinstance(item, dict) or "value" not in item:
                return default
            expires_at = parse_iso(item.get("expiresAt"))
            if expires_at is not None and self._clock() > expires_at:
                self._backend.remove_item(prefixed)
                return default
            return item["value"]
        except Exception as exc:
            self._available = False
            logger.warning("Error getting cache key %s: %s", key, exc)
            return default

    def remove(self, key: str) -> bool:
        if not self.is_available():
            return False
        try:
            self._backend.remove_item(self._key(key))
            return True
        except Exception as exc:
            self._available = False
            logger.warning("Error removing cache key %s: %s", key, exc)
            return False

    def clear_namespace(self) -> bool:
        if not self.is_available():
            return False
        try:
            for stored_key in self._backend.keys():
                if stored_key.startswith(self._prefix) and stored_key != AVAILABILITY_TEST_KEY:
                    self._backend.remove_item(stored_key)
            return True
        except Exception as exc:
            self._available = False
            logger.warning("Error clearing cache namespace %s: %s", self._prefix, exc)
            return False

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"
