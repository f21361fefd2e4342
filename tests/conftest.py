from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from lead_intake.adapters.rest_client import RemoteStoreError


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


class InMemoryRestStore:
    """json-server stand-in holding the leads and submittedContacts collections."""

    def __init__(self) -> None:
        self.collections: Dict[str, List[Dict[str, Any]]] = {"leads": [], "submittedContacts": []}
        self.calls: List[tuple] = []
        self.fail_reads = False
        self.fail_writes_to: set = set()
        self._ids = itertools.count(1)

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        self.calls.append(("GET", path, dict(params or {})))
        if self.fail_reads:
            raise RemoteStoreError(f"GET {path} failed (status 503)", status_code=503)
        items = self.collections.get(path.strip("/"), [])
        return [item for item in items if all(item.get(k) == v for k, v in (params or {}).items())]

    def post(self, path: str, payload: Dict[str, Any]) -> Any:
        name = path.strip("/")
        self.calls.append(("POST", path, dict(payload)))
        if name in self.fail_writes_to:
            raise RemoteStoreError(f"POST {path} failed (status 500)", status_code=500)
        record = {**payload, "id": str(next(self._ids))}
        self.collections.setdefault(name, []).append(record)
        return record


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def rest_store() -> InMemoryRestStore:
    return InMemoryRestStore()
