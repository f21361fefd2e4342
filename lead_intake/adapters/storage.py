from __future__ import annotations

import json
import logging
import os
import threading
from collections import OrderedDict
from pathlib import Path
from typing import Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)

AVAILABILITY_TEST_KEY = "__storage_test__"


class StorageBackend(Protocol):
    """Web Storage shaped key/value backend holding string values."""

    def get_item(self, key: str) -> Optional[str]:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def remove_item(self, key: str) -> None:
        ...

    def keys(self) -> List[str]:
        ...

    def check_writable(self) -> bool:
        ...


class MemoryStorage:
    """Session-scoped storage; lives as long as the process keeps it."""

    def __init__(self) -> None:
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._items)

    def check_writable(self) -> bool:
        self.set_item(AVAILABILITY_TEST_KEY, AVAILABILITY_TEST_KEY)
        ok = self.get_item(AVAILABILITY_TEST_KEY) == AVAILABILITY_TEST_KEY
        self.remove_item(AVAILABILITY_TEST_KEY)
        return ok


class FileStorage:
    """Durable storage backed by a single JSON document on disk."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            items = self._load()
            items[key] = value
            self._save(items)

    def remove_item(self, key: str) -> None:
        with self._lock:
            items = self._load()
            if key in items:
                del items[key]
                self._save(items)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._load())

    def check_writable(self) -> bool:
        # permission check only, the document is left untouched
        with self._lock:
            if self.path.exists():
                return os.access(self.path, os.R_OK | os.W_OK)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            return os.access(self.path.parent, os.W_OK)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Durable store %s is corrupted, starting empty", self.path)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _save(self, items: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(items, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, self.path)


class SessionStorageRegistry:
    """Hands out one MemoryStorage per session id, evicting the oldest sessions."""

    def __init__(self, max_sessions: int = 1000) -> None:
        self._max_sessions = max(1, max_sessions)
        self._sessions: "OrderedDict[str, MemoryStorage]" = OrderedDict()
        self._lock = threading.Lock()

    def for_session(self, session_id: str) -> MemoryStorage:
        with self._lock:
            storage = self._sessions.get(session_id)
            if storage is None:
                storage = MemoryStorage()
                self._sessions[session_id] = storage
                while len(self._sessions) > self._max_sessions:
                    expired, _ = self._sessions.popitem(last=False)
                    logger.info("Session storage evicted", extra={"session_id": expired})
            else:
                self._sessions.move_to_end(session_id)
            return storage

    def __len__(self) -> int:
        return len(self._sessions)
