from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


class RemoteStoreError(RuntimeError):
    """Raised when the remote REST store cannot be reached or rejects a call."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class RestStoreClient:
    """Minimal JSON client for the json-server style remote store."""

    base_url: str
    timeout: float = 30.0
    session: requests.Session = field(default_factory=requests.Session)

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._request("GET", path, params=params)

    def post(self, path: str, payload: Dict[str, Any]) -> Any:
        return self._request("POST", path, json=payload)

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = self.base_url.rstrip("/") + "/" + path.lstrip("/")
        headers = dict(DEFAULT_HEADERS)

        logger.debug("API request %s %s", method, url, extra={"params": kwargs.get("params")})
        try:
            response = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.Timeout as exc:
            raise RemoteStoreError(f"Request timeout: {method} {url}") from exc
        except requests.RequestException as exc:
            raise RemoteStoreError(f"Network error calling {method} {url}: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise RemoteStoreError(
                f"{method} {url} failed (status {response.status_code}): {response.text[:200]}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteStoreError(f"Invalid JSON from {method} {url}") from exc
