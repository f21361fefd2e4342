from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from lead_intake.schemas.tracking import TrackingSnapshot

IPAPI_CO_URL = "https://ipapi.co/json/"
IP_API_COM_URL = "http://ip-api.com/json/"


class GeolocationError(RuntimeError):
    """Raised when a geolocation provider fails or reports an error."""


def is_public_ip(value: Optional[str]) -> bool:
    if not value:
        return False
    try:
        address = ipaddress.ip_address(value.strip())
    except ValueError:
        return False
    return address.is_global


@dataclass
class GeoProvider:
    """Base HTTP provider; subclasses map their payload onto TrackingSnapshot."""

    url: str
    timeout: float = 10.0
    session: requests.Session = field(default_factory=requests.Session)
    name: str = "geo"

    def fetch(self, ip: Optional[str] = None) -> TrackingSnapshot:
        data = self._get_json(self._url_for(ip))
        error = self._payload_error(data)
        if error:
            raise GeolocationError(f"{self.name}: {error}")
        return self._normalize(data)

    def _url_for(self, ip: Optional[str]) -> str:
        return self.url

    def _get_json(self, url: str) -> Dict[str, Any]:
        try:
            response = self.session.get(url, headers={"Accept": "application/json"}, timeout=self.timeout)
        except requests.RequestException as exc:
            raise GeolocationError(f"{self.name}: request failed: {exc}") from exc
        if response.status_code != 200:
            raise GeolocationError(f"{self.name}: unexpected status {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise GeolocationError(f"{self.name}: invalid JSON payload") from exc
        if not isinstance(data, dict):
            raise GeolocationError(f"{self.name}: unexpected payload type {type(data).__name__}")
        return data

    def _payload_error(self, data: Dict[str, Any]) -> Optional[str]:  # pragma: no cover - interface only
        raise NotImplementedError

    def _normalize(self, data: Dict[str, Any]) -> TrackingSnapshot:  # pragma: no cover - interface only
        raise NotImplementedError


@dataclass
class IpApiCoProvider(GeoProvider):
    url: str = IPAPI_CO_URL
    name: str = "ipapi.co"

    def _url_for(self, ip: Optional[str]) -> str:
        if is_public_ip(ip) and self.url.rstrip("/").endswith("/json"):
            base = self.url.rstrip("/")[: -len("/json")]
            return f"{base}/{ip.strip()}/json/"
        return self.url

    def _payload_error(self, data: Dict[str, Any]) -> Optional[str]:
        if data.get("error"):
            return str(data.get("reason") or "API error")
        return None

    def _normalize(self, data: Dict[str, Any]) -> TrackingSnapshot:
        return TrackingSnapshot(
            ip=data.get("ip"),
            city=data.get("city"),
            region=data.get("region"),
            country=data.get("country_name"),
            country_code=data.get("country_code"),
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
            timezone=data.get("timezone"),
            isp=data.get("org"),
            postal_code=_as_text(data.get("postal")),
        )


@dataclass
class IpApiComProvider(GeoProvider):
    url: str = IP_API_COM_URL
    name: str = "ip-api.com"

    def _url_for(self, ip: Optional[str]) -> str:
        if is_public_ip(ip):
            return self.url.rstrip("/") + "/" + ip.strip()
        return self.url

    def _payload_error(self, data: Dict[str, Any]) -> Optional[str]:
        if data.get("status") == "fail":
            return str(data.get("message") or "lookup failed")
        return None

    def _normalize(self, data: Dict[str, Any]) -> TrackingSnapshot:
        return TrackingSnapshot(
            ip=data.get("query"),
            city=data.get("city"),
            region=data.get("regionName"),
            country=data.get("country"),
            country_code=data.get("countryCode"),
            latitude=data.get("lat"),
            longitude=data.get("lon"),
            timezone=data.get("timezone"),
            isp=data.get("isp"),
            postal_code=_as_text(data.get("zip")),
        )


def _as_text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)
