from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class TrackingSnapshot(BaseModel):
    """IP-derived geolocation captured for a visitor."""

    ip: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    timezone: Optional[str] = None
    isp: Optional[str] = None
    postal_code: Optional[str] = None
    captured_at: Optional[str] = None

    @classmethod
    def unknown(cls) -> "TrackingSnapshot":
        return cls()

    @property
    def is_known(self) -> bool:
        return bool(self.ip)


class BrowserInfo(BaseModel):
    name: str = "Unknown"
    version: str = "Unknown"
    user_agent: str = "Unknown"


class TrackingLocation(BaseModel):
    city: str = "Unknown"
    state: str = "Unknown"
    country: str = "Unknown"
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class TrackingData(BaseModel):
    """Lead-facing tracking block merged into the lead payload."""

    ip_address: str = "Unknown"
    location: TrackingLocation = Field(default_factory=TrackingLocation)
    user_agent: str = "Unknown"
    browser: BrowserInfo = Field(default_factory=BrowserInfo)
    device_type: str = "unknown"
    timezone: Optional[str] = None

    def to_lead_fields(self) -> Dict[str, Any]:
        return {
            "ipAddress": self.ip_address,
            "location": self.location.model_dump(),
            "userAgent": self.user_agent,
            "browser": {
                "name": self.browser.name,
                "version": self.browser.version,
            },
            "deviceType": self.device_type,
            "timezone": self.timezone,
        }
