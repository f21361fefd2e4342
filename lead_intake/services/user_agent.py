from __future__ import annotations

import re
from typing import List, Optional, Tuple

from lead_intake.schemas.tracking import BrowserInfo

# Order matters: Edge and Opera UAs also contain "Chrome/", Chrome UAs also contain "Safari/".
BROWSER_PATTERNS: List[Tuple[str, re.Pattern]] = [
    ("Edge", re.compile(r"Edg(?:e|A|iOS)?/(\d+)")),
    ("Opera", re.compile(r"(?:OPR|Opera)/(\d+)")),
    ("Firefox", re.compile(r"(?:Firefox|FxiOS)/(\d+)")),
    ("Chrome", re.compile(r"(?:Chrome|CriOS)/(\d+)")),
    ("Safari", re.compile(r"Version/(\d+).*Safari/")),
    ("Safari", re.compile(r"Safari/(\d+)")),
    ("IE", re.compile(r"MSIE (\d+)")),
    ("IE", re.compile(r"Trident/.*rv:(\d+)")),
]

TABLET_PATTERN = re.compile(r"ipad|tablet|playbook|silk|kindle", re.IGNORECASE)
MOBILE_PATTERN = re.compile(r"mobile|android|iphone|ipod|blackberry|opera mini|iemobile", re.IGNORECASE)
ANDROID_TABLET_PATTERN = re.compile(r"android(?!.*mobile)", re.IGNORECASE)


def detect_browser(user_agent: Optional[str]) -> BrowserInfo:
    ua = user_agent or "Unknown"
    for name, pattern in BROWSER_PATTERNS:
        match = pattern.search(ua)
        if match:
            return BrowserInfo(name=name, version=match.group(1), user_agent=ua)
    return BrowserInfo(user_agent=ua)


def detect_device_type(user_agent: Optional[str]) -> str:
    ua = user_agent or ""
    if TABLET_PATTERN.search(ua) or ANDROID_TABLET_PATTERN.search(ua):
        return "tablet"
    if MOBILE_PATTERN.search(ua):
        return "mobile"
    return "desktop"
