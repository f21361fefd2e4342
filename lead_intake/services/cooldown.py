from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from lead_intake.services.cache import KeyValueCache
from lead_intake.utils.timeutil import Clock, parse_iso, to_iso, utc_now

LAST_SUBMISSION_KEY = "last_submission"
FORM_SUBMITTED_KEY = "form_submitted"
DEFAULT_COOLDOWN_MINUTES = 5


@dataclass
class CooldownStatus:
    in_cooldown: bool
    remaining_seconds: int = 0
    message: Optional[str] = None


class CooldownTracker:
    """Minimum gap between two accepted submissions from one client."""

    def __init__(self, durable_cache: KeyValueCache, clock: Optional[Clock] = None) -> None:
        self._cache = durable_cache
        self._clock = clock or utc_now

    def check_cooldown(self, window_minutes: float = DEFAULT_COOLDOWN_MINUTES) -> CooldownStatus:
        # Read-only: polling while the visitor fills the form must not move the marker.
        last_submission = parse_iso(self._cache.get(LAST_SUBMISSION_KEY))
        if last_submission is None:
            return CooldownStatus(in_cooldown=False)

        elapsed = self._clock() - last_submission
        window = timedelta(minutes=window_minutes)
        if elapsed < window:
            remaining = math.ceil((window - elapsed).total_seconds())
            return CooldownStatus(
                in_cooldown=True,
                remaining_seconds=remaining,
                message=f"Please wait {remaining} seconds before submitting again.",
            )
        return CooldownStatus(in_cooldown=False)

    def mark_submitted(self) -> bool:
        flagged = self._cache.set(FORM_SUBMITTED_KEY, True)
        stamped = self._cache.set(LAST_SUBMISSION_KEY, to_iso(self._clock()))
        return flagged and stamped

    def was_form_submitted(self) -> bool:
        return bool(self._cache.get(FORM_SUBMITTED_KEY, False))
