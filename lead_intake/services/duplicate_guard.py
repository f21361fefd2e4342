from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from lead_intake.adapters.remote_store import SubmittedContactsStore
from lead_intake.adapters.rest_client import RemoteStoreError
from lead_intake.services.cache import KeyValueCache
from lead_intake.utils.normalize import DEFAULT_COUNTRY_CODE, normalize_email, normalize_mobile
from lead_intake.utils.timeutil import Clock, to_iso, utc_now

logger = logging.getLogger(__name__)

LOCAL_SUBMITTED_CONTACTS_KEY = "submitted_contacts"

SOURCE_LOCAL = "local"
SOURCE_REMOTE = "remote"

DUPLICATE_MESSAGES = {
    "both": "This mobile number and email have already been registered. Our team will contact you soon.",
    "mobile": "This mobile number has already been registered. Our team will contact you soon.",
    "email": "This email address has already been registered. Our team will contact you soon.",
    "any": "You have already submitted an inquiry. Our team will contact you soon.",
}


@dataclass
class DuplicateCheckResult:
    exists: bool
    phone_exists: bool
    email_exists: bool
    source: str
    message: Optional[str] = None
    success: bool = True
    error: Optional[str] = None

    @property
    def matched_fields(self) -> List[str]:
        fields = []
        if self.phone_exists:
            fields.append("mobile")
        if self.email_exists:
            fields.append("email")
        return fields


@dataclass
class RecordResult:
    success: bool
    warning: Optional[str] = None


def duplicate_message(phone_exists: bool, email_exists: bool) -> str:
    if phone_exists and email_exists:
        return DUPLICATE_MESSAGES["both"]
    if phone_exists:
        return DUPLICATE_MESSAGES["mobile"]
    if email_exists:
        return DUPLICATE_MESSAGES["email"]
    return DUPLICATE_MESSAGES["any"]


class LocalContactRepository:
    """Submitted contacts remembered in the client's durable cache."""

    def __init__(self, cache: KeyValueCache, clock: Optional[Clock] = None) -> None:
        self._cache = cache
        self._clock = clock or utc_now

    def all(self) -> List[Dict[str, Any]]:
        contacts = self._cache.get(LOCAL_SUBMITTED_CONTACTS_KEY, [])
        if not isinstance(contacts, list):
            return []
        return [c for c in contacts if isinstance(c, dict)]

    def add(self, mobile: str, email: str) -> bool:
        contacts = self.all()
        if any(_matches(c, mobile, email) for c in contacts):
            return True
        contacts.append({"mobile": mobile, "email": email, "submittedAt": to_iso(self._clock())})
        return self._cache.set(LOCAL_SUBMITTED_CONTACTS_KEY, contacts)

    def clear(self) -> bool:
        return self._cache.set(LOCAL_SUBMITTED_CONTACTS_KEY, [])


def _matches(contact: Dict[str, Any], mobile: str, email: str) -> bool:
    return bool(mobile and contact.get("mobile") == mobile) or bool(email and contact.get("email") == email)


class DuplicateGuard:
    """Decides whether a contact already produced a lead.

    The local repository answers repeats from the same client without a
    network call; the remote collection is authoritative across clients.
    A remote lookup failure is reported as ``success=False, exists=False``:
    unknown, not duplicate.
    """

    def __init__(
        self,
        local: LocalContactRepository,
        remote: SubmittedContactsStore,
        country_code: str = DEFAULT_COUNTRY_CODE,
    ) -> None:
        self._local = local
        self._remote = remote
        self._country_code = country_code

    def check_duplicate(
        self,
        mobile: str,
        email: str,
        check_local: bool = True,
        check_remote: bool = True,
    ) -> DuplicateCheckResult:
        clean_mobile = normalize_mobile(mobile, self._country_code)
        clean_email = normalize_email(email)

        if check_local:
            contacts = self._local.all()
            phone_exists = bool(clean_mobile) and any(c.get("mobile") == clean_mobile for c in contacts)
            email_exists = bool(clean_email) and any(c.get("email") == clean_email for c in contacts)
            if phone_exists or email_exists:
                return DuplicateCheckResult(
                    exists=True,
                    phone_exists=phone_exists,
                    email_exists=email_exists,
                    source=SOURCE_LOCAL,
                    message=duplicate_message(phone_exists, email_exists),
                )

        if check_remote:
            return self._check_remote(clean_mobile, clean_email)

        return DuplicateCheckResult(exists=False, phone_exists=False, email_exists=False, source=SOURCE_LOCAL)

    def record_submission(self, mobile: str, email: str) -> RecordResult:
        clean_mobile = normalize_mobile(mobile, self._country_code)
        clean_email = normalize_email(email)

        if not self._local.add(clean_mobile, clean_email):
            logger.warning("Could not save submitted contact to local cache")

        try:
            self._remote.add(clean_mobile, clean_email)
        except RemoteStoreError as exc:
            logger.warning("Error recording submission remotely: %s", exc)
            return RecordResult(success=True, warning="Remote save failed but local save succeeded")
        return RecordResult(success=True)

    def get_local_submissions(self) -> List[Dict[str, Any]]:
        return self._local.all()

    def clear_local_submissions(self) -> bool:
        return self._local.clear()

    def _check_remote(self, mobile: str, email: str) -> DuplicateCheckResult:
        try:
            phone_exists = bool(mobile) and len(self._remote.find_by_mobile(mobile)) > 0
            email_exists = bool(email) and len(self._remote.find_by_email(email)) > 0
        except RemoteStoreError as exc:
            logger.warning("Remote duplicate check failed, treating as unknown: %s", exc)
            return DuplicateCheckResult(
                exists=False,
                phone_exists=False,
                email_exists=False,
                source=SOURCE_REMOTE,
                success=False,
                error=str(exc),
            )

        exists = phone_exists or email_exists
        return DuplicateCheckResult(
            exists=exists,
            phone_exists=phone_exists,
            email_exists=email_exists,
            source=SOURCE_REMOTE,
            message=duplicate_message(phone_exists, email_exists) if exists else None,
        )
