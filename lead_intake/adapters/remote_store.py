from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from lead_intake.adapters.rest_client import RemoteStoreError
from lead_intake.utils.timeutil import Clock, to_iso, utc_now

LEADS_PATH = "/leads"
SUBMITTED_CONTACTS_PATH = "/submittedContacts"


class RestClientProtocol(Protocol):
    """Subset of RestStoreClient used by the stores below."""

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:  # pragma: no cover - interface only
        ...

    def post(self, path: str, payload: Dict[str, Any]) -> Any:  # pragma: no cover - interface only
        ...


@dataclass
class SubmittedContactsStore:
    """Remote collection of contacts that already produced a lead."""

    client: RestClientProtocol
    clock: Clock = utc_now

    def find_by_mobile(self, mobile: str) -> List[Dict[str, Any]]:
        return self._as_list(self.client.get(SUBMITTED_CONTACTS_PATH, params={"mobile": mobile}))

    def find_by_email(self, email: str) -> List[Dict[str, Any]]:
        return self._as_list(self.client.get(SUBMITTED_CONTACTS_PATH, params={"email": email}))

    def add(self, mobile: str, email: str) -> Dict[str, Any]:
        payload = {"mobile": mobile, "email": email, "submittedAt": to_iso(self.clock())}
        return self.client.post(SUBMITTED_CONTACTS_PATH, payload) or payload

    @staticmethod
    def _as_list(data: Any) -> List[Dict[str, Any]]:
        if data is None:
            return []
        if not isinstance(data, list):
            raise RemoteStoreError(f"Expected a list from {SUBMITTED_CONTACTS_PATH}, got {type(data).__name__}")
        return data


@dataclass
class LeadStore:
    """Write side of the remote leads collection."""

    client: RestClientProtocol
    clock: Clock = utc_now

    def create_lead(self, lead_data: Dict[str, Any]) -> Dict[str, Any]:
        now = to_iso(self.clock())
        payload = {
            **lead_data,
            "status": lead_data.get("status") or "new",
            "priority": lead_data.get("priority") or "medium",
            "notes": lead_data.get("notes") or [],
            "assignedTo": lead_data.get("assignedTo"),
            "followUpDate": lead_data.get("followUpDate"),
            "createdAt": now,
            "updatedAt": now,
        }
        created = self.client.post(LEADS_PATH, payload)
        if not isinstance(created, dict) or created.get("id") is None:
            raise RemoteStoreError("Lead store did not return a created record with an id")
        return created
