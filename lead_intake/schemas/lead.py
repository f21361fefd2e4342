from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from lead_intake.schemas.context import ClientContext


class LeadFormPayload(BaseModel):
    """Raw form fields as typed by the visitor; validated by the pipeline."""

    name: Optional[str] = None
    mobile: Optional[str] = None
    email: Optional[str] = None
    message: Optional[str] = None
    source: Optional[str] = Field(default=None, description="Form that produced the lead, e.g. hero_form")

    wants_site_visit: bool = False
    site_visit_date: Optional[str] = None
    site_visit_time: Optional[str] = None

    wants_pickup_drop: bool = False
    pickup_location: Optional[str] = None
    drop_location: Optional[str] = None
    same_as_pickup: bool = False

    wants_meal: bool = False
    meal_preference: Optional[str] = None


class LeadSubmissionRequest(BaseModel):
    context: ClientContext
    lead: LeadFormPayload


class LeadSubmissionResponse(BaseModel):
    ok: bool
    lead_id: Optional[str] = None
    error_kind: Optional[str] = None
    message: Optional[str] = None
    remaining_seconds: Optional[int] = None
    field_errors: Dict[str, str] = Field(default_factory=dict)
    matched_fields: List[str] = Field(default_factory=list)


class DuplicateCheckRequest(BaseModel):
    context: ClientContext
    mobile: str
    email: str
    check_local: bool = True
    check_remote: bool = True


class DuplicateCheckResponse(BaseModel):
    exists: bool
    phone_exists: bool = False
    email_exists: bool = False
    source: str
    message: Optional[str] = None
    success: bool = True


class CooldownResponse(BaseModel):
    in_cooldown: bool
    remaining_seconds: int = 0
    message: Optional[str] = None


class SessionStartRequest(BaseModel):
    context: ClientContext
    landing_url: Optional[str] = Field(default=None, description="Full landing page URL including query string")


class SessionStartResponse(BaseModel):
    session_id: str
    session_duration_seconds: int = 0
    utm_params: Dict[str, str] = Field(default_factory=dict)
