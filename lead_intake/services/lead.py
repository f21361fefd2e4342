from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
import re
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, ValidationInfo, field_validator

from lead_intake.adapters.remote_store import LeadStore
from lead_intake.schemas.tracking import TrackingData
from lead_intake.utils.normalize import DEFAULT_COUNTRY_CODE, normalize_email, normalize_mobile
from lead_intake.utils.timeutil import Clock, utc_now


class FormSource(str, Enum):
    HERO_FORM = "hero_form"
    POPUP_FORM = "popup_form"
    CTA_FORM = "cta_form"


INDIAN_MOBILE_PATTERN = re.compile(r"^[6-9]\d{9}$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
NAME_PATTERN = re.compile(r"^[a-zA-Z\s'.,-]+$")
MEAL_OPTIONS = {"breakfast", "lunch", "coffee"}
MAX_MESSAGE_LENGTH = 500
SITE_VISIT_MIN_DAYS = 1
SITE_VISIT_MAX_DAYS = 30


def _context_value(info: ValidationInfo, key: str, default: Any) -> Any:
    context = info.context or {}
    return context.get(key, default)


class LeadFormInput(BaseModel):
    """Validated lead form. Conditional fields are blanked when their toggle is off."""

    model_config = ConfigDict(validate_default=True, str_strip_whitespace=True)

    name: Optional[str] = None
    mobile: Optional[str] = None
    email: Optional[str] = None
    message: Optional[str] = None
    source: Optional[str] = None

    wants_site_visit: bool = False
    site_visit_date: Optional[str] = None
    site_visit_time: Optional[str] = None

    wants_pickup_drop: bool = False
    same_as_pickup: bool = False
    pickup_location: Optional[str] = None
    drop_location: Optional[str] = None

    wants_meal: bool = False
    meal_preference: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: Optional[str]) -> str:
        if not value:
            raise ValueError("Name is required")
        if len(value) < 2:
            raise ValueError("Name must be at least 2 characters")
        if len(value) > 50:
            raise ValueError("Name must be less than 50 characters")
        if not NAME_PATTERN.match(value):
            raise ValueError("Please enter a valid name")
        return value

    @field_validator("mobile")
    @classmethod
    def _check_mobile(cls, value: Optional[str], info: ValidationInfo) -> str:
        if not value:
            raise ValueError("Mobile number is required")
        cleaned = normalize_mobile(value, _context_value(info, "country_code", DEFAULT_COUNTRY_CODE))
        if not INDIAN_MOBILE_PATTERN.match(cleaned):
            raise ValueError("Please enter a valid 10-digit mobile number")
        return cleaned

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: Optional[str]) -> str:
        if not value:
            raise ValueError("Email is required")
        cleaned = normalize_email(value)
        if not EMAIL_PATTERN.match(cleaned):
            raise ValueError("Please enter a valid email address")
        return cleaned

    @field_validator("message")
    @classmethod
    def _check_message(cls, value: Optional[str]) -> str:
        value = value or ""
        if len(value) > MAX_MESSAGE_LENGTH:
            raise ValueError(f"Message must be less than {MAX_MESSAGE_LENGTH} characters")
        return value

    @field_validator("source")
    @classmethod
    def _check_source(cls, value: Optional[str]) -> str:
        try:
            return FormSource(value).value
        except ValueError:
            return FormSource.HERO_FORM.value

    @field_validator("site_visit_date")
    @classmethod
    def _check_site_visit_date(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        if not info.data.get("wants_site_visit"):
            return None
        if not value:
            raise ValueError("Please select a site visit date")
        visit_date = _parse_date(value)
        if visit_date is None:
            raise ValueError("Please select a valid site visit date")
        today = _context_value(info, "today", None) or date.today()
        if visit_date <= today:
            raise ValueError("Date must be in the future")
        if not today + timedelta(days=SITE_VISIT_MIN_DAYS) <= visit_date <= today + timedelta(days=SITE_VISIT_MAX_DAYS):
            raise ValueError(f"Date must be within {SITE_VISIT_MAX_DAYS} days")
        return visit_date.isoformat()

    @field_validator("site_visit_time")
    @classmethod
    def _check_site_visit_time(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        if not info.data.get("wants_site_visit"):
            return None
        if not value:
            raise ValueError("Please select a time slot")
        return value

    @field_validator("pickup_location")
    @classmethod
    def _check_pickup(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        if not info.data.get("wants_pickup_drop"):
            return None
        if not value:
            raise ValueError("Please enter pickup location")
        if len(value) < 5:
            raise ValueError("Please enter a valid address")
        return value

    @field_validator("drop_location")
    @classmethod
    def _check_drop(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        if not info.data.get("wants_pickup_drop"):
            return None
        if info.data.get("same_as_pickup"):
            return info.data.get("pickup_location")
        return value or None

    @field_validator("meal_preference")
    @classmethod
    def _check_meal(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        if not info.data.get("wants_meal"):
            return None
        if not value:
            raise ValueError("Please select meal preference")
        if value not in MEAL_OPTIONS:
            raise ValueError("Invalid meal preference")
        return value


def _parse_date(value: str) -> Optional[date]:
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        return None


@dataclass
class LeadValidation:
    lead: Optional[LeadFormInput]
    field_errors: Dict[str, str] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return self.lead is not None and not self.field_errors

    @property
    def summary(self) -> str:
        if not self.field_errors:
            return ""
        if set(self.field_errors) & {"mobile", "email"}:
            return "Please provide a valid mobile number and email address."
        return "Please correct the highlighted fields."


class LeadService:
    """Validates lead forms and writes accepted leads to the remote store."""

    def __init__(
        self,
        lead_store: LeadStore,
        country_code: str = DEFAULT_COUNTRY_CODE,
        clock: Optional[Clock] = None,
    ) -> None:
        self._lead_store = lead_store
        self._country_code = country_code
        self._clock = clock or utc_now

    def validate(self, form: Dict[str, Any]) -> LeadValidation:
        context = {"country_code": self._country_code, "today": self._clock().date()}
        try:
            lead = LeadFormInput.model_validate(form, context=context)
        except ValidationError as exc:
            errors: Dict[str, str] = {}
            for error in exc.errors():
                loc = error.get("loc") or ("form",)
                errors.setdefault(str(loc[0]), _clean_message(error.get("msg", "Invalid value")))
            return LeadValidation(lead=None, field_errors=errors)
        return LeadValidation(lead=lead)

    @staticmethod
    def parse(lead_data: Dict[str, Any]) -> LeadFormInput:
        """Rebuild an already validated form without re-running the validators."""
        return LeadFormInput.model_construct(**lead_data)

    def build_lead_payload(
        self,
        lead: LeadFormInput,
        tracking: Optional[TrackingData] = None,
        utm_params: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        tracking = tracking or TrackingData()
        utm = utm_params or {}
        payload: Dict[str, Any] = {
            "name": lead.name,
            "email": lead.email,
            "mobile": lead.mobile,
            "message": lead.message or "",
            "source": lead.source,
            "wantsSiteVisit": lead.wants_site_visit,
            "siteVisitDate": lead.site_visit_date,
            "siteVisitTime": lead.site_visit_time,
            "wantsPickupDrop": lead.wants_pickup_drop,
            "pickupLocation": lead.pickup_location,
            "dropLocation": lead.drop_location,
            "wantsMeal": lead.wants_meal,
            "mealPreference": lead.meal_preference,
            "utmSource": utm.get("utm_source"),
            "utmMedium": utm.get("utm_medium"),
            "utmCampaign": utm.get("utm_campaign"),
            "utmTerm": utm.get("utm_term"),
            "utmContent": utm.get("utm_content"),
            "status": "new",
            "priority": "high" if lead.wants_site_visit else "medium",
        }
        payload.update(tracking.to_lead_fields())
        return payload

    def create_lead(self, payload: Dict[str, Any]) -> str:
        created = self._lead_store.create_lead(payload)
        return str(created["id"])


def _clean_message(message: str) -> str:
    prefix = "Value error, "
    return message[len(prefix):] if message.startswith(prefix) else message
