from __future__ import annotations

import json
import uuid
from datetime import date, timedelta

import requests
import streamlit as st


st.set_page_config(page_title="District 25 Lead Intake", page_icon="🏠", layout="wide")

FORM_SOURCES = ["hero_form", "popup_form", "cta_form"]
TIME_SLOTS = ["10:00 AM", "12:00 PM", "02:00 PM", "04:00 PM"]
MEAL_OPTIONS = ["breakfast", "lunch", "coffee"]


def _default_context() -> dict[str, str]:
    if "client_id" not in st.session_state:
        st.session_state["client_id"] = f"client-{uuid.uuid4().hex[:12]}"
    if "session_id" not in st.session_state:
        st.session_state["session_id"] = f"session_{uuid.uuid4().hex[:12]}"
    return {
        "client_id": st.session_state["client_id"],
        "session_id": st.session_state["session_id"],
    }


def _call_api(method: str, path: str, payload: dict | None = None, params: dict | None = None) -> tuple[int, dict]:
    base_url = st.session_state.get("api_base_url", "http://localhost:8000")
    url = base_url.rstrip("/") + path
    try:
        response = requests.request(method, url, json=payload, params=params, timeout=35)
    except requests.RequestException as exc:
        return 0, {"message": f"Could not reach the API: {exc}"}
    data = {}
    try:
        data = response.json()
    except json.JSONDecodeError:
        pass
    return response.status_code, data


def _start_session() -> None:
    if st.session_state.get("session_started"):
        return
    landing_url = st.session_state.get("landing_url", "")
    status, data = _call_api(
        "POST",
        "/api/v1/session",
        payload={"context": _default_context(), "landing_url": landing_url or None},
    )
    if status == 200:
        st.session_state["session_id"] = data.get("session_id", st.session_state["session_id"])
        st.session_state["utm_params"] = data.get("utm_params", {})
        st.session_state["session_started"] = True


def _cooldown_banner() -> None:
    status, data = _call_api("GET", "/api/v1/cooldown", params=_default_context())
    if status == 200 and data.get("in_cooldown"):
        st.info(data.get("message") or "Please wait before submitting again.")


def _lead_payload() -> dict:
    state = st.session_state
    wants_site_visit = state["lead_wants_site_visit"]
    wants_pickup_drop = state["lead_wants_pickup_drop"]
    wants_meal = state["lead_wants_meal"]
    return {
        "name": state["lead_name"],
        "mobile": state["lead_mobile"],
        "email": state["lead_email"],
        "message": state["lead_message"],
        "source": state["lead_source"],
        "wants_site_visit": wants_site_visit,
        "site_visit_date": state["lead_site_visit_date"].isoformat() if wants_site_visit else None,
        "site_visit_time": state["lead_site_visit_time"] if wants_site_visit else None,
        "wants_pickup_drop": wants_pickup_drop,
        "pickup_location": state["lead_pickup_location"] if wants_pickup_drop else None,
        "same_as_pickup": state["lead_same_as_pickup"],
        "drop_location": state["lead_drop_location"] if wants_pickup_drop else None,
        "wants_meal": wants_meal,
        "meal_preference": state["lead_meal_preference"] if wants_meal else None,
    }


def _queue_submission() -> None:
    st.session_state["pending_lead"] = _lead_payload()
    st.session_state["submitting"] = True
    st.session_state.pop("lead_result", None)


def _send_pending_submission() -> None:
    lead = st.session_state.pop("pending_lead", None)
    try:
        if lead is not None:
            status, data = _call_api("POST", "/api/v1/leads", payload={"context": _default_context(), "lead": lead})
            st.session_state["lead_result"] = (status, data)
    finally:
        st.session_state["submitting"] = False
    st.rerun()


def _show_lead_result() -> None:
    result = st.session_state.get("lead_result")
    if result is None:
        return
    status, data = result
    if data.get("ok"):
        st.success(f"Thank you! Our team will contact you soon. (lead {data.get('lead_id')})")
        return

    error_kind = data.get("error_kind")
    if error_kind == "validation":
        st.error(data.get("message") or "Please correct the highlighted fields.")
        for field_name, error in (data.get("field_errors") or {}).items():
            st.warning(f"{field_name}: {error}")
    elif error_kind in ("cooldown", "duplicate"):
        st.info(data.get("message"))
    else:
        st.error(data.get("message") or f"Request failed with status {status}. Please try again.")


def _lead_form() -> None:
    st.header("Enquire about District 25")
    submitting = st.session_state.get("submitting", False)

    with st.form("lead_form"):
        st.text_input("Full name", key="lead_name")
        st.text_input("Mobile number", key="lead_mobile")
        st.text_input("Email", key="lead_email")
        st.text_area("Message (optional)", height=100, key="lead_message")
        st.selectbox("Form", FORM_SOURCES, key="lead_source")

        st.checkbox("Schedule a site visit", key="lead_wants_site_visit")
        st.date_input(
            "Visit date",
            value=date.today() + timedelta(days=1),
            min_value=date.today() + timedelta(days=1),
            max_value=date.today() + timedelta(days=30),
            key="lead_site_visit_date",
        )
        st.selectbox("Time slot", TIME_SLOTS, key="lead_site_visit_time")

        st.checkbox("I need pickup and drop", key="lead_wants_pickup_drop")
        st.text_input("Pickup location", key="lead_pickup_location")
        st.checkbox("Drop at the pickup location", value=True, key="lead_same_as_pickup")
        st.text_input("Drop location", key="lead_drop_location")

        st.checkbox("Add a meal to the visit", key="lead_wants_meal")
        st.selectbox("Meal", MEAL_OPTIONS, key="lead_meal_preference")

        # the click only queues the lead; it is sent on the next run with the button disabled
        st.form_submit_button(
            "Submitting..." if submitting else "Submit",
            disabled=submitting,
            on_click=_queue_submission,
        )

    if submitting:
        with st.spinner("Submitting your enquiry..."):
            _send_pending_submission()
        return

    _show_lead_result()


def _tracking_panel() -> None:
    st.header("Visitor tracking")
    refresh = st.button("Refresh location")
    status, data = _call_api(
        "GET",
        "/api/v1/tracking",
        params={**_default_context(), "refresh": refresh},
    )
    if status != 200:
        st.warning(f"Tracking unavailable ({status}).")
        return
    st.json(data)
    if st.session_state.get("utm_params"):
        st.caption("UTM parameters")
        st.json(st.session_state["utm_params"])


def _sidebar_controls() -> None:
    st.sidebar.title("Session Settings")
    st.session_state["api_base_url"] = st.sidebar.text_input(
        "API base URL",
        st.session_state.get("api_base_url", "http://localhost:8000"),
    )
    st.session_state["landing_url"] = st.sidebar.text_input(
        "Landing URL (with UTM parameters)",
        st.session_state.get("landing_url", ""),
    )
    context = _default_context()
    st.sidebar.caption(f"client: {context['client_id']}")
    st.sidebar.caption(f"session: {context['session_id']}")
    if st.sidebar.button("Clear local submitted contacts"):
        status, data = _call_api("DELETE", "/api/v1/contacts/local", params=context)
        st.sidebar.write(f"cleared: {data.get('cleared', False)} ({status})")
    if st.sidebar.button("New visitor"):
        for key in ("client_id", "session_id", "session_started", "utm_params"):
            st.session_state.pop(key, None)
        st.rerun()


def main() -> None:
    _sidebar_controls()
    _start_session()
    tab_form, tab_tracking = st.tabs(["Lead form", "Tracking"])
    with tab_form:
        _cooldown_banner()
        _lead_form()
    with tab_tracking:
        _tracking_panel()


if __name__ == "__main__":
    main()
