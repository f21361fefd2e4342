from __future__ import annotations

from pathlib import Path

import requests
import streamlit as st
from streamlit.testing.v1 import AppTest

APP_PATH = Path(__file__).resolve().parent.parent / "streamlit_app.py"


class FakeResponse:
    def __init__(self, status_code: int, data: dict) -> None:
        self.status_code = status_code
        self._data = data

    def json(self) -> dict:
        return self._data


class RecordingApi:
    """Answers the form's API calls and notes the submit flag at each lead POST."""

    def __init__(self) -> None:
        self.lead_posts = []

    def __call__(self, method, url, json=None, params=None, timeout=None):
        if url.endswith("/api/v1/leads"):
            self.lead_posts.append({"lead": json["lead"], "submitting": st.session_state.get("submitting")})
            return FakeResponse(201, {"ok": True, "lead_id": "lead-1"})
        if url.endswith("/api/v1/session"):
            return FakeResponse(200, {"session_id": "session_abc", "utm_params": {}})
        if url.endswith("/api/v1/cooldown"):
            return FakeResponse(200, {"in_cooldown": False, "remaining_seconds": 0})
        return FakeResponse(200, {})


def _submit_button(at: AppTest):
    return next(button for button in at.button if button.label in ("Submit", "Submitting..."))


def test_lead_is_sent_on_rerun_with_submit_disabled(monkeypatch):
    api = RecordingApi()
    monkeypatch.setattr(requests, "request", api)
    at = AppTest.from_file(str(APP_PATH)).run()

    assert api.lead_posts == []
    assert _submit_button(at).disabled is False

    at.text_input(key="lead_name").input("Asha Rao")
    at.text_input(key="lead_mobile").input("9876543210")
    at.text_input(key="lead_email").input("asha@example.com")
    _submit_button(at).click().run()

    assert len(api.lead_posts) == 1
    assert api.lead_posts[0]["submitting"] is True
    assert api.lead_posts[0]["lead"]["name"] == "Asha Rao"
    assert at.session_state["submitting"] is False
    assert _submit_button(at).disabled is False
    assert "lead-1" in at.success[0].value


def test_rerun_without_click_does_not_resend(monkeypatch):
    api = RecordingApi()
    monkeypatch.setattr(requests, "request", api)
    at = AppTest.from_file(str(APP_PATH)).run()

    at.text_input(key="lead_name").input("Asha Rao")
    at.text_input(key="lead_mobile").input("9876543210")
    at.text_input(key="lead_email").input("asha@example.com")
    _submit_button(at).click().run()
    at.run()

    assert len(api.lead_posts) == 1
