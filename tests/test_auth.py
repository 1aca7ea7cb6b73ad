"""Tests for admin API authentication."""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from ridebooking.auth import require_admin_token
from ridebooking.phone import redact_pii


# ── Fixture: mock settings for auth tests ──────────────────────────

class FakeSettings:
    def __init__(self, admin_api_key="", debug=False):
        self.admin_api_key = admin_api_key
        self.debug = debug


# ── Tests: Auth logic ──────────────────────────────────────────────

class TestRequireAdminToken:
    """Test the require_admin_token dependency directly."""

    async def test_rejects_no_token_when_key_set(self, monkeypatch):
        monkeypatch.setattr("ridebooking.auth.settings", FakeSettings(admin_api_key="secret"))
        with pytest.raises(HTTPException) as exc_info:
            await require_admin_token(credentials=None)
        assert exc_info.value.status_code == 401

    async def test_rejects_wrong_token(self, monkeypatch):
        monkeypatch.setattr("ridebooking.auth.settings", FakeSettings(admin_api_key="secret"))
        creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials="wrong")
        with pytest.raises(HTTPException) as exc_info:
            await require_admin_token(credentials=creds)
        assert exc_info.value.status_code == 401

    async def test_allows_correct_token(self, monkeypatch):
        monkeypatch.setattr("ridebooking.auth.settings", FakeSettings(admin_api_key="secret"))
        creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials="secret")
        # Should not raise
        await require_admin_token(credentials=creds)

    async def test_allows_no_key_debug_mode(self, monkeypatch):
        monkeypatch.setattr("ridebooking.auth.settings", FakeSettings(admin_api_key="", debug=True))
        await require_admin_token(credentials=None)

    async def test_rejects_no_key_production(self, monkeypatch):
        monkeypatch.setattr("ridebooking.auth.settings", FakeSettings(admin_api_key="", debug=False))
        with pytest.raises(HTTPException) as exc_info:
            await require_admin_token(credentials=None)
        assert exc_info.value.status_code == 403


# ── Tests: PII redaction ──────────────────────────────────────────

class TestPiiRedaction:
    """redact_pii masks sensitive data for logging."""

    def test_redacts_phone(self):
        assert redact_pii("+923001234567") == "+92***67"

    def test_redacts_short_value(self):
        assert redact_pii("abc") == "***"

    def test_redacts_empty(self):
        assert redact_pii("") == "***"
