"""
tests.test_logging

Credential material is scrubbed from structured log events.
"""

from __future__ import annotations

from tenant_authz.observability.logging import _redact_sensitive


def test_sensitive_keys_are_masked() -> None:
    event = {"event": "login", "password": "hunter2", "refresh_token": "eyJ...", "subject_id": "u1"}

    out = _redact_sensitive(None, "info", event)

    assert out["password"] == "***"
    assert out["refresh_token"] == "***"
    assert out["subject_id"] == "u1"
