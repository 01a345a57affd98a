# -*- coding: utf-8 -*-

"""
Unit tests for device admission data structures.
"""

import pytest

from precast.models import NO_ACTIVE_DEVICES_MESSAGE, ActiveSession, DeviceLimitInfo, LoginCredentials


class TestActiveSession:
    """Tests for ActiveSession."""

    def test_from_payload_snake_case(self):
        """
        What it does: Verifies parsing of a snake_case device entry.
        Purpose: Ensure the server format is read field by field.
        """
        session = ActiveSession.from_payload({
            "session_id": "s1",
            "ip_address": "10.0.0.1",
            "login_time": "2025-01-05T15:04:00Z",
            "expires_at": "2025-01-06T15:04:00Z",
        })
        assert session.session_id == "s1"
        assert session.ip_address == "10.0.0.1"
        assert session.expires_at == "2025-01-06T15:04:00Z"

    def test_from_payload_camel_case(self):
        """
        What it does: Verifies parsing of a camelCase device entry.
        Purpose: Ensure both key styles sent by the backend are accepted.
        """
        session = ActiveSession.from_payload({"sessionId": "s2", "ipAddress": "10.0.0.2"})
        assert session.session_id == "s2"
        assert session.ip_address == "10.0.0.2"
        assert session.login_time is None

    def test_missing_session_id_rejected(self):
        """
        What it does: Verifies an entry without session_id raises ValueError.
        Purpose: Ensure every listed device can actually be logged out.
        """
        with pytest.raises(ValueError):
            ActiveSession.from_payload({"ip_address": "10.0.0.1"})

    def test_display_login_time(self):
        """
        What it does: Verifies login time formatting for display.
        Purpose: Ensure the device list shows a readable timestamp.
        """
        assert ActiveSession("s1", login_time="2025-01-05T15:04:00Z").display_login_time() == "Jan 5, 2025, 3:04 PM"
        assert ActiveSession("s1", login_time="2025-03-10T00:30:00").display_login_time() == "Mar 10, 2025, 12:30 AM"

    def test_display_login_time_fallbacks(self):
        """
        What it does: Verifies "N/A" for missing and raw text for unparseable times.
        Purpose: Ensure display never fails on odd server data.
        """
        assert ActiveSession("s1").display_login_time() == "N/A"
        assert ActiveSession("s1", login_time="yesterday").display_login_time() == "yesterday"


class TestDeviceLimitInfo:
    """Tests for DeviceLimitInfo."""

    def test_from_payload(self, device_limit_payload):
        """
        What it does: Verifies parsing of a full device-limit rejection.
        Purpose: Ensure sessions, limits and message are exposed.
        """
        print("Setup: Payload with s1 and s2...")
        payload = device_limit_payload(session_ids=("s1", "s2"), max_devices=2, current_devices=2)

        print("Action: Parsing...")
        info = DeviceLimitInfo.from_payload(payload)

        print("Verification: Fields...")
        assert [d.session_id for d in info.active_devices] == ["s1", "s2"]
        assert info.max_devices == 2
        assert info.current_devices == 2
        assert info.message == "Maximum device limit reached"
        assert info.is_empty is False
        assert info.empty_message is None

    def test_defaults(self):
        """
        What it does: Verifies defaults when the server omits counts and message.
        Purpose: Ensure max_devices defaults to 3 and current to the list length.
        """
        info = DeviceLimitInfo.from_payload({"activeDevices": [{"sessionId": "s1"}]})
        assert info.max_devices == 3
        assert info.current_devices == 1
        assert info.message == (
            "You have reached the maximum limit of 3 active devices. "
            "Currently, you have 1 active session."
        )

    def test_default_message_plural(self):
        """
        What it does: Verifies the generated message pluralizes sessions.
        """
        assert DeviceLimitInfo.default_message(3, 3).endswith("you have 3 active sessions.")

    def test_empty_list(self):
        """
        What it does: Verifies an empty device list is flagged.
        Purpose: Ensure the dialog can show "No active devices found".
        """
        info = DeviceLimitInfo.from_payload({"requires_logout": True, "active_devices": []})
        assert info.is_empty is True
        assert info.empty_message == NO_ACTIVE_DEVICES_MESSAGE
        assert info.current_devices == 0

    def test_malformed_entry_skipped(self):
        """
        What it does: Verifies entries without a usable session_id are skipped.
        Purpose: Ensure one bad entry does not hide the devices that can be logged out.
        """
        info = DeviceLimitInfo.from_payload({
            "active_devices": [{"ip_address": "10.0.0.1"}, "s0", {"session_id": "s2"}],
        })
        assert [d.session_id for d in info.active_devices] == ["s2"]
        assert info.current_devices == 1

    def test_find(self, device_limit_payload):
        """
        What it does: Verifies lookup of a listed session.
        """
        info = DeviceLimitInfo.from_payload(device_limit_payload(session_ids=("s1", "s2")))
        assert info.find("s2").session_id == "s2"
        assert info.find("missing") is None


class TestLoginCredentials:
    """Tests for LoginCredentials."""

    def test_payload_without_ip(self):
        credentials = LoginCredentials("qc@example.com", "secret")
        assert credentials.to_payload() == {"email": "qc@example.com", "password": "secret"}

    def test_payload_with_ip(self):
        credentials = LoginCredentials("qc@example.com", "secret", ip="10.0.0.9")
        assert credentials.to_payload()["ip"] == "10.0.0.9"

    def test_password_not_in_repr(self):
        """
        What it does: Verifies the password is hidden from repr.
        Purpose: Ensure passwords never reach the logs.
        """
        assert "secret" not in repr(LoginCredentials("qc@example.com", "secret"))
