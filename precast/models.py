# -*- coding: utf-8 -*-

# Precast Session
# Copyright (C) 2025 Precast Session contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
Data structures exchanged with the device admission endpoints.

- ActiveSession: one active device session reported by the server
- DeviceLimitInfo: parsed device-limit rejection payload
- LoginCredentials: the login attempt kept alive during admission
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger

from precast.config import DEFAULT_MAX_DEVICES


NO_ACTIVE_DEVICES_MESSAGE = "No active devices found"


def _pick(payload: Dict[str, Any], *keys: str) -> Any:
    """Returns the first present key; the backend mixes snake_case and camelCase."""
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


@dataclass(frozen=True)
class ActiveSession:
    """
    Read-only snapshot of a device session holding a slot on the account.

    Attributes:
        session_id: Server identifier used for device logout
        ip_address: IP address the session logged in from
        login_time: Login timestamp as sent by the server (ISO 8601)
        expires_at: Session expiry as sent by the server (ISO 8601)
    """
    session_id: str
    ip_address: Optional[str] = None
    login_time: Optional[str] = None
    expires_at: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ActiveSession":
        if not isinstance(payload, dict):
            raise ValueError(f"Active device entry is not an object: {payload!r}")
        session_id = _pick(payload, "session_id", "sessionId")
        if not session_id:
            raise ValueError(f"Active device entry has no session_id: {payload}")
        return cls(
            session_id=str(session_id),
            ip_address=_pick(payload, "ip_address", "ipAddress"),
            login_time=_pick(payload, "login_time", "loginTime"),
            expires_at=_pick(payload, "expires_at", "expiresAt"),
        )

    def display_login_time(self) -> str:
        """
        Formats login_time for display, e.g. "Jan 5, 2025, 3:04 PM".

        Returns "N/A" when missing and the raw value when it cannot be parsed.
        """
        if not self.login_time:
            return "N/A"
        try:
            value = self.login_time
            if value.endswith("Z"):
                value = value.replace("Z", "+00:00")
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return self.login_time
        hour = parsed.hour % 12 or 12
        suffix = "AM" if parsed.hour < 12 else "PM"
        return f"{parsed.strftime('%b')} {parsed.day}, {parsed.year}, {hour}:{parsed.minute:02d} {suffix}"


@dataclass(frozen=True)
class DeviceLimitInfo:
    """
    Device-limit rejection returned by the login endpoint.

    Attributes:
        active_devices: Sessions currently occupying the account's slots
        max_devices: Maximum concurrent sessions allowed
        current_devices: Sessions the server counts as active
        message: Server message, or a generated one when absent
    """
    active_devices: List[ActiveSession] = field(default_factory=list)
    max_devices: int = DEFAULT_MAX_DEVICES
    current_devices: int = 0
    message: str = ""

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "DeviceLimitInfo":
        raw_devices = _pick(payload, "active_devices", "activeDevices") or []
        devices = []
        for item in raw_devices:
            try:
                devices.append(ActiveSession.from_payload(item))
            except ValueError as e:
                # A device without session_id cannot be evicted
                logger.warning(f"Skipping active device entry: {e}")
        max_devices = _pick(payload, "max_devices", "maxDevices") or DEFAULT_MAX_DEVICES
        current_devices = _pick(payload, "current_devices", "currentDevices") or len(devices)
        message = _pick(payload, "message") or cls.default_message(max_devices, current_devices)
        return cls(
            active_devices=devices,
            max_devices=int(max_devices),
            current_devices=int(current_devices),
            message=message,
        )

    @staticmethod
    def default_message(max_devices: int, current_devices: int) -> str:
        plural = "s" if current_devices != 1 else ""
        return (
            f"You have reached the maximum limit of {max_devices} active devices. "
            f"Currently, you have {current_devices} active session{plural}."
        )

    @property
    def is_empty(self) -> bool:
        """True when the server reported the limit but listed no devices."""
        return not self.active_devices

    @property
    def empty_message(self) -> Optional[str]:
        return NO_ACTIVE_DEVICES_MESSAGE if self.is_empty else None

    def find(self, session_id: str) -> Optional[ActiveSession]:
        for device in self.active_devices:
            if device.session_id == session_id:
                return device
        return None


@dataclass(frozen=True)
class LoginCredentials:
    """Login attempt entered by the user."""
    email: str
    password: str = field(repr=False)
    ip: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"email": self.email, "password": self.password}
        if self.ip:
            payload["ip"] = self.ip
        return payload
