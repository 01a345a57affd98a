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
Exception hierarchy for the session layer.

All errors derive from SessionError so callers can catch the whole family:
- TransportError: network failure or timeout (retryable by the caller)
- AuthRejected: 401 that cannot be recovered (no refresh token, replay rejected)
- RefreshFailed: refresh endpoint failed or returned a malformed body
- DeviceLimitRejected: login refused because the device limit is reached
- EvictionFailed: device logout failed
- EvictionInProgress: another eviction is already running
- LoginFailed: any other login failure
- AdmissionStateError: admission operation called in the wrong state
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from precast.models import DeviceLimitInfo
    from precast.network_errors import NetworkErrorInfo


class SessionError(Exception):
    """Base class for session layer errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TransportError(SessionError):
    """Network failure. Carries the classified error details."""

    def __init__(self, info: "NetworkErrorInfo"):
        super().__init__(info.user_message)
        self.info = info

    @property
    def is_retryable(self) -> bool:
        return self.info.is_retryable


class AuthRejected(SessionError):
    """Authentication failed and cannot be recovered by a refresh."""


class RefreshFailed(SessionError):
    """The refresh endpoint failed, timed out or returned no access token."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DeviceLimitRejected(SessionError):
    """Login refused because the account's device limit is reached."""

    def __init__(self, info: "DeviceLimitInfo"):
        super().__init__(info.message)
        self.info = info


class EvictionFailed(SessionError):
    """Device logout failed. The admission context is preserved."""

    def __init__(self, session_id: str, message: str):
        super().__init__(message)
        self.session_id = session_id


class EvictionInProgress(SessionError):
    """A device logout is already running for this admission."""


class LoginFailed(SessionError):
    """Login failed for a reason other than the device limit."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AdmissionStateError(SessionError):
    """Admission operation is not allowed in the current state."""
