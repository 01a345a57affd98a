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
Device session admission.

The backend caps the number of concurrently active sessions per account.
When a login hits the cap, the server returns the list of active sessions.
This module drives the negotiation that frees a slot:

    IDLE -> ATTEMPTING -> ADMITTED
                       -> REJECTED_DEVICE_LIMIT -> EVICTING -> RETRY_LOGIN -> ADMITTED | FAILED
                                                            -> REJECTED_DEVICE_LIMIT (eviction failed)
                                                -> ABANDONED (dismissed)

One instance corresponds to one device-limit dialog. Only one device can be
logged out at a time, and the stored login is retried exactly once after a
successful eviction. A retry that hits the limit again is reported as an
ordinary login failure, never looped back into the dialog.
"""

import threading
from enum import Enum
from typing import Any, Dict, Optional

from loguru import logger

from precast.api_client import PrecastApiClient
from precast.auth import AuthService
from precast.config import LOGOUT_DEVICE_PATH
from precast.exceptions import (
    AdmissionStateError,
    DeviceLimitRejected,
    EvictionFailed,
    EvictionInProgress,
    LoginFailed,
    TransportError,
)
from precast.models import DeviceLimitInfo, LoginCredentials
from precast.utils import Callback, extract_error_message, notify


DEFAULT_EVICTION_ERROR = "Failed to logout device. Please try again."


class AdmissionState(str, Enum):
    """State of a device admission flow."""
    IDLE = "idle"
    ATTEMPTING = "attempting"
    REJECTED_DEVICE_LIMIT = "rejected_device_limit"
    EVICTING = "evicting"
    RETRY_LOGIN = "retry_login"
    ADMITTED = "admitted"
    FAILED = "failed"
    ABANDONED = "abandoned"


class DeviceSessionAdmission:
    """
    Login flow that can evict another device session to get admitted.

    Attributes:
        state: Current AdmissionState
        device_limit: Rejection details to present while REJECTED_DEVICE_LIMIT
        evicting_session_id: Session being logged out while EVICTING
        last_error: Inline error of the last failed eviction

    Example:
        >>> admission = DeviceSessionAdmission(auth, api)
        >>> data = await admission.begin("qc@example.com", "secret")
        >>> if data is None:
        ...     device = admission.device_limit.active_devices[0]
        ...     data = await admission.evict(device.session_id)
    """

    def __init__(
        self,
        auth: AuthService,
        api: PrecastApiClient,
        on_device_evicted: Optional[Callback] = None,
    ):
        """
        Args:
            auth: Service performing the login calls
            api: Pipeline used for the unauthenticated device-logout call
            on_device_evicted: Collaborator notified with the evicted session id
        """
        self._auth = auth
        self._api = api
        self._on_device_evicted = on_device_evicted

        self._lock = threading.Lock()
        self._state = AdmissionState.IDLE
        self._context: Optional[LoginCredentials] = None
        self._device_limit: Optional[DeviceLimitInfo] = None
        self._evicting: Optional[str] = None
        self.last_error: Optional[str] = None

    @property
    def state(self) -> AdmissionState:
        return self._state

    @property
    def device_limit(self) -> Optional[DeviceLimitInfo]:
        return self._device_limit

    @property
    def evicting_session_id(self) -> Optional[str]:
        return self._evicting

    @property
    def has_pending_login(self) -> bool:
        return self._context is not None

    async def begin(self, email: str, password: str, ip: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Submits the login.

        Returns:
            Login data if admitted, or None when the device limit was hit
            (device_limit then holds the sessions to choose from)

        Raises:
            AdmissionStateError: If a login or eviction is already running
            LoginFailed, TransportError: On other login failures
        """
        with self._lock:
            if self._state in (AdmissionState.ATTEMPTING, AdmissionState.EVICTING, AdmissionState.RETRY_LOGIN):
                raise AdmissionStateError(f"Cannot start a login while {self._state.value}")
            self._state = AdmissionState.ATTEMPTING
            self._context = None
            self._device_limit = None
            self.last_error = None

        credentials = LoginCredentials(email=email, password=password, ip=ip)
        try:
            data = await self._auth.login_with(credentials)
        except DeviceLimitRejected as e:
            with self._lock:
                self._context = credentials
                self._device_limit = e.info
                self._state = AdmissionState.REJECTED_DEVICE_LIMIT
            if e.info.is_empty:
                logger.warning("[Admission] Device limit reported without any active devices")
            else:
                logger.info(f"[Admission] Device limit reached, {len(e.info.active_devices)} session(s) to choose from")
            return None
        except Exception:
            self._state = AdmissionState.FAILED
            raise

        self._state = AdmissionState.ADMITTED
        return data

    async def evict(self, session_id: str) -> Dict[str, Any]:
        """
        Logs out the chosen device and retries the stored login once.

        Returns:
            Login data of the retried login

        Raises:
            EvictionInProgress: If another device is being logged out
            AdmissionStateError: If not waiting for a device choice, or session_id is not listed
            EvictionFailed: If the device logout failed (a different device may be chosen)
            LoginFailed: If the retried login failed, including a repeated device limit
        """
        with self._lock:
            if self._state is AdmissionState.EVICTING:
                raise EvictionInProgress(f"Device {self._evicting} is already being logged out")
            if self._state is not AdmissionState.REJECTED_DEVICE_LIMIT:
                raise AdmissionStateError(f"Cannot evict a device while {self._state.value}")
            if self._device_limit.find(session_id) is None:
                raise AdmissionStateError(f"Session {session_id} is not an active device of this account")
            self._state = AdmissionState.EVICTING
            self._evicting = session_id
            self.last_error = None

        try:
            await self._logout_device(session_id)
        except BaseException as e:
            with self._lock:
                self._state = AdmissionState.REJECTED_DEVICE_LIMIT
                self._evicting = None
            if isinstance(e, EvictionFailed):
                self.last_error = e.message
            raise

        with self._lock:
            self._state = AdmissionState.RETRY_LOGIN
            self._evicting = None

        await notify(self._on_device_evicted, session_id)
        return await self._retry_login()

    async def _logout_device(self, session_id: str) -> None:
        """
        Calls the device-logout endpoint without authentication.

        Endpoint: POST /api/logout-device
        Body: {"session_id": "..."}
        """
        logger.info(f"[Admission] Logging out device session {session_id[:8]}...")
        try:
            response = await self._api.post(
                LOGOUT_DEVICE_PATH, json_data={"session_id": session_id}, authenticated=False
            )
        except TransportError as e:
            logger.error(f"[Admission] Device logout failed: {e}")
            raise EvictionFailed(session_id, DEFAULT_EVICTION_ERROR) from e

        if not response.is_success:
            message = extract_error_message(response, DEFAULT_EVICTION_ERROR)
            logger.error(f"[Admission] Device logout returned {response.status_code}: {message}")
            raise EvictionFailed(session_id, message)

        logger.info("[Admission] Device logged out successfully")

    async def _retry_login(self) -> Dict[str, Any]:
        """Resubmits the stored login exactly once, then discards it."""
        credentials = self._context
        logger.info(f"[Admission] Retrying login for {credentials.email}")
        try:
            data = await self._auth.login_with(credentials)
        except DeviceLimitRejected as e:
            self._state = AdmissionState.FAILED
            logger.warning("[Admission] Device limit still reached after eviction, not retrying again")
            raise LoginFailed(e.message, status_code=409) from e
        except Exception:
            self._state = AdmissionState.FAILED
            raise
        finally:
            self._context = None
            self._device_limit = None

        self._state = AdmissionState.ADMITTED
        return data

    def dismiss(self) -> bool:
        """
        Closes the device choice without evicting.

        Returns:
            False if ignored (a device is being logged out or nothing to dismiss)
        """
        with self._lock:
            if self._state is AdmissionState.EVICTING:
                logger.debug("[Admission] Dismiss ignored while a device is being logged out")
                return False
            if self._state is not AdmissionState.REJECTED_DEVICE_LIMIT:
                return False
            self._state = AdmissionState.ABANDONED
            self._context = None
            self._device_limit = None
            self.last_error = None
        logger.info("[Admission] Device choice dismissed, login abandoned")
        return True
