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
Login, logout and session validation against the Precast backend.
"""

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

from loguru import logger

from precast.api_client import PrecastApiClient
from precast.config import LOGIN_PATH, VALIDATE_SESSION_PATH
from precast.exceptions import DeviceLimitRejected, LoginFailed
from precast.models import DeviceLimitInfo, LoginCredentials
from precast.token_store import Credential, TokenStore
from precast.utils import extract_error_message, parse_expires_in, response_json

if TYPE_CHECKING:
    from precast.refresh_service import TokenRefreshService


def is_device_limit_response(status_code: int, data: Dict[str, Any]) -> bool:
    """409, or a body flagged requires_logout with a device list."""
    if status_code == 409:
        return True
    devices = data.get("active_devices", data.get("activeDevices"))
    return data.get("requires_logout") is True and devices is not None


class AuthService:
    """
    Authentication calls for the Precast API.

    Example:
        >>> auth = AuthService(api, store)
        >>> data = await auth.login("qc@example.com", "secret")
    """

    def __init__(
        self,
        api: PrecastApiClient,
        store: TokenStore,
        refresh_service: Optional["TokenRefreshService"] = None,
    ):
        self._api = api
        self._store = store
        self._refresh_service = refresh_service

    async def login(self, email: str, password: str, ip: Optional[str] = None) -> Dict[str, Any]:
        """
        Logs in and stores the issued tokens.

        Any previous session is cleared first.

        Returns:
            Login response data: {access_token, refresh_token, expires_in, message, role}

        Raises:
            DeviceLimitRejected: If the account's device limit is reached
            LoginFailed: On any other rejection or a response without access_token
            TransportError: On network failure
        """
        return await self.login_with(LoginCredentials(email=email, password=password, ip=ip))

    async def login_with(self, credentials: LoginCredentials) -> Dict[str, Any]:
        """Same as login(), taking a LoginCredentials."""
        await self.logout()

        logger.info(f"Logging in as {credentials.email}...")
        response = await self._api.post(LOGIN_PATH, json_data=credentials.to_payload(), authenticated=False)
        data = response_json(response)

        if is_device_limit_response(response.status_code, data):
            info = DeviceLimitInfo.from_payload(data)
            logger.warning(
                f"Device limit reached for {credentials.email}: "
                f"{info.current_devices}/{info.max_devices} active sessions"
            )
            raise DeviceLimitRejected(info)

        if not response.is_success:
            message = extract_error_message(response, f"Login failed with status {response.status_code}")
            logger.error(f"Login failed ({response.status_code}): {message}")
            raise LoginFailed(message, status_code=response.status_code)

        access_token = data.get("access_token")
        refresh_token = data.get("refresh_token")
        if not access_token or not refresh_token:
            logger.error(f"Login response missing tokens (keys: {sorted(data)})")
            raise LoginFailed("Login failed: No access token received", status_code=response.status_code)

        expires_in = parse_expires_in(data.get("expires_in"))
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
        self._store.set(Credential(access_token, refresh_token, expires_at))
        logger.info(f"Logged in as {credentials.email}, role: {data.get('role') or 'unknown'}")

        if self._refresh_service is not None:
            self._refresh_service.start()

        return data

    async def logout(self) -> None:
        """Stops proactive refresh and clears the stored credential."""
        if self._refresh_service is not None:
            await self._refresh_service.stop()
        self._store.clear()

    async def validate_session(self) -> Dict[str, Any]:
        """
        Asks the server whether the current session is valid.

        Returns:
            {"valid": False} without a stored token, otherwise the server data
            ({host_name, message, role_name, session_id})
        """
        access_token = self._store.get().access_token
        if not access_token:
            return {"valid": False}

        response = await self._api.post(VALIDATE_SESSION_PATH, json_data={"SessionData": access_token})
        if not response.is_success:
            logger.warning(f"Session validation returned {response.status_code}")
            return {"valid": False, "status": response.status_code}
        return response_json(response)
