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
Application-level wiring of the session layer.

Builds exactly one store, coordinator, request pipeline and auth service,
sharing one httpx client, and hands the same instances to every caller.
"""

from typing import Optional

import httpx
from loguru import logger

from precast.admission import DeviceSessionAdmission
from precast.api_client import PrecastApiClient
from precast.auth import AuthService
from precast.config import API_BASE_URL, REFRESH_CHECK_INTERVAL, REQUEST_TIMEOUT, get_refresh_url
from precast.refresh import TokenRefreshCoordinator
from precast.refresh_service import TokenRefreshService
from precast.token_store import TokenStore, get_token_store
from precast.utils import Callback


class PrecastSession:
    """
    Owns the session layer components for one application.

    Attributes:
        store: Token store (process-wide store unless one is given)
        coordinator: Refresh coordinator shared by every request
        api: Request pipeline
        auth: Login / logout / validate-session calls
        refresh_service: Proactive refresh task

    Example:
        >>> async with PrecastSession(on_session_expired=go_to_login) as session:
        ...     admission = session.admission()
        ...     await admission.begin(email, password)
        ...     response = await session.api.get("/api/projects")
    """

    def __init__(
        self,
        base_url: str = API_BASE_URL,
        store: Optional[TokenStore] = None,
        on_session_expired: Optional[Callback] = None,
        on_device_evicted: Optional[Callback] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        refresh_interval: float = REFRESH_CHECK_INTERVAL,
    ):
        """
        Args:
            base_url: Backend base URL
            store: Token store to use (default: global store)
            on_session_expired: Called after teardown (navigate to login)
            on_device_evicted: Called with the session id after a device eviction
            transport: Custom httpx transport (proxies, tests)
            refresh_interval: Proactive refresh check interval in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.store = store if store is not None else get_token_store()
        self._on_device_evicted = on_device_evicted

        self._http = httpx.AsyncClient(timeout=REQUEST_TIMEOUT, follow_redirects=True, transport=transport)

        self.coordinator = TokenRefreshCoordinator(
            self.store,
            refresh_url=get_refresh_url(self.base_url),
            http_client=self._http,
            on_session_expired=on_session_expired,
        )
        self.api = PrecastApiClient(
            self.store, self.coordinator, base_url=self.base_url, shared_client=self._http
        )
        self.refresh_service = TokenRefreshService(self.store, self.coordinator, interval=refresh_interval)
        self.auth = AuthService(self.api, self.store, refresh_service=self.refresh_service)

        logger.debug(f"Precast session initialized: base_url={self.base_url}")

    def admission(self) -> DeviceSessionAdmission:
        """Creates the admission flow for one login dialog."""
        return DeviceSessionAdmission(self.auth, self.api, on_device_evicted=self._on_device_evicted)

    async def close(self) -> None:
        """Stops the refresh task and closes the shared HTTP client."""
        await self.refresh_service.stop()
        if not self._http.is_closed:
            await self._http.aclose()

    async def __aenter__(self) -> "PrecastSession":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
