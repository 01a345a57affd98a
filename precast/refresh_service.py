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
Proactive token refresh.

Checks the access token periodically and refreshes it before it expires,
so most requests never see a 401. Refreshes go through the coordinator,
so they share the single in-flight refresh with 401-triggered ones.
"""

import asyncio
from typing import Optional

from loguru import logger

from precast.config import REFRESH_CHECK_INTERVAL, TOKEN_EXPIRY_BUFFER
from precast.exceptions import SessionError
from precast.refresh import TokenRefreshCoordinator
from precast.token_store import TokenStore


class TokenRefreshService:
    """
    Background task refreshing the access token when it is about to expire.

    Checks immediately on start, then every interval seconds. Stops by itself
    when no credential is stored or a refresh fails (login is required then).
    """

    def __init__(
        self,
        store: TokenStore,
        coordinator: TokenRefreshCoordinator,
        interval: float = REFRESH_CHECK_INTERVAL,
        expiry_buffer: int = TOKEN_EXPIRY_BUFFER,
    ):
        self._store = store
        self._coordinator = coordinator
        self.interval = interval
        self.expiry_buffer = expiry_buffer
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Starts the background check. Does nothing if already running."""
        if self.is_running:
            logger.debug("[RefreshService] Already running")
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"[RefreshService] Started (checking every {self.interval:g}s)")

    async def stop(self) -> None:
        """Stops the background check and waits for it to finish."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("[RefreshService] Stopped")

    async def _run(self) -> None:
        while await self.check_and_refresh():
            await asyncio.sleep(self.interval)
        logger.info("[RefreshService] Stopped")

    async def check_and_refresh(self) -> bool:
        """
        Refreshes the token if it is expiring soon.

        Returns:
            True if the service should keep running
        """
        credential = self._store.get()
        if credential.is_empty:
            logger.info("[RefreshService] No tokens found, stopping")
            return False

        if not credential.is_expiring_soon(self.expiry_buffer):
            logger.debug("[RefreshService] Access token is still valid")
            return True

        logger.info("[RefreshService] Access token expired or expiring soon, refreshing...")
        try:
            await self._coordinator.refresh()
        except SessionError as e:
            logger.error(f"[RefreshService] Failed to refresh access token: {e}")
            return False
        return True
