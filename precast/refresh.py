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
Single-flight token refresh.

Guarantees at most one in-flight refresh call across all concurrent callers:
- The first caller to need a refresh becomes the leader and calls the endpoint
- Callers arriving while a refresh is in flight wait in a FIFO queue
- On success every waiter receives the new access token
- On failure every waiter receives the same error, the token store is
  cleared and the session-expired collaborator is notified
- The state returns to IDLE unconditionally, so a later 401 starts a new cycle

The IDLE -> REFRESHING transition and the queue append/drain happen under one
threading.Lock, which keeps the guarantee even when callers run on different
threads or event loops. Waiters are settled through their own loop with
call_soon_threadsafe.
"""

import asyncio
import threading
from collections import deque
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Deque, List, Optional

import httpx
from loguru import logger

from precast.config import REFRESH_TIMEOUT, TOKEN_EXPIRY_BUFFER, get_refresh_url
from precast.exceptions import AuthRejected, RefreshFailed, SessionError
from precast.network_errors import classify_network_error
from precast.token_store import Credential, TokenStore
from precast.utils import Callback, extract_error_message, notify, parse_expires_in, response_json


class RefreshState(str, Enum):
    """State of the refresh coordinator."""
    IDLE = "idle"
    REFRESHING = "refreshing"


def _resolve_waiter(
    waiter: "asyncio.Future[str]",
    token: Optional[str],
    error: Optional[BaseException],
) -> None:
    if waiter.done():
        return
    if error is not None:
        waiter.set_exception(error)
    else:
        waiter.set_result(token)


class TokenRefreshCoordinator:
    """
    Coordinates access token refresh for every caller in the process.

    Attributes:
        state: Current RefreshState
        pending_count: Number of callers waiting on the in-flight refresh
        refresh_count: Number of refresh cycles started so far

    Example:
        >>> coordinator = TokenRefreshCoordinator(store, refresh_url=get_refresh_url())
        >>> new_token = await coordinator.refresh()
    """

    def __init__(
        self,
        store: TokenStore,
        refresh_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        on_session_expired: Optional[Callback] = None,
        timeout: float = REFRESH_TIMEOUT,
        expiry_buffer: int = TOKEN_EXPIRY_BUFFER,
    ):
        """
        Initializes the coordinator.

        Args:
            store: Token store holding the credential
            refresh_url: Absolute URL of the refresh endpoint
            http_client: Client used for the refresh call. It must not be wrapped
                         by the request pipeline. When None, a short-lived client
                         is created per refresh.
            on_session_expired: Collaborator notified on teardown (navigate to login)
            timeout: Transport timeout of the refresh call in seconds
            expiry_buffer: Seconds before expiry at which get_access_token refreshes
        """
        self._store = store
        self._refresh_url = refresh_url or get_refresh_url()
        self._http_client = http_client
        self._on_session_expired = on_session_expired
        self._timeout = timeout
        self._expiry_buffer = expiry_buffer

        self._lock = threading.Lock()
        self._state = RefreshState.IDLE
        self._pending: Deque["asyncio.Future[str]"] = deque()
        self._refresh_count = 0

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def refresh_count(self) -> int:
        return self._refresh_count

    async def refresh(self) -> str:
        """
        Obtains a new access token, sharing any refresh already in flight.

        Returns:
            The new access token

        Raises:
            AuthRejected: No refresh token is stored (no network call is made)
            RefreshFailed: The refresh endpoint failed
        """
        waiter: Optional["asyncio.Future[str]"] = None

        with self._lock:
            if self._state is RefreshState.REFRESHING:
                waiter = asyncio.get_running_loop().create_future()
                self._pending.append(waiter)
                position = len(self._pending)
            else:
                self._state = RefreshState.REFRESHING
                self._refresh_count += 1

        if waiter is not None:
            logger.debug(f"[RefreshCoordinator] Refresh in flight, waiting (queue position {position})")
            return await waiter

        return await self._lead_refresh()

    async def _lead_refresh(self) -> str:
        """Runs one refresh cycle as the leader and settles every waiter."""
        waiters: Optional[List["asyncio.Future[str]"]] = None
        try:
            token = await self._refresh_token_request()
        except SessionError as e:
            waiters = self._drain()
            self._store.clear()
            self._settle(waiters, error=e)
            logger.error(f"[RefreshCoordinator] Refresh failed, rejecting {len(waiters)} waiting request(s): {e}")
            await notify(self._on_session_expired)
            raise
        else:
            waiters = self._drain()
            self._settle(waiters, token=token)
            if waiters:
                logger.debug(f"[RefreshCoordinator] Released {len(waiters)} waiting request(s) with new token")
            return token
        finally:
            if waiters is None:
                # Leader was interrupted (e.g. cancelled); waiters must not hang
                waiters = self._drain()
                self._settle(waiters, error=RefreshFailed("Token refresh was interrupted"))

    def _drain(self) -> List["asyncio.Future[str]"]:
        """Returns to IDLE and takes the queue, atomically."""
        with self._lock:
            waiters = list(self._pending)
            self._pending.clear()
            self._state = RefreshState.IDLE
        return waiters

    @staticmethod
    def _settle(
        waiters: List["asyncio.Future[str]"],
        token: Optional[str] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        """Resolves or rejects waiters in FIFO order."""
        for waiter in waiters:
            try:
                waiter.get_loop().call_soon_threadsafe(_resolve_waiter, waiter, token, error)
            except RuntimeError:
                # Waiter's loop is closed: the app was torn down, nothing to resume
                logger.debug("[RefreshCoordinator] Dropping waiter of a closed event loop")

    async def _refresh_token_request(self) -> str:
        """
        Performs the refresh call and stores the result.

        Endpoint: POST /api/refresh-token
        Body: {"refresh_token": "..."}
        Response: {"access_token", "refresh_token"?, "expires_in"?, "message"?}

        Raises:
            AuthRejected: If no refresh token is stored
            RefreshFailed: On transport error, non-2xx status or missing access_token
        """
        refresh_token = self._store.get().refresh_token
        if not refresh_token:
            raise AuthRejected("No refresh token available, login required")

        logger.info("[RefreshCoordinator] Refreshing access token...")

        payload = {"refresh_token": refresh_token}
        headers = {"Content-Type": "application/json", "Accept": "application/json"}

        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self._refresh_url, json=payload, headers=headers, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._refresh_url, json=payload, headers=headers)
        except httpx.RequestError as e:
            info = classify_network_error(e)
            logger.error(f"[RefreshCoordinator] {info.user_message} ({info.technical_details})")
            raise RefreshFailed(f"Token refresh failed: {info.user_message}") from e

        if not response.is_success:
            logger.error(
                f"[RefreshCoordinator] Refresh endpoint returned {response.status_code}: {response.text[:200]}"
            )
            message = extract_error_message(
                response, f"Token refresh failed with status {response.status_code}"
            )
            raise RefreshFailed(message, status_code=response.status_code)

        data = response_json(response)
        new_access_token = data.get("access_token")
        if not new_access_token:
            logger.error(f"[RefreshCoordinator] No access_token in refresh response (keys: {sorted(data)})")
            raise RefreshFailed(
                "Refresh response does not contain access_token", status_code=response.status_code
            )

        # Server may omit refresh_token: keep the one we have
        new_refresh_token = data.get("refresh_token") or refresh_token
        expires_in = parse_expires_in(data.get("expires_in"))
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)

        self._store.set(Credential(new_access_token, new_refresh_token, expires_at))
        logger.info(f"[RefreshCoordinator] Token refreshed, expires: {expires_at.isoformat()}")
        return new_access_token

    async def get_access_token(self) -> str:
        """
        Returns a valid access token, refreshing it first if it is expiring soon.

        Raises:
            AuthRejected: If no credential is stored
            RefreshFailed: If the refresh fails
        """
        credential = self._store.get()
        if credential.is_empty:
            raise AuthRejected("Not logged in")
        if not credential.is_expiring_soon(self._expiry_buffer):
            return credential.access_token
        logger.debug("[RefreshCoordinator] Access token expiring soon, refreshing")
        return await self.refresh()

    async def teardown(self, reason: str) -> None:
        """
        Clears the credential and notifies the session-expired collaborator.

        Only the call that actually clears a credential notifies. Requests
        rejected concurrently against the same session produce one teardown.
        """
        if not self._store.clear():
            logger.debug(f"[RefreshCoordinator] Session already torn down: {reason}")
            return
        logger.warning(f"[RefreshCoordinator] Session teardown: {reason}")
        await notify(self._on_session_expired)
