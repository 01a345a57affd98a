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
HTTP client for the Precast API with credential handling.

Every outbound call goes through PrecastApiClient.request(), which:
- Attaches the current access token
- On 401 with a Bearer header, retries once with the raw token
- On a remaining 401, waits for the shared token refresh and replays once,
  with the same raw-token retry
- On a 401 after the replay or a failed refresh, tears the session down

Transport failures are raised as TransportError and never retried here.
Any other response is returned unchanged.

Supports both per-request clients and a shared application-level client.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional

import httpx
from loguru import logger

from precast.config import API_BASE_URL, REQUEST_TIMEOUT
from precast.exceptions import AuthRejected
from precast.headers import build_auth_headers
from precast.network_errors import to_transport_error
from precast.refresh import TokenRefreshCoordinator
from precast.token_store import TokenStore


@dataclass
class _RequestAttempt:
    """One logical request, replayed at most once after a refresh."""
    method: str
    url: str
    json_data: Optional[Any]
    params: Optional[Mapping[str, Any]]
    use_bearer: bool
    include_session_id: bool
    extra_headers: Optional[Mapping[str, str]]
    bearer_fallback: bool = True
    retried: bool = False


class PrecastApiClient:
    """
    Request pipeline for the Precast API.

    Attributes:
        store: Token store read for every request
        coordinator: Refresh coordinator shared by all callers
        client: httpx client (owned or shared)

    Example:
        >>> api = PrecastApiClient(store, coordinator)
        >>> response = await api.get("/api/projects")

        >>> # Shared client (recommended)
        >>> shared = httpx.AsyncClient(timeout=REQUEST_TIMEOUT)
        >>> api = PrecastApiClient(store, coordinator, shared_client=shared)
    """

    def __init__(
        self,
        store: TokenStore,
        coordinator: TokenRefreshCoordinator,
        base_url: str = API_BASE_URL,
        shared_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initializes the client.

        Args:
            store: Token store
            coordinator: Refresh coordinator
            base_url: Backend base URL prepended to relative paths
            shared_client: Optional shared httpx.AsyncClient. It is NOT closed by close().
        """
        self.store = store
        self.coordinator = coordinator
        self._base_url = base_url.rstrip("/")
        self._shared_client = shared_client
        self._owns_client = shared_client is None
        self.client: Optional[httpx.AsyncClient] = shared_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Returns the shared client, or creates an owned one if needed."""
        if self._shared_client is not None:
            return self._shared_client

        if self.client is None or self.client.is_closed:
            logger.debug(f"Creating HTTP client (timeout={REQUEST_TIMEOUT}s)")
            self.client = httpx.AsyncClient(timeout=REQUEST_TIMEOUT, follow_redirects=True)
        return self.client

    async def close(self) -> None:
        """
        Closes the HTTP client if this instance owns it.

        Errors during close are logged, not raised, so they cannot mask
        an exception already propagating through a finally block.
        """
        if not self._owns_client:
            return

        if self.client and not self.client.is_closed:
            try:
                await self.client.aclose()
            except Exception as e:
                logger.warning(f"Error closing HTTP client: {e}")

    def _resolve_url(self, url: str) -> str:
        if url.startswith("/"):
            return f"{self._base_url}{url}"
        return url

    async def request(
        self,
        method: str,
        url: str,
        json_data: Optional[Any] = None,
        params: Optional[Mapping[str, Any]] = None,
        use_bearer: bool = True,
        include_session_id: bool = False,
        extra_headers: Optional[Mapping[str, str]] = None,
        authenticated: bool = True,
        bearer_fallback: bool = True,
    ) -> httpx.Response:
        """
        Executes a request with credential handling.

        Args:
            method: HTTP method (GET, POST, etc.)
            url: Absolute URL or path relative to the base URL
            json_data: Request body (JSON)
            params: Query parameters
            use_bearer: Send "Authorization: Bearer <token>" instead of the raw token
            include_session_id: Also send the token in a "session_id" header
            extra_headers: Additional headers
            authenticated: False sends no credential and skips 401 handling
                           (login, device logout)
            bearer_fallback: On 401 with the Bearer form, retry once with the raw token

        Returns:
            httpx.Response (any status other than an unrecoverable 401)

        Raises:
            TransportError: On network failure or timeout
            AuthRejected: If the session cannot be recovered
            RefreshFailed: If the token refresh failed
        """
        client = await self._get_client()
        attempt = _RequestAttempt(
            method=method.upper(),
            url=self._resolve_url(url),
            json_data=json_data,
            params=params,
            use_bearer=use_bearer,
            include_session_id=include_session_id,
            extra_headers=extra_headers,
            bearer_fallback=bearer_fallback,
        )

        if not authenticated:
            return await self._send(client, attempt, token=None, use_bearer=use_bearer)

        token = self.store.get().access_token
        response = await self._send_with_fallback(client, attempt, token)
        if response.status_code != 401:
            return response

        return await self._refresh_and_replay(client, attempt)

    async def _send_with_fallback(
        self,
        client: httpx.AsyncClient,
        attempt: _RequestAttempt,
        token: Optional[str],
    ) -> httpx.Response:
        """Sends the attempt; on 401 with the Bearer form, resends once with the raw token."""
        response = await self._send(client, attempt, token=token, use_bearer=attempt.use_bearer)
        if response.status_code != 401:
            return response

        # Some endpoints expect the raw session token rather than a Bearer JWT
        if token and attempt.use_bearer and attempt.bearer_fallback:
            logger.info(f"Received 401 for {attempt.method} {attempt.url}, retrying with raw token header")
            response = await self._send(client, attempt, token=token, use_bearer=False)
        return response

    async def _refresh_and_replay(self, client: httpx.AsyncClient, attempt: _RequestAttempt) -> httpx.Response:
        """Waits for the shared refresh and replays the request; a second 401 tears the session down."""
        if attempt.retried:
            await self.coordinator.teardown(f"{attempt.method} {attempt.url} rejected after replay")
            raise AuthRejected("Session expired, please log in again")

        attempt.retried = True
        logger.warning(f"Received 401 for {attempt.method} {attempt.url}, waiting for token refresh")

        new_token = await self.coordinator.refresh()

        logger.debug(f"Replaying {attempt.method} {attempt.url} with refreshed token")
        response = await self._send_with_fallback(client, attempt, new_token)
        if response.status_code == 401:
            return await self._refresh_and_replay(client, attempt)
        return response

    async def _send(
        self,
        client: httpx.AsyncClient,
        attempt: _RequestAttempt,
        token: Optional[str],
        use_bearer: bool,
    ) -> httpx.Response:
        headers = build_auth_headers(
            token,
            use_bearer=use_bearer,
            include_session_id=attempt.include_session_id,
            extra=attempt.extra_headers,
        )
        try:
            logger.debug(f"Sending {attempt.method} {attempt.url}")
            return await client.request(
                attempt.method,
                attempt.url,
                json=attempt.json_data,
                params=attempt.params,
                headers=headers,
            )
        except httpx.RequestError as e:
            error = to_transport_error(e)
            logger.error(f"{error.info.user_message} - {attempt.method} {attempt.url}")
            raise error from e

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, json_data: Optional[Any] = None, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, json_data=json_data, **kwargs)

    async def __aenter__(self) -> "PrecastApiClient":
        """Async context manager support."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Closes the client when exiting context."""
        await self.close()
