# -*- coding: utf-8 -*-

"""
Common fixtures and utilities for testing the Precast session layer.

Provides test isolation from the network and from global state.
All HTTP traffic goes through httpx.MockTransport.
"""

import inspect
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from precast.session import PrecastSession
from precast.token_store import Credential, TokenStore


BASE_URL = "https://precast.test"


# =============================================================================
# Mock Backend
# =============================================================================

class MockBackend:
    """
    Routes requests of an httpx.MockTransport to per-endpoint handlers.

    Handlers receive the httpx.Request and return an httpx.Response
    (sync or async). Every request is recorded.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.routes: Dict[Tuple[str, str], Callable] = {}

    def route(self, method: str, path: str, handler: Callable) -> None:
        self.routes[(method.upper(), path)] = handler

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"message": "Not found"})
        result = handler(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    def calls(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def request_json(request: httpx.Request) -> Dict[str, Any]:
    """Decodes the JSON body of a recorded request."""
    return json.loads(request.content) if request.content else {}


# =============================================================================
# Credential Fixtures
# =============================================================================

def make_credential(
    access_token: str = "old_access_token",
    refresh_token: str = "old_refresh_token",
    expires_in: int = 900,
) -> Credential:
    return Credential(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    )


@pytest.fixture
def credential_factory():
    """Factory for credentials expiring expires_in seconds from now."""
    return make_credential


@pytest.fixture
def valid_credential():
    """Returns a credential valid for 15 minutes."""
    return make_credential()


@pytest.fixture
def store():
    """Returns an empty in-memory token store."""
    return TokenStore()


@pytest.fixture
def logged_in_store(valid_credential):
    """Returns an in-memory token store holding a valid credential."""
    token_store = TokenStore()
    token_store.set(valid_credential)
    return token_store


@pytest.fixture
def backend():
    """Returns a MockBackend with no routes."""
    return MockBackend()


# =============================================================================
# Response Factories
# =============================================================================

@pytest.fixture
def mock_refresh_response():
    """
    Factory for refresh endpoint bodies.
    """
    def _create_response(
        access_token: str = "new_access_token",
        refresh_token: Optional[str] = "new_refresh_token",
        expires_in: Optional[int] = 900,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"access_token": access_token, "message": "Token refreshed"}
        if refresh_token is not None:
            body["refresh_token"] = refresh_token
        if expires_in is not None:
            body["expires_in"] = expires_in
        return body
    return _create_response


@pytest.fixture
def mock_login_response():
    """Factory for successful login bodies."""
    def _create_response(access_token: str = "login_access_token", role: str = "QA/QC") -> Dict[str, Any]:
        return {
            "access_token": access_token,
            "refresh_token": "login_refresh_token",
            "expires_in": 900,
            "message": "Login successful",
            "role": role,
        }
    return _create_response


@pytest.fixture
def device_limit_payload():
    """Factory for device-limit rejection bodies."""
    def _create_payload(session_ids: Tuple[str, ...] = ("s1",), max_devices: int = 3, current_devices: int = 3):
        return {
            "message": "Maximum device limit reached",
            "requires_logout": True,
            "max_devices": max_devices,
            "current_devices": current_devices,
            "active_devices": [
                {
                    "session_id": session_id,
                    "ip_address": f"10.0.0.{i + 1}",
                    "login_time": "2025-01-05T15:04:00Z",
                    "expires_at": "2025-01-06T15:04:00Z",
                }
                for i, session_id in enumerate(session_ids)
            ],
        }
    return _create_payload


# =============================================================================
# Session Fixtures
# =============================================================================

@pytest.fixture
def make_session(backend):
    """
    Factory for PrecastSession instances wired to the mock backend.

    Use as: async with make_session(store=...) as session: ...
    """
    def _create(store: Optional[TokenStore] = None, **kwargs) -> PrecastSession:
        return PrecastSession(
            base_url=BASE_URL,
            store=store if store is not None else TokenStore(),
            transport=backend.transport,
            **kwargs,
        )
    return _create
