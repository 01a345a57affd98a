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
Utility functions shared by the session layer.
"""

import inspect
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import httpx
from loguru import logger

from precast.config import DEFAULT_EXPIRES_IN


# Collaborator callbacks may be plain functions or coroutines
Callback = Callable[..., Union[None, Awaitable[None]]]


def response_json(response: httpx.Response) -> Dict[str, Any]:
    """Returns the response body as a dict, or {} when it is not a JSON object."""
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def parse_expires_in(value: Any, default: int = DEFAULT_EXPIRES_IN) -> int:
    """
    Converts an "expires_in" field to seconds.

    Missing, non-numeric or non-positive values fall back to default.
    """
    if value is None or value == "":
        return default
    try:
        seconds = int(value)
    except (TypeError, ValueError, OverflowError):
        logger.warning(f"Invalid expires_in {value!r}, using default of {default}s")
        return default
    if seconds <= 0:
        logger.warning(f"Non-positive expires_in {value!r}, using default of {default}s")
        return default
    return seconds


def extract_error_message(response: httpx.Response, default: str) -> str:
    """
    Extracts a user-facing error message from a failed response.

    Tries the JSON "message"/"error" fields first and falls back to the
    raw body text, then to default.
    """
    text = response.text
    try:
        data = response.json()
    except ValueError:
        return text.strip() or default

    if isinstance(data, dict):
        message = data.get("message") or data.get("error")
        if message:
            return str(message)
    return default


async def notify(callback: Optional[Callback], *args: Any) -> None:
    """
    Calls an external collaborator (navigation, login screen).

    Supports sync and async callbacks. Collaborator errors are logged,
    not propagated: teardown must complete regardless.
    """
    if callback is None:
        return
    try:
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.error(f"Collaborator callback {getattr(callback, '__name__', callback)!r} failed: {e}")
