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
Network error classification for the Precast API client.

Transport failures never reach callers as raw httpx exceptions. They are
classified into a NetworkErrorInfo and wrapped in TransportError, so the
app can show an actionable message and decide whether to retry.

Architecture:
- ErrorCategory: Enum of network failure types
- NetworkErrorInfo: Structured information about a failure
- classify_network_error(): Analyzes an exception and returns NetworkErrorInfo
- to_transport_error(): Wraps an exception into TransportError
- format_error_for_user(): Renders the info as text for the CLI
"""

import socket
from dataclasses import dataclass
from enum import Enum
from typing import List

import httpx

from precast.exceptions import TransportError


class ErrorCategory(str, Enum):
    """Categories of network failures."""
    DNS_RESOLUTION = "dns_resolution"
    CONNECTION_REFUSED = "connection_refused"
    CONNECTION_RESET = "connection_reset"
    NETWORK_UNREACHABLE = "network_unreachable"
    TIMEOUT_CONNECT = "timeout_connect"
    TIMEOUT_READ = "timeout_read"
    SSL_ERROR = "ssl_error"
    PROXY_ERROR = "proxy_error"
    TOO_MANY_REDIRECTS = "too_many_redirects"
    UNKNOWN = "unknown"


@dataclass
class NetworkErrorInfo:
    """
    Structured information about a network failure.

    Attributes:
        category: Error category for classification
        user_message: Clear, non-technical message for the app user
        troubleshooting_steps: Actionable steps to resolve the issue
        technical_details: Exception type and text for logs
        is_retryable: Whether retrying the request might succeed
    """
    category: ErrorCategory
    user_message: str
    troubleshooting_steps: List[str]
    technical_details: str
    is_retryable: bool


def classify_network_error(error: Exception) -> NetworkErrorInfo:
    """
    Classifies a network error and returns structured information.

    Args:
        error: The exception that occurred (typically httpx.RequestError)

    Returns:
        NetworkErrorInfo with classification and user-facing details
    """
    technical_details = f"{type(error).__name__}: {error}"

    if isinstance(error, httpx.ConnectError):
        return _classify_connect_error(error, technical_details)

    if isinstance(error, httpx.TimeoutException):
        return _classify_timeout_error(error, technical_details)

    if isinstance(error, httpx.TooManyRedirects):
        return NetworkErrorInfo(
            category=ErrorCategory.TOO_MANY_REDIRECTS,
            user_message="Too many redirects - the Precast server is redirecting in a loop.",
            troubleshooting_steps=[
                "This is a server configuration issue",
                "Contact your Precast administrator if it persists",
            ],
            technical_details=technical_details,
            is_retryable=False,
        )

    if isinstance(error, httpx.ProxyError):
        return NetworkErrorInfo(
            category=ErrorCategory.PROXY_ERROR,
            user_message="Proxy connection failed - cannot reach the server through the configured proxy.",
            troubleshooting_steps=[
                "Check HTTP_PROXY / HTTPS_PROXY settings",
                "Try again without the proxy",
            ],
            technical_details=technical_details,
            is_retryable=True,
        )

    if isinstance(error, httpx.RequestError):
        return NetworkErrorInfo(
            category=ErrorCategory.UNKNOWN,
            user_message="Network request failed due to an unexpected error.",
            troubleshooting_steps=[
                "Check your internet connection",
                "Try again in a few moments",
            ],
            technical_details=technical_details,
            is_retryable=True,
        )

    return NetworkErrorInfo(
        category=ErrorCategory.UNKNOWN,
        user_message="An unexpected error occurred.",
        troubleshooting_steps=["Try again in a few moments"],
        technical_details=technical_details,
        is_retryable=True,
    )


def _classify_connect_error(error: httpx.ConnectError, technical_details: str) -> NetworkErrorInfo:
    """Splits httpx.ConnectError into DNS, refused, reset, unreachable and SSL cases."""
    error_str = str(error)
    cause = error.__cause__

    if cause and isinstance(cause, socket.gaierror):
        errno = getattr(cause, "errno", None)
        return NetworkErrorInfo(
            category=ErrorCategory.DNS_RESOLUTION,
            user_message="DNS resolution failed - cannot resolve the Precast server address.",
            troubleshooting_steps=[
                "Check your internet connection",
                "Switch between Wi-Fi and mobile data",
                "Disable VPN temporarily if you use one",
            ],
            technical_details=f"{technical_details} (errno: {errno})",
            is_retryable=True,
        )

    if "Connection refused" in error_str or "ECONNREFUSED" in error_str:
        return NetworkErrorInfo(
            category=ErrorCategory.CONNECTION_REFUSED,
            user_message="Connection refused - the Precast server is not accepting connections.",
            troubleshooting_steps=[
                "The service may be temporarily down",
                "Try again in a few moments",
            ],
            technical_details=technical_details,
            is_retryable=True,
        )

    if "Connection reset" in error_str or "ECONNRESET" in error_str:
        return NetworkErrorInfo(
            category=ErrorCategory.CONNECTION_RESET,
            user_message="Connection reset - the server closed the connection unexpectedly.",
            troubleshooting_steps=[
                "This is usually temporary",
                "Try again in a few moments",
            ],
            technical_details=technical_details,
            is_retryable=True,
        )

    if "Network is unreachable" in error_str or "No route to host" in error_str or "ENETUNREACH" in error_str:
        return NetworkErrorInfo(
            category=ErrorCategory.NETWORK_UNREACHABLE,
            user_message="Network unreachable - you appear to be offline.",
            troubleshooting_steps=[
                "Check your internet connection",
                "Move to an area with better coverage",
            ],
            technical_details=technical_details,
            is_retryable=True,
        )

    if "SSL" in error_str or "TLS" in error_str or "certificate" in error_str.lower():
        return NetworkErrorInfo(
            category=ErrorCategory.SSL_ERROR,
            user_message="SSL/TLS error - a secure connection could not be established.",
            troubleshooting_steps=[
                "Check the device date and time",
                "Avoid public networks that intercept HTTPS traffic",
            ],
            technical_details=technical_details,
            is_retryable=False,
        )

    return NetworkErrorInfo(
        category=ErrorCategory.UNKNOWN,
        user_message="Connection failed - unable to reach the Precast server.",
        troubleshooting_steps=[
            "Check your internet connection",
            "Try again in a few moments",
        ],
        technical_details=technical_details,
        is_retryable=True,
    )


def _classify_timeout_error(error: httpx.TimeoutException, technical_details: str) -> NetworkErrorInfo:
    """Splits httpx.TimeoutException into connect and read timeouts."""
    if isinstance(error, httpx.ConnectTimeout):
        return NetworkErrorInfo(
            category=ErrorCategory.TIMEOUT_CONNECT,
            user_message="Connection timeout - the server did not respond to the connection attempt.",
            troubleshooting_steps=[
                "Check your internet connection speed",
                "Try again in a few moments",
            ],
            technical_details=technical_details,
            is_retryable=True,
        )

    return NetworkErrorInfo(
        category=ErrorCategory.TIMEOUT_READ,
        user_message="Request timeout - the server took too long to respond.",
        troubleshooting_steps=[
            "Check your internet connection stability",
            "Try again in a few moments",
        ],
        technical_details=technical_details,
        is_retryable=True,
    )


def to_transport_error(error: Exception) -> TransportError:
    """Classifies an httpx exception and wraps it into TransportError."""
    return TransportError(classify_network_error(error))


def format_error_for_user(error_info: NetworkErrorInfo, include_troubleshooting: bool = True) -> str:
    """
    Renders the error as plain text with numbered troubleshooting steps.

    Example:
        >>> info = classify_network_error(httpx.ConnectError("Connection refused"))
        >>> click.echo(format_error_for_user(info))
    """
    message = error_info.user_message
    if include_troubleshooting and error_info.troubleshooting_steps:
        message += "\n\nTroubleshooting steps:\n"
        for i, step in enumerate(error_info.troubleshooting_steps, 1):
            message += f"{i}. {step}\n"
    return message.strip()
