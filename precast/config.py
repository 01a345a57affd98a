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
Precast Session configuration.

Centralized storage for all settings, constants and endpoint paths.
Loads environment variables and provides typed access to them.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# ==================================================================================================
# API Settings
# ==================================================================================================

# Base URL of the Precast backend
DEFAULT_API_BASE_URL: str = "https://precast.blueinvent.com"
API_BASE_URL: str = os.getenv("PRECAST_API_BASE_URL", DEFAULT_API_BASE_URL).rstrip("/")

# User-Agent sent with every request (same value the mobile app sends)
USER_AGENT: str = os.getenv("PRECAST_USER_AGENT", "PrecastApp/1.0")

# Endpoint paths
LOGIN_PATH: str = "/api/login"
REFRESH_PATH: str = "/api/refresh-token"
VALIDATE_SESSION_PATH: str = "/api/validate-session"
LOGOUT_DEVICE_PATH: str = "/api/logout-device"

# ==================================================================================================
# Timeouts
# ==================================================================================================

# Timeout for regular API requests (seconds)
REQUEST_TIMEOUT: float = float(os.getenv("REQUEST_TIMEOUT", "20"))

# Timeout for the refresh-token call (seconds)
# A transport timeout here is treated as a refresh failure.
REFRESH_TIMEOUT: float = float(os.getenv("REFRESH_TIMEOUT", "15"))

# ==================================================================================================
# Token Settings
# ==================================================================================================

# Seconds before expiry at which the access token counts as "expiring soon"
TOKEN_EXPIRY_BUFFER: int = int(os.getenv("TOKEN_EXPIRY_BUFFER", "60"))

# Interval of the proactive refresh check (seconds). Default: 5 minutes
REFRESH_CHECK_INTERVAL: float = float(os.getenv("REFRESH_CHECK_INTERVAL", "300"))

# Lifetime assumed when the server omits expires_in (seconds)
DEFAULT_EXPIRES_IN: int = 900

# Path to the JSON file holding persisted credentials.
# Empty value keeps credentials in memory only.
_raw_creds_file = os.getenv("PRECAST_CREDS_FILE", "")
CREDS_FILE: str = str(Path(_raw_creds_file)) if _raw_creds_file else ""

# Credentials file used by the CLI when PRECAST_CREDS_FILE is not set
DEFAULT_CLI_CREDS_FILE: str = str(Path("~/.precast/credentials.json"))

# ==================================================================================================
# Device Admission
# ==================================================================================================

# Device limit assumed when the server omits max_devices
DEFAULT_MAX_DEVICES: int = int(os.getenv("DEFAULT_MAX_DEVICES", "3"))

# ==================================================================================================
# Logging
# ==================================================================================================

# Log level for loguru: TRACE, DEBUG, INFO, WARNING, ERROR, CRITICAL
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


def _join(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}{path}"


def get_refresh_url(base_url: str = API_BASE_URL) -> str:
    """Returns the refresh-token URL for the given backend."""
    return _join(base_url, REFRESH_PATH)

