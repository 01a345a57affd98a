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
Token store for the Precast session layer.

Holds the client's current credential (access token, refresh token, expiry)
and nothing else. Reads return an immutable snapshot taken under a lock,
so no reader can observe a half-written credential.

Optionally persists the credential to a JSON file so the CLI keeps
its session between runs.
"""

import json
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from loguru import logger

from precast.config import TOKEN_EXPIRY_BUFFER


@dataclass(frozen=True)
class Credential:
    """
    Access/refresh token pair with its expiry.

    Both tokens are present or both absent; a partial credential
    is treated as absent by the store.
    """
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.access_token) and bool(self.refresh_token)

    @property
    def is_empty(self) -> bool:
        return not self.is_complete

    def is_expiring_soon(self, buffer_seconds: int = TOKEN_EXPIRY_BUFFER) -> bool:
        """
        Checks if the access token expires within buffer_seconds.

        Returns:
            True if the token is about to expire, or if no expiry is known
        """
        if not self.expires_at:
            return True
        threshold = datetime.now(timezone.utc) + timedelta(seconds=buffer_seconds)
        return self.expires_at <= threshold


EMPTY_CREDENTIAL = Credential()


def _parse_expiry(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        if value.endswith("Z"):
            value = value.replace("Z", "+00:00")
        parsed = datetime.fromisoformat(value)
    except ValueError as e:
        logger.warning(f"Failed to parse expires_at: {e}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class TokenStore:
    """
    Process-wide holder of the client's credential.

    Attributes:
        creds_file: Optional path to the JSON file mirroring the credential

    Example:
        >>> store = TokenStore()
        >>> store.set(Credential("access", "refresh", expires_at))
        >>> store.get().access_token
        'access'
    """

    def __init__(self, creds_file: Optional[str] = None):
        """
        Initializes the store.

        Args:
            creds_file: Path to a JSON file to load from and save to (optional).
                        Without it the credential lives in memory only.
        """
        self._lock = threading.Lock()
        self._credential: Credential = EMPTY_CREDENTIAL
        self.creds_file = creds_file

        if creds_file:
            self._load_from_file(creds_file)

    def get(self) -> Credential:
        """Returns the current credential snapshot (empty if absent or partial)."""
        with self._lock:
            return self._credential

    def set(self, credential: Credential) -> None:
        """
        Replaces the stored credential.

        A partial credential (one token missing) is stored as absent.
        """
        if not credential.is_complete:
            logger.warning("[TokenStore] Partial credential received, storing as absent")
            credential = EMPTY_CREDENTIAL

        with self._lock:
            self._credential = credential
            self._save_to_file(credential)

        if credential.is_complete:
            expires = credential.expires_at.isoformat() if credential.expires_at else "unknown"
            logger.debug(f"[TokenStore] Credential updated, expires: {expires}")

    def clear(self) -> bool:
        """
        Removes the stored credential.

        Returns:
            True if a complete credential was stored before the call
        """
        with self._lock:
            had_credential = self._credential.is_complete
            self._credential = EMPTY_CREDENTIAL
            self._delete_file()
        logger.debug("[TokenStore] Credential cleared")
        return had_credential

    def is_expiring_soon(self, buffer_seconds: int = TOKEN_EXPIRY_BUFFER) -> bool:
        return self.get().is_expiring_soon(buffer_seconds)

    def _load_from_file(self, file_path: str) -> None:
        """
        Loads the credential from a JSON file.

        Supported JSON fields:
        - access_token
        - refresh_token
        - expires_at (ISO 8601)
        """
        try:
            path = Path(file_path).expanduser()
            if not path.exists():
                logger.debug(f"Credentials file not found: {file_path}")
                return

            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)

            credential = Credential(
                access_token=data.get("access_token"),
                refresh_token=data.get("refresh_token"),
                expires_at=_parse_expiry(data.get("expires_at")),
            )
            if not credential.is_complete:
                logger.warning(f"Credentials file {file_path} holds a partial credential, ignoring it")
                return

            self._credential = credential
            logger.info(f"Credentials loaded from {file_path}")

        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading credentials from file: {e}")

    def _save_to_file(self, credential: Credential) -> None:
        """
        Saves the credential to the JSON file, preserving other fields.

        Called with the lock held.
        """
        if not self.creds_file:
            return

        try:
            path = Path(self.creds_file).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)

            existing_data = {}
            if path.exists():
                with open(path, "r", encoding="utf-8") as f:
                    existing_data = json.load(f)

            existing_data["access_token"] = credential.access_token
            existing_data["refresh_token"] = credential.refresh_token
            existing_data["expires_at"] = credential.expires_at.isoformat() if credential.expires_at else None

            with open(path, "w", encoding="utf-8") as f:
                json.dump(existing_data, f, indent=2, ensure_ascii=False)

            logger.debug(f"Credentials saved to {self.creds_file}")

        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error saving credentials: {e}")

    def _delete_file(self) -> None:
        if not self.creds_file:
            return
        try:
            Path(self.creds_file).expanduser().unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Error deleting credentials file: {e}")


# Global singleton instance
_token_store: Optional[TokenStore] = None


def get_token_store() -> TokenStore:
    """Returns the global token store, creating an in-memory one on first use."""
    global _token_store
    if _token_store is None:
        _token_store = TokenStore()
    return _token_store


def init_token_store(creds_file: Optional[str] = None) -> TokenStore:
    """
    Initializes the global token store.

    Should be called once at application startup.
    """
    global _token_store
    _token_store = TokenStore(creds_file=creds_file)
    logger.info(f"[TokenStore] Initialized ({'file: ' + creds_file if creds_file else 'in-memory'})")
    return _token_store
