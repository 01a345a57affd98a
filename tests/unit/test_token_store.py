# -*- coding: utf-8 -*-

"""
Unit tests for TokenStore and Credential.
Tests snapshot reads, partial credential handling, expiry checks and file persistence.
"""

import json
import threading
from datetime import datetime, timedelta, timezone

from precast import token_store as token_store_module
from precast.token_store import EMPTY_CREDENTIAL, Credential, TokenStore, get_token_store, init_token_store


class TestCredential:
    """Tests for the Credential value type."""

    def test_complete_credential(self, credential_factory):
        """
        What it does: Verifies a credential with both tokens is complete.
        Purpose: Ensure is_complete/is_empty reflect the token pair.
        """
        credential = credential_factory()
        assert credential.is_complete is True
        assert credential.is_empty is False

    def test_partial_credential_is_empty(self):
        """
        What it does: Verifies a credential missing one token counts as empty.
        Purpose: Ensure the both-or-neither rule is applied to reads.
        """
        assert Credential(access_token="a").is_empty is True
        assert Credential(refresh_token="r").is_empty is True
        assert EMPTY_CREDENTIAL.is_empty is True

    def test_is_expiring_soon_within_buffer(self, credential_factory):
        """
        What it does: Verifies a token expiring within the buffer is expiring soon.
        Purpose: Ensure proactive refresh triggers 60 seconds early.
        """
        print("Setup: Token expiring in 30 seconds...")
        credential = credential_factory(expires_in=30)

        print("Verification: Expiring soon with the default 60s buffer...")
        assert credential.is_expiring_soon() is True
        assert credential.is_expiring_soon(buffer_seconds=10) is False

    def test_is_expiring_soon_false_for_fresh_token(self, credential_factory):
        """
        What it does: Verifies a fresh token is not expiring soon.
        Purpose: Ensure no refresh happens for valid tokens.
        """
        assert credential_factory(expires_in=900).is_expiring_soon() is False

    def test_unknown_expiry_counts_as_expiring(self):
        """
        What it does: Verifies a missing expiry is treated as expiring.
        Purpose: Ensure tokens with unknown lifetime get refreshed.
        """
        assert Credential("a", "r", None).is_expiring_soon() is True


class TestTokenStoreInMemory:
    """Tests for the in-memory store."""

    def test_new_store_is_empty(self, store):
        """
        What it does: Verifies a new store holds no credential.
        Purpose: Ensure a fresh process starts logged out.
        """
        assert store.get().is_empty is True
        assert store.get().access_token is None

    def test_set_and_get(self, store, valid_credential):
        """
        What it does: Verifies set() replaces the credential read by get().
        Purpose: Ensure basic storage works.
        """
        print("Action: Storing credential...")
        store.set(valid_credential)

        print("Verification: Same snapshot returned...")
        assert store.get() == valid_credential
        assert store.get().access_token == "old_access_token"

    def test_partial_credential_stored_as_absent(self, store, valid_credential):
        """
        What it does: Verifies a partial credential replaces the pair with nothing.
        Purpose: Ensure no reader ever sees an access token without a refresh token.
        """
        print("Setup: Storing a complete credential first...")
        store.set(valid_credential)

        print("Action: Storing a partial credential...")
        store.set(Credential(access_token="only_access"))

        print("Verification: Store is empty...")
        assert store.get() is EMPTY_CREDENTIAL

    def test_clear(self, logged_in_store):
        """
        What it does: Verifies clear() removes the credential.
        Purpose: Ensure logout and teardown leave nothing behind.
        """
        logged_in_store.clear()
        assert logged_in_store.get().is_empty is True

    def test_clear_reports_whether_credential_existed(self, logged_in_store):
        """
        What it does: Verifies clear() returns True only when it removed a credential.
        Purpose: Ensure callers can tell the first teardown from a repeated one.
        """
        assert logged_in_store.clear() is True
        assert logged_in_store.clear() is False

    def test_snapshot_is_immutable(self, logged_in_store, credential_factory):
        """
        What it does: Verifies a snapshot is unaffected by later writes.
        Purpose: Ensure readers hold a consistent pair even while the store changes.
        """
        print("Setup: Taking a snapshot...")
        snapshot = logged_in_store.get()

        print("Action: Replacing the credential...")
        logged_in_store.set(credential_factory("other_access", "other_refresh"))

        print("Verification: Old snapshot unchanged...")
        assert snapshot.access_token == "old_access_token"
        assert snapshot.refresh_token == "old_refresh_token"

    def test_concurrent_writers_never_mix_pairs(self, store, credential_factory):
        """
        What it does: Verifies concurrent writes never produce a mixed pair.
        Purpose: Ensure get() is atomic with respect to set().
        """
        print("Setup: Two threads writing different pairs...")
        stop = threading.Event()
        seen = []

        def writer(suffix):
            while not stop.is_set():
                store.set(credential_factory(f"access_{suffix}", f"refresh_{suffix}"))

        threads = [threading.Thread(target=writer, args=(s,)) for s in ("a", "b")]
        for thread in threads:
            thread.start()

        print("Action: Reading snapshots...")
        for _ in range(2000):
            credential = store.get()
            if credential.is_complete:
                seen.append((credential.access_token[-1], credential.refresh_token[-1]))

        stop.set()
        for thread in threads:
            thread.join()

        print("Verification: Every pair is consistent...")
        assert all(access == refresh for access, refresh in seen)


class TestTokenStoreFile:
    """Tests for JSON file persistence."""

    def test_set_persists_to_file(self, tmp_path, valid_credential):
        """
        What it does: Verifies set() writes the credential to the JSON file.
        Purpose: Ensure the CLI keeps its session between runs.
        """
        creds_file = tmp_path / "credentials.json"
        store = TokenStore(creds_file=str(creds_file))

        print("Action: Storing credential...")
        store.set(valid_credential)

        print("Verification: File contents...")
        data = json.loads(creds_file.read_text())
        assert data["access_token"] == "old_access_token"
        assert data["refresh_token"] == "old_refresh_token"
        assert data["expires_at"] == valid_credential.expires_at.isoformat()

    def test_loads_from_file(self, tmp_path):
        """
        What it does: Verifies a new store loads the credential from the file.
        Purpose: Ensure persisted sessions are restored.
        """
        creds_file = tmp_path / "credentials.json"
        creds_file.write_text(json.dumps({
            "access_token": "file_access",
            "refresh_token": "file_refresh",
            "expires_at": "2099-01-01T00:00:00Z",
        }))

        print("Action: Creating store from file...")
        store = TokenStore(creds_file=str(creds_file))

        print("Verification: Credential restored with UTC expiry...")
        credential = store.get()
        assert credential.access_token == "file_access"
        assert credential.refresh_token == "file_refresh"
        assert credential.expires_at == datetime(2099, 1, 1, tzinfo=timezone.utc)

    def test_partial_file_is_ignored(self, tmp_path):
        """
        What it does: Verifies a file holding a single token is ignored.
        Purpose: Ensure a partial pair is never loaded.
        """
        creds_file = tmp_path / "credentials.json"
        creds_file.write_text(json.dumps({"access_token": "file_access"}))

        store = TokenStore(creds_file=str(creds_file))
        assert store.get().is_empty is True

    def test_corrupt_file_is_ignored(self, tmp_path):
        """
        What it does: Verifies an unreadable file leaves the store empty.
        Purpose: Ensure startup never fails on a damaged credentials file.
        """
        creds_file = tmp_path / "credentials.json"
        creds_file.write_text("{not json")

        store = TokenStore(creds_file=str(creds_file))
        assert store.get().is_empty is True

    def test_save_preserves_other_fields(self, tmp_path, valid_credential):
        """
        What it does: Verifies saving keeps unrelated JSON fields.
        Purpose: Ensure other settings in the file survive a token update.
        """
        creds_file = tmp_path / "credentials.json"
        creds_file.write_text(json.dumps({"email": "qc@example.com"}))

        store = TokenStore(creds_file=str(creds_file))
        store.set(valid_credential)

        data = json.loads(creds_file.read_text())
        assert data["email"] == "qc@example.com"
        assert data["access_token"] == "old_access_token"

    def test_clear_deletes_file(self, tmp_path, valid_credential):
        """
        What it does: Verifies clear() deletes the credentials file.
        Purpose: Ensure a logged-out session is not restored on next start.
        """
        creds_file = tmp_path / "nested" / "credentials.json"
        store = TokenStore(creds_file=str(creds_file))
        store.set(valid_credential)
        assert creds_file.exists()

        print("Action: Clearing...")
        store.clear()

        print("Verification: File removed...")
        assert not creds_file.exists()


class TestGlobalStore:
    """Tests for the process-wide store helpers."""

    def test_init_replaces_global_store(self, tmp_path, monkeypatch):
        """
        What it does: Verifies init_token_store() installs the store returned by get_token_store().
        Purpose: Ensure every component shares one store.
        """
        monkeypatch.setattr(token_store_module, "_token_store", None)

        print("Action: Initializing global store...")
        store = init_token_store(str(tmp_path / "credentials.json"))

        print("Verification: Same instance returned...")
        assert get_token_store() is store

    def test_get_creates_in_memory_store(self, monkeypatch):
        """
        What it does: Verifies get_token_store() lazily creates an in-memory store.
        Purpose: Ensure library use works without explicit initialization.
        """
        monkeypatch.setattr(token_store_module, "_token_store", None)

        store = get_token_store()
        assert store.creds_file is None
        assert get_token_store() is store
        assert store.get().is_empty is True


def test_naive_expiry_in_file_is_read_as_utc(tmp_path):
    """
    What it does: Verifies naive expiry timestamps from a file are read as UTC.
    Purpose: Ensure comparisons with the current time never raise.
    """
    naive = (datetime.now(timezone.utc) + timedelta(minutes=5)).replace(tzinfo=None)
    creds_file = tmp_path / "credentials.json"
    creds_file.write_text(json.dumps({
        "access_token": "a",
        "refresh_token": "r",
        "expires_at": naive.isoformat(),
    }))

    store = TokenStore(creds_file=str(creds_file))

    assert store.get().expires_at.tzinfo is not None
    assert store.is_expiring_soon() is False
