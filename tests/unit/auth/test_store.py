"""
Unit tests for DiskCredentialStore and the TokenSet helpers.

Coverage:
* Atomic write (no lingering *.tmp) and 0600 permissions
* TokenSet saved with all five fields in one write
* Lock exclusivity (writers wait for the current lock holder)
* remove_options clears tokens and broker options
* Stale lock files are cleared; a held lock surfaces as StorageError
"""

from __future__ import annotations

import json
import os
import threading
import time
from pathlib import Path

import pytest

from atweet.auth.errors import StorageError
from atweet.auth.models import TokenSet
from atweet.auth.store import (
    ACCESS_TOKEN,
    INTERNAL_TOKEN,
    MAIN_WEBSITE,
    REFRESH_TOKEN,
    DiskCredentialStore,
    _file_lock,
    load_token_set,
    remove_options,
    save_token_set,
)


def test_get_returns_default_when_missing(store: DiskCredentialStore) -> None:
    assert store.get(ACCESS_TOKEN) == ""
    assert store.get(ACCESS_TOKEN, "fallback") == "fallback"
    assert load_token_set(store) is None


def test_save_token_set_writes_all_fields(store: DiskCredentialStore, tmp_path: Path) -> None:
    tokens = TokenSet("AT1", "RT1", "1", "N", "u")
    save_token_set(store, tokens)

    assert load_token_set(store) == tokens
    assert not list(tmp_path.glob("*.tmp"))
    with (tmp_path / "options.json").open() as fh:
        data = json.load(fh)
    assert data["access-token"] == "AT1" and data["refresh-token"] == "RT1"
    if os.name != "nt":
        assert (tmp_path / "options.json").stat().st_mode & 0o777 == 0o600


def test_values_survive_new_store_instance(tmp_path: Path) -> None:
    DiskCredentialStore(tmp_path).set(INTERNAL_TOKEN, "secret")
    assert DiskCredentialStore(tmp_path).get(INTERNAL_TOKEN) == "secret"


def test_update_waits_for_lock_holder(store: DiskCredentialStore) -> None:
    lock_path = store.path.with_suffix(".lock")
    released: list[float] = []

    def holder() -> None:
        with _file_lock(lock_path, retries=0, delay=0):  # immediate hold
            time.sleep(0.3)
            released.append(time.monotonic())

    t = threading.Thread(target=holder)
    t.start()
    time.sleep(0.05)  # ensure thread grabbed lock

    with pytest.raises(TimeoutError):
        with _file_lock(lock_path, retries=0, delay=0):
            pass

    store.set(ACCESS_TOKEN, "after-lock")
    written_at = time.monotonic()
    t.join()

    assert released and written_at >= released[0]
    assert store.get(ACCESS_TOKEN) == "after-lock"
    assert not lock_path.exists()


def test_remove_options_clears_everything(store: DiskCredentialStore) -> None:
    save_token_set(store, TokenSet("AT", "RT", "1", "N", "u"))
    store.update({INTERNAL_TOKEN: "secret", MAIN_WEBSITE: "yes", "unrelated": "keep"})

    remove_options(store)

    assert store.get(ACCESS_TOKEN) == ""
    assert store.get(REFRESH_TOKEN) == ""
    assert store.get(INTERNAL_TOKEN) == ""
    assert store.get(MAIN_WEBSITE) == ""
    assert store.get("unrelated") == "keep"


def test_stale_lock_is_removed(tmp_path: Path) -> None:
    store = DiskCredentialStore(tmp_path, lock_retries=0)
    store._lock_path.touch()
    old = time.time() - 120
    os.utime(store._lock_path, (old, old))

    store.set(ACCESS_TOKEN, "after-crash")

    assert store.get(ACCESS_TOKEN) == "after-crash"
    assert not store._lock_path.exists()


def test_held_lock_raises_storage_error(tmp_path: Path) -> None:
    store = DiskCredentialStore(tmp_path, lock_retries=0)
    store._lock_path.touch()

    with pytest.raises(StorageError):
        store.set(ACCESS_TOKEN, "blocked")
    assert store.get(ACCESS_TOKEN) == ""
    assert store._lock_path.exists()
