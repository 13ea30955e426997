"""Concurrency-safe, on-disk option storage for the shared account.

This module introduces a *narrow* persistence interface
(:class:`CredentialStore`) and a JSON-file implementation
(:class:`DiskCredentialStore`).  The design follows these goals:

* **Atomicity** – writes use *temp-file + os.replace*; a whole
  :class:`~atweet.auth.models.TokenSet` is written in one replace.
* **Concurrency** – read-modify-write cycles hold an advisory lock file;
  a lock left behind by a dead process is removed once it is stale.
* **Portability** – only standard-library modules are required.

Environment variables
---------------------
ATWEET_STORAGE_DIR
    Base directory for all persisted data.
    Defaults to ``~/.atweet`` when unset.
"""

from __future__ import annotations

import json
import logging
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Final, Iterator, Mapping, Protocol, runtime_checkable

from atweet.auth.errors import StorageError
from atweet.auth.models import TokenSet

_LOG = logging.getLogger("atweet.auth.store")

# --------------------------------------------------------------------------- #
# option names                                                                #
# --------------------------------------------------------------------------- #
ACCESS_TOKEN: Final[str] = "access-token"
REFRESH_TOKEN: Final[str] = "refresh-token"
ACCOUNT_ID: Final[str] = "account-id"
ACCOUNT_NAME: Final[str] = "account-name"
ACCOUNT_USERNAME: Final[str] = "account-username"

INTERNAL_TOKEN: Final[str] = "internal-token"
EXTERNAL_TOKEN: Final[str] = "external-token"
EXTERNAL_ENDPOINT: Final[str] = "external-endpoint"
MAIN_WEBSITE: Final[str] = "main-website"

ACCOUNT_OPTIONS: Final[tuple[str, ...]] = (ACCOUNT_ID, ACCOUNT_NAME, ACCOUNT_USERNAME)
TOKEN_OPTIONS: Final[tuple[str, ...]] = (ACCESS_TOKEN, REFRESH_TOKEN, *ACCOUNT_OPTIONS)
BROKER_OPTIONS: Final[tuple[str, ...]] = (
    INTERNAL_TOKEN,
    EXTERNAL_TOKEN,
    EXTERNAL_ENDPOINT,
    MAIN_WEBSITE,
)

# --------------------------------------------------------------------------- #
# helpers                                                                     #
# --------------------------------------------------------------------------- #


def _atomic_write(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as fh:
        json.dump(data, fh, indent=2, sort_keys=True)
    os.replace(tmp, path)  # atomic on POSIX
    if os.name != "nt":
        os.chmod(path, 0o600)


@contextmanager
def _file_lock(
    lock_path: Path,
    retries: int = 25,
    delay: float = 0.2,
    stale_after: float = 30.0,
) -> Iterator[None]:
    """Advisory file lock using ``os.O_EXCL`` temp-file creation.

    A lock file older than *stale_after* seconds was left by a process that
    died while holding it and is removed.
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    attempt = 0
    while True:
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_RDWR)
            os.close(fd)
            break  # acquired!
        except FileExistsError:
            if _lock_age(lock_path) > stale_after:
                _LOG.warning("Removing stale lock %s", lock_path)
                lock_path.unlink(missing_ok=True)
                continue
            if attempt >= retries:
                raise TimeoutError(f"Could not acquire lock {lock_path}") from None
            attempt += 1
            time.sleep(delay)
    try:
        yield
    finally:
        lock_path.unlink(missing_ok=True)


def _lock_age(lock_path: Path) -> float:
    try:
        return time.time() - lock_path.stat().st_mtime
    except FileNotFoundError:
        return 0.0


# --------------------------------------------------------------------------- #
# public interface                                                            #
# --------------------------------------------------------------------------- #


@runtime_checkable
class CredentialStore(Protocol):
    """Minimal persistence contract: named string values."""

    def get(self, name: str, default: str = "") -> str: ...

    def set(self, name: str, value: str) -> None: ...

    def update(self, values: Mapping[str, str]) -> None: ...

    def delete(self, *names: str) -> None: ...


# --------------------------------------------------------------------------- #
# Disk implementation                                                         #
# --------------------------------------------------------------------------- #


class DiskCredentialStore(CredentialStore):
    """JSON-file implementation of :class:`CredentialStore`.

    Writes raise :class:`~atweet.auth.errors.StorageError` when the lock
    cannot be taken or the file cannot be written.
    """

    def __init__(
        self,
        base_dir: str | os.PathLike | None = None,
        *,
        lock_retries: int = 25,
        lock_delay: float = 0.2,
        stale_lock_after: float = 30.0,
    ) -> None:
        self.base_dir = Path(
            base_dir or os.getenv("ATWEET_STORAGE_DIR") or Path.home() / ".atweet"
        ).expanduser()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.lock_retries = lock_retries
        self.lock_delay = lock_delay
        self.stale_lock_after = stale_lock_after

    @property
    def path(self) -> Path:
        return self.base_dir / "options.json"

    @property
    def _lock_path(self) -> Path:
        return self.path.with_suffix(".lock")

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        with self.path.open(encoding="utf-8") as fh:
            data = json.load(fh)
        return {str(k): str(v) for k, v in data.items()}

    @contextmanager
    def _locked(self) -> Iterator[dict[str, str]]:
        """Yield the current options for in-place edit and write them back."""
        try:
            with _file_lock(
                self._lock_path,
                retries=self.lock_retries,
                delay=self.lock_delay,
                stale_after=self.stale_lock_after,
            ):
                data = self._read()
                yield data
                _atomic_write(self.path, data)
        except OSError as exc:
            raise StorageError(f"Could not write {self.path}: {exc}") from exc

    def get(self, name: str, default: str = "") -> str:
        return self._read().get(name, default)

    def set(self, name: str, value: str) -> None:
        self.update({name: value})

    def update(self, values: Mapping[str, str]) -> None:
        with self._locked() as data:
            data.update({k: str(v) for k, v in values.items()})

    def delete(self, *names: str) -> None:
        with self._locked() as data:
            for name in names:
                data.pop(name, None)


# --------------------------------------------------------------------------- #
# TokenSet helpers                                                            #
# --------------------------------------------------------------------------- #


def save_token_set(store: CredentialStore, tokens: TokenSet) -> None:
    """Persist all five fields of *tokens* in a single atomic write."""
    store.update(
        {
            ACCESS_TOKEN: tokens.access_token,
            REFRESH_TOKEN: tokens.refresh_token,
            ACCOUNT_ID: tokens.account_id,
            ACCOUNT_NAME: tokens.account_name,
            ACCOUNT_USERNAME: tokens.account_username,
        }
    )


def load_token_set(store: CredentialStore) -> TokenSet | None:
    """Return the stored TokenSet or *None* when no access token exists."""
    access = store.get(ACCESS_TOKEN)
    if not access:
        return None
    return TokenSet(
        access_token=access,
        refresh_token=store.get(REFRESH_TOKEN),
        account_id=store.get(ACCOUNT_ID),
        account_name=store.get(ACCOUNT_NAME),
        account_username=store.get(ACCOUNT_USERNAME),
    )


def remove_options(store: CredentialStore) -> None:
    """Forget the shared account and every broker option."""
    store.delete(*TOKEN_OPTIONS, *BROKER_OPTIONS)
