"""Token broker – lets satellite sites borrow the main site's access token.

Two roles are selected by the persisted ``main-website`` option:

main
    Owns the provider-issued token pair.  Serves the current access token on
    the internal endpoint to callers presenting ``Authorization: Bearer
    <internal-token>``.
satellite
    Holds no refresh token of its own.  Pulls a copy of the access token from
    ``<external-endpoint>/internal/v1/access`` using ``external-token`` as
    bearer credential and overwrites its local ``access-token``.

SECURITY NOTE
-------------
Neither the shared secrets nor the access token are ever logged; only masked
prefixes are.
"""

from __future__ import annotations

import hmac
import logging
import threading
import uuid
from typing import Final, Mapping

from atweet.auth.errors import PermissionDeniedError, ProviderTransportError, StorageError
from atweet.auth.log_utils import get_auth_logger, mask_sensitive
from atweet.auth.models import BrokerCredential
from atweet.auth.store import (
    ACCESS_TOKEN,
    EXTERNAL_ENDPOINT,
    EXTERNAL_TOKEN,
    INTERNAL_TOKEN,
    MAIN_WEBSITE,
    CredentialStore,
)
from atweet.auth.transport import HttpTransport, bearer_token

ACCESS_PATH: Final[str] = "/internal/v1/access"
DEFAULT_PULL_INTERVAL: Final[float] = 1800.0

_LOG = logging.getLogger("atweet.auth.broker")


class TokenBroker:
    """Internal access-token endpoint logic and the satellite pull."""

    def __init__(
        self,
        store: CredentialStore,
        transport: HttpTransport,
        *,
        instance_id: str | None = None,
    ) -> None:
        self.store = store
        self.transport = transport
        self.instance_id = instance_id

    @property
    def role(self) -> str:
        return "main" if self.is_main_site() else "satellite"

    def _log(self) -> logging.LoggerAdapter:
        return get_auth_logger(
            base_logger_name="atweet.auth.broker",
            instance_id=self.instance_id,
            role=self.role,
        )

    # ------------------------------------------------------------------ #
    # Configuration                                                      #
    # ------------------------------------------------------------------ #
    def is_main_site(self) -> bool:
        return self.store.get(MAIN_WEBSITE) == "yes"

    def ensure_internal_token(self) -> str:
        """Return the shared secret, generating it once if absent."""
        token = self.store.get(INTERNAL_TOKEN)
        if not token:
            token = str(uuid.uuid4())
            self.store.set(INTERNAL_TOKEN, token)
            _LOG.info("Generated internal token %s", mask_sensitive(token))
        return token

    def configure(
        self,
        *,
        main_site: bool,
        remote_endpoint: str | None = None,
        remote_token: str | None = None,
    ) -> None:
        """Persist the role flag and, for satellites, the remote broker options."""
        values = {MAIN_WEBSITE: "yes" if main_site else "no"}
        if remote_endpoint is not None:
            values[EXTERNAL_ENDPOINT] = remote_endpoint.rstrip("/")
        if remote_token is not None:
            values[EXTERNAL_TOKEN] = remote_token
        self.store.update(values)

    def credential(self) -> BrokerCredential:
        return BrokerCredential(
            internal_token=self.store.get(INTERNAL_TOKEN),
            main_site=self.is_main_site(),
            remote_endpoint=self.store.get(EXTERNAL_ENDPOINT),
            remote_token=self.store.get(EXTERNAL_TOKEN),
        )

    # ------------------------------------------------------------------ #
    # Main role – internal endpoint                                      #
    # ------------------------------------------------------------------ #
    def require_internal_bearer(self, headers: Mapping[str, str] | None) -> None:
        """Raise :class:`PermissionDeniedError` unless the bearer equals ``internal-token``."""
        presented = bearer_token(headers)
        if not presented:
            raise PermissionDeniedError("missing bearer token")
        expected = self.store.get(INTERNAL_TOKEN)
        if not expected or not hmac.compare_digest(presented.encode(), expected.encode()):
            raise PermissionDeniedError("bearer token mismatch")

    def authorize(self, headers: Mapping[str, str] | None) -> None:
        """Permission check for the internal access endpoint."""
        if not self.is_main_site():
            raise PermissionDeniedError("not the main website")
        self.require_internal_bearer(headers)

    def access_payload(self) -> dict[str, str]:
        return {"access": self.store.get(ACCESS_TOKEN)}

    # ------------------------------------------------------------------ #
    # Satellite role – pull                                              #
    # ------------------------------------------------------------------ #
    def pull_access_token(self) -> bool:
        """Fetch the main site's access token and store it locally.

        Only ``access-token`` is overwritten; the local refresh token and
        account metadata are left untouched.
        """
        log = self._log()
        if self.is_main_site():
            log.warning("Remote access token pull skipped on the main website")
            return False

        endpoint = self.store.get(EXTERNAL_ENDPOINT)
        secret = self.store.get(EXTERNAL_TOKEN)
        if not endpoint or not secret:
            log.error("Remote access token requested but broker endpoint is not configured")
            return False

        log.info("Remote access token requested")
        try:
            response = self.transport.request(
                "GET",
                f"{endpoint.rstrip('/')}{ACCESS_PATH}",
                headers={"Authorization": f"Bearer {secret}"},
            )
            body = response.json()
        except ProviderTransportError as exc:
            log.error("Remote access token request failed: %s", exc)
            return False

        access = body.get("access") if isinstance(body, dict) else None
        if not access:
            log.error("Remote access token response carried no token")
            return False

        try:
            self.store.set(ACCESS_TOKEN, access)
        except StorageError as exc:
            log.error("Could not store remote access token: %s", exc)
            return False
        log.info("Remote access token updated (%s)", mask_sensitive(access))
        return True


class AccessTokenPuller:
    """Periodic satellite pull that never overlaps with itself."""

    def __init__(self, broker: TokenBroker, *, interval: float = DEFAULT_PULL_INTERVAL) -> None:
        self.broker = broker
        self.interval = interval
        self._run_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def run_once(self) -> bool:
        """Pull once; returns *False* immediately if a pull is already running."""
        if not self._run_lock.acquire(blocking=False):
            _LOG.info("Remote access token pull already in progress; skipped")
            return False
        try:
            return self.broker.pull_access_token()
        finally:
            self._run_lock.release()

    def _loop(self) -> None:
        while not self._stop.is_set():
            if not self.broker.is_main_site():
                self.run_once()
            self._stop.wait(self.interval)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name="atweet-token-puller", daemon=True
        )
        self._thread.start()
        _LOG.info("Access token puller started (every %ss)", int(self.interval))

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None
