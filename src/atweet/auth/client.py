"""OAuthClient – Twitter API v2 OAuth 2.0 (Authorization Code + PKCE).

This client encapsulates the *business logic* of the token lifecycle.
HTTP handlers in :mod:`atweet.servers.auth` and the CLI call the thin façade
methods below.

Provider app settings
---------------------
* App permissions: Read and write
* Type of App: Native App
* Callback URI / Redirect URL: ``{https://example.com}/twitter/callback/``

One instance is created per logical operation (one HTTP request, one CLI
command, one scheduled run).  It owns a :class:`~atweet.auth.models.RetryCounter`
so a rejected refresh token can never cause more than one call to the
provider's refresh endpoint during that operation.

All provider failures are logged and turned into ``False`` / ``None`` /
:class:`~atweet.auth.models.CallbackOutcome` values; only
:class:`~atweet.auth.errors.ConfigurationError` escapes to callers.
"""

from __future__ import annotations

import hmac
import re
from typing import Any, Final, Mapping
from urllib.parse import urlencode

from atweet.auth.broker import TokenBroker
from atweet.auth.errors import (
    AuthExpiredError,
    CsrfMismatchError,
    ProviderTransportError,
    StorageError,
)
from atweet.auth.log_utils import get_auth_logger, mask_sensitive
from atweet.auth.models import (
    CallbackOutcome,
    ClientConfig,
    CsrfContext,
    RetryCounter,
    TokenSet,
)
from atweet.auth.pkce import CHALLENGE_METHOD, generate_code_verifier, generate_state
from atweet.auth.store import (
    ACCESS_TOKEN,
    ACCOUNT_ID,
    ACCOUNT_NAME,
    ACCOUNT_USERNAME,
    REFRESH_TOKEN,
    CredentialStore,
    load_token_set,
    save_token_set,
)
from atweet.auth.transport import HttpTransport

# --------------------------------------------------------------------------- #
# Provider endpoints                                                          #
# --------------------------------------------------------------------------- #
ENDPOINT: Final[str] = "https://api.twitter.com"
AUTHORIZE_URL: Final[str] = "https://twitter.com/i/oauth2/authorize"
TOKEN_ACTION: Final[str] = "/2/oauth2/token"
USER_ACTION: Final[str] = "/2/users/me"
TWEET_ACTION: Final[str] = "/2/tweets"

_SHORTENER_RE: Final[re.Pattern[str]] = re.compile(r"https?://[^\",]+", re.IGNORECASE)


def extract_shortened_url(payload: Any) -> str | None:
    """Return the first ``http(s)://`` link found in a created tweet's text."""
    if not isinstance(payload, dict):
        return None
    text = (payload.get("data") or {}).get("text") or ""
    match = _SHORTENER_RE.search(text)
    return match.group(0) if match else None


class OAuthClient:
    """Authorization, callback, refresh and publish for the shared account."""

    def __init__(
        self,
        config: ClientConfig,
        store: CredentialStore,
        transport: HttpTransport,
        *,
        csrf: CsrfContext | None = None,
        broker: TokenBroker | None = None,
        api_base: str = ENDPOINT,
        correlation_id: str | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.transport = transport
        self.csrf = csrf
        self.broker = broker
        self.api_base = api_base.rstrip("/")
        self.retry = RetryCounter()
        self.shortened_url: str | None = None
        self._log = get_auth_logger(
            base_logger_name="atweet.auth.client",
            instance_id=config.redirect_base_url,
            role="main" if self.is_main_site() else "satellite",
            correlation_id=correlation_id,
        )

    # ------------------------------------------------------------------ #
    # Helpers                                                            #
    # ------------------------------------------------------------------ #
    def _url(self, action: str) -> str:
        return f"{self.api_base}{action}"

    def is_main_site(self) -> bool:
        """Instances without a broker always own the token pair."""
        return self.broker is None or self.broker.is_main_site()

    def _csrf(self) -> CsrfContext:
        if self.csrf is None:
            self.csrf = CsrfContext(state=generate_state(), challenge=generate_code_verifier())
        return self.csrf

    # ------------------------------------------------------------------ #
    # Browser-based flow                                                 #
    # ------------------------------------------------------------------ #
    def authorization_url(self) -> str:
        """Return the provider authorize URL (with PKCE & state)."""
        csrf = self._csrf()
        query_params: dict[str, str] = {
            "response_type": "code",
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "scope": " ".join(self.config.scopes),
            "state": csrf.state,
            "code_challenge": csrf.challenge,
            "code_challenge_method": CHALLENGE_METHOD,
        }
        self._log.debug("Built authorize URL state=%s", mask_sensitive(csrf.state, 6))
        return f"{AUTHORIZE_URL}?{urlencode(query_params)}"

    def authenticate(self) -> str | None:
        """Start authentication for this instance.

        The main website gets the authorize URL to redirect the browser to.
        A satellite pulls the shared access token from the broker instead,
        refreshes its account metadata and returns *None*.
        """
        broker = self.broker
        if broker is None or broker.is_main_site():
            return self.authorization_url()

        if not broker.pull_access_token():
            return None
        user = self.fetch_user(self.store.get(ACCESS_TOKEN))
        if user:
            profile = user.get("data") or {}
            try:
                self.store.update(
                    {
                        ACCOUNT_ID: str(profile.get("id", "") or ""),
                        ACCOUNT_NAME: profile.get("name", "") or "",
                        ACCOUNT_USERNAME: profile.get("username", "") or "",
                    }
                )
            except StorageError as exc:
                self._log.error("Could not store account details: %s", exc)
        return None

    @staticmethod
    def _check_state(received: str, csrf: CsrfContext) -> None:
        if not csrf.state:
            raise CsrfMismatchError("no state in session")
        if not hmac.compare_digest(received.encode(), csrf.state.encode()):
            raise CsrfMismatchError("state mismatch")

    def handle_callback(
        self, params: Mapping[str, str], csrf: CsrfContext | None = None
    ) -> CallbackOutcome:
        """Validate the provider redirect and exchange the code for tokens."""
        csrf = csrf or self.csrf
        state = params.get("state")
        code = params.get("code")

        if state and code:
            if csrf is None:
                self._log.warning("Invalid callback (no state in session)")
                return CallbackOutcome.INVALID
            try:
                self._check_state(state, csrf)
            except CsrfMismatchError as exc:
                self._log.warning("Invalid callback (%s)", exc)
                return CallbackOutcome.INVALID
            return self._exchange_code(code, csrf)

        if params.get("error") == "access_denied":
            self._log.info("Access denied (Canceled)")
            return CallbackOutcome.DENIED

        self._log.warning("Invalid callback (Parameters)")
        return CallbackOutcome.INVALID

    def _exchange_code(self, code: str, csrf: CsrfContext) -> CallbackOutcome:
        payload: dict[str, str] = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "code_verifier": csrf.challenge,
        }
        try:
            token_data = self.transport.request(
                "POST", self._url(TOKEN_ACTION), data=payload
            ).json()
        except ProviderTransportError as exc:
            self._log.error("Token exchange failed: %s", exc)
            return CallbackOutcome.FAILED

        if not isinstance(token_data, dict) or not token_data.get("access_token"):
            self._log.error("Token exchange response missing access_token")
            return CallbackOutcome.FAILED

        try:
            tokens = self._persist(token_data)
        except StorageError as exc:
            self._log.error("Could not store exchanged tokens: %s", exc)
            return CallbackOutcome.FAILED
        self._log.info("Exchanged OAuth code for @%s", tokens.account_username or "?")
        return CallbackOutcome.SUCCESS

    # ------------------------------------------------------------------ #
    # Token lifecycle                                                    #
    # ------------------------------------------------------------------ #
    def fetch_user(self, access_token: str) -> dict | None:
        """Return the ``/users/me`` payload for *access_token* or *None*."""
        try:
            user = self.transport.request(
                "GET",
                self._url(USER_ACTION),
                headers={"Authorization": f"Bearer {access_token}"},
            ).json()
        except ProviderTransportError as exc:
            self._log.error("User lookup failed: %s", exc)
            return None
        return user if isinstance(user, dict) else None

    def _persist(self, token_data: dict, *, keep_account: bool = False) -> TokenSet:
        """Merge *token_data* with the account profile and store it atomically."""
        user = self.fetch_user(token_data["access_token"])
        tokens = TokenSet.from_responses(token_data, user)
        if user is None and keep_account:
            previous = load_token_set(self.store)
            if previous is not None:
                tokens = TokenSet(
                    access_token=tokens.access_token,
                    refresh_token=tokens.refresh_token,
                    account_id=previous.account_id,
                    account_name=previous.account_name,
                    account_username=previous.account_username,
                )
        save_token_set(self.store, tokens)
        return tokens

    def refresh_token(self) -> bool:
        """Rotate the access token at most once per client instance.

        Satellites never call the provider; they pull a fresh copy from the
        main website's broker instead.
        """
        if not self.retry.acquire():
            self._log.info("Refresh token skipped (attempt limit reached)")
            return False

        broker = self.broker
        if broker is not None and not broker.is_main_site():
            return broker.pull_access_token()

        self._log.info("Refresh token requested")
        refresh = self.store.get(REFRESH_TOKEN)
        if not refresh:
            self._log.error("No refresh token stored")
            return False

        try:
            token_data = self.transport.request(
                "POST",
                self._url(TOKEN_ACTION),
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": refresh,
                    "client_id": self.config.client_id,
                },
            ).json()
        except ProviderTransportError as exc:
            self._log.error("Token refresh failed: %s", exc)
            return False

        if not isinstance(token_data, dict) or not token_data.get("access_token"):
            self._log.error("Token refresh response missing access_token")
            return False

        try:
            self._persist(token_data, keep_account=True)
        except StorageError as exc:
            self._log.error("Could not store refreshed tokens: %s", exc)
            return False
        self._log.info("Refreshed access token")
        return True

    # ------------------------------------------------------------------ #
    # Authenticated calls                                                #
    # ------------------------------------------------------------------ #
    def publish(self, text: str) -> dict | None:
        """Post *text* as a tweet; returns the provider payload or *None*.

        A 401 on the first attempt triggers one refresh and, if it succeeds,
        exactly one more attempt.
        """
        self.shortened_url = None
        for attempt in range(2):
            try:
                payload = self.transport.request(
                    "POST",
                    self._url(TWEET_ACTION),
                    headers={"Authorization": f"Bearer {self.store.get(ACCESS_TOKEN)}"},
                    json={"text": text},
                ).json()
            except AuthExpiredError:
                if attempt == 0 and self.refresh_token():
                    continue
                self._log.error("Tweet rejected: access token expired")
                return None
            except ProviderTransportError as exc:
                self._log.error("Tweet failed: %s", exc)
                return None

            self.shortened_url = extract_shortened_url(payload)
            return payload if isinstance(payload, dict) else {}
        return None

    def status(self) -> dict[str, Any]:
        """Non-secret summary of this instance."""
        tokens = load_token_set(self.store)
        return {
            "role": "main" if self.is_main_site() else "satellite",
            "authenticated": tokens is not None,
            "account": {
                "id": tokens.account_id,
                "name": tokens.account_name,
                "username": tokens.account_username,
            }
            if tokens
            else None,
        }
