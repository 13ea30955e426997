"""Typed records used by the OAuth core."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Final

from atweet.auth.errors import ConfigurationError

DEFAULT_SCOPES: Final[tuple[str, ...]] = (
    "tweet.read",
    "tweet.write",
    "users.read",
    "offline.access",
)

CALLBACK_PATH: Final[str] = "/twitter/callback/"


@dataclass(frozen=True, slots=True)
class ClientConfig:
    """Immutable provider client settings for one deployed instance."""

    client_id: str
    redirect_base_url: str
    scopes: tuple[str, ...] = DEFAULT_SCOPES

    def __post_init__(self) -> None:
        if not self.client_id:
            raise ConfigurationError("Undefined client ID")
        if not self.redirect_base_url:
            raise ConfigurationError("Undefined callback website")

    @property
    def redirect_uri(self) -> str:
        return f"{self.redirect_base_url.rstrip('/')}{CALLBACK_PATH}"


@dataclass(frozen=True, slots=True)
class CsrfContext:
    """Per-session ``state`` and PKCE ``challenge`` pair."""

    state: str
    challenge: str


@dataclass(frozen=True, slots=True)
class TokenSet:
    """Snapshot of the shared account credentials."""

    access_token: str
    refresh_token: str
    account_id: str = ""
    account_name: str = ""
    account_username: str = ""

    @classmethod
    def from_responses(
        cls, token_data: dict, user_data: dict | None
    ) -> "TokenSet":
        """Merge a token endpoint response with a ``/users/me`` response."""
        profile = (user_data or {}).get("data") or {}
        return cls(
            access_token=token_data.get("access_token", "") or "",
            refresh_token=token_data.get("refresh_token", "") or "",
            account_id=str(profile.get("id", "") or ""),
            account_name=profile.get("name", "") or "",
            account_username=profile.get("username", "") or "",
        )


@dataclass(slots=True)
class RetryCounter:
    """Bounds refresh attempts for one logical operation."""

    limit: int = 1
    count: int = field(default=0)

    def acquire(self) -> bool:
        """Return *True* and count the attempt if the limit is not reached."""
        if self.count >= self.limit:
            return False
        self.count += 1
        return True


@dataclass(frozen=True, slots=True)
class BrokerCredential:
    """Role flag and shared secrets of the token broker."""

    internal_token: str
    main_site: bool
    remote_endpoint: str = ""
    remote_token: str = ""


class CallbackOutcome(str, Enum):
    """Terminal states of :meth:`OAuthClient.handle_callback`."""

    SUCCESS = "success"
    DENIED = "denied"
    INVALID = "invalid"
    FAILED = "failed"
