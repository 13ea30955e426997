from __future__ import annotations

from dataclasses import dataclass

from atweet.auth.broker import TokenBroker
from atweet.auth.client import OAuthClient
from atweet.auth.models import ClientConfig, CsrfContext
from atweet.auth.session import SessionStore
from atweet.auth.store import CredentialStore
from atweet.auth.transport import HttpTransport
from atweet.utils.environment import Settings


@dataclass(frozen=True)
class MainAppContext:
    """
    Capabilities shared by every request handler.  Built once at application
    start-up; per-request state (session, retry counter) is created by the
    handlers themselves.
    """

    settings: Settings
    config: ClientConfig
    store: CredentialStore
    sessions: SessionStore
    transport: HttpTransport
    broker: TokenBroker

    def new_client(
        self, csrf: CsrfContext | None = None, *, correlation_id: str | None = None
    ) -> OAuthClient:
        """Return a fresh OAuthClient (and retry budget) for one operation."""
        return OAuthClient(
            self.config,
            self.store,
            self.transport,
            csrf=csrf,
            broker=self.broker,
            correlation_id=correlation_id,
        )
