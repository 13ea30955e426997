"""OAuth core package.

This namespace hosts the **HTTP-framework-agnostic** building blocks of the
Twitter OAuth 2.0 web flow and the token broker shared by main and satellite
sites.

Sub-modules
-----------
pkce
    Proof-Key for Code Exchange and CSRF ``state`` helpers.
session
    Ephemeral per-browser session store holding the CSRF pair.
store
    Persistent option store for the shared account and broker secrets.
transport
    Outbound HTTP transport and inbound bearer-header helpers.
client
    Authorization URL, callback, refresh and publish.
broker
    Internal access-token endpoint logic and the satellite pull.
models
    Dataclasses capturing configuration, CSRF and token state.
errors
    Exception types used by the core.
log_utils
    Structured logging helpers (thin wrapper around :pymod:`logging`).

All public objects are re-exported here for convenience.
"""

from __future__ import annotations

from .broker import AccessTokenPuller, TokenBroker  # noqa: F401
from .client import OAuthClient  # noqa: F401
from .errors import (  # noqa: F401
    AuthExpiredError,
    ConfigurationError,
    CsrfMismatchError,
    PermissionDeniedError,
    ProviderTransportError,
    StorageError,
)
from .log_utils import configure_logging, get_auth_logger  # noqa: F401
from .models import (  # noqa: F401
    BrokerCredential,
    CallbackOutcome,
    ClientConfig,
    CsrfContext,
    RetryCounter,
    TokenSet,
)
from .session import MemorySessionStore, SessionStore, csrf_context  # noqa: F401
from .store import CredentialStore, DiskCredentialStore  # noqa: F401
from .transport import HttpTransport, RequestsTransport  # noqa: F401

__all__ = [
    # client & broker
    "OAuthClient",
    "TokenBroker",
    "AccessTokenPuller",
    # errors
    "AuthExpiredError",
    "ConfigurationError",
    "CsrfMismatchError",
    "PermissionDeniedError",
    "ProviderTransportError",
    "StorageError",
    # models
    "BrokerCredential",
    "CallbackOutcome",
    "ClientConfig",
    "CsrfContext",
    "RetryCounter",
    "TokenSet",
    # capabilities
    "CredentialStore",
    "DiskCredentialStore",
    "HttpTransport",
    "RequestsTransport",
    "MemorySessionStore",
    "SessionStore",
    "csrf_context",
    # logging helpers
    "configure_logging",
    "get_auth_logger",
]
