"""Ephemeral per-browser session storage for the OAuth web-flow.

A session is a small mutable mapping keyed by an opaque id that travels in a
cookie.  The OAuth core only ever reads and writes two keys, ``state`` and
``challenge``, through :func:`csrf_context`.

:class:`MemorySessionStore` keeps sessions in a bounded
:class:`cachetools.TTLCache`; expired sessions simply disappear, which ends
the validity of their CSRF pair.
"""

from __future__ import annotations

import secrets
import threading
import time
from typing import Callable, MutableMapping, Protocol, runtime_checkable

from cachetools import TTLCache

from atweet.auth.models import CsrfContext
from atweet.auth.pkce import generate_code_verifier, generate_state

Session = MutableMapping[str, str]


@runtime_checkable
class SessionStore(Protocol):
    """Minimal session contract used by the HTTP layer."""

    def get(self, session_id: str | None) -> Session | None: ...

    def create(self) -> tuple[str, Session]: ...

    def get_or_create(self, session_id: str | None) -> tuple[str, Session]: ...


class MemorySessionStore(SessionStore):
    """In-process session store whose sessions expire after ``ttl_seconds``."""

    def __init__(
        self,
        *,
        ttl_seconds: int = 3600,
        maxsize: int = 10_000,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sessions: TTLCache[str, Session] = TTLCache(
            maxsize=maxsize, ttl=ttl_seconds, timer=timer
        )
        self._lock = threading.Lock()

    def get(self, session_id: str | None) -> Session | None:
        if not session_id:
            return None
        with self._lock:
            return self._sessions.get(session_id)

    def create(self) -> tuple[str, Session]:
        session_id = secrets.token_urlsafe(32)
        session: Session = {}
        with self._lock:
            self._sessions[session_id] = session
        return session_id, session

    def get_or_create(self, session_id: str | None) -> tuple[str, Session]:
        session = self.get(session_id)
        if session is not None and session_id:
            return session_id, session
        return self.create()


def csrf_context(session: Session) -> CsrfContext:
    """Return the session's CSRF pair, creating missing values on first use.

    Values are never rotated once set; they live as long as the session.
    """
    if not session.get("state"):
        session["state"] = generate_state()
    if not session.get("challenge"):
        session["challenge"] = generate_code_verifier()
    return CsrfContext(state=session["state"], challenge=session["challenge"])
