"""Outbound HTTP transport and inbound header helpers.

The OAuth core never talks to :mod:`requests` directly; it depends on the
:class:`HttpTransport` protocol so tests can substitute a recording fake.
:class:`RequestsTransport` is the production implementation:

* every call carries an explicit timeout (a timeout is an ordinary
  :class:`~atweet.auth.errors.ProviderTransportError`);
* HTTP 401 raises :class:`~atweet.auth.errors.AuthExpiredError`;
* any other non-2xx status raises :class:`ProviderTransportError`.
"""

from __future__ import annotations

import json as _json
import logging
import re
from dataclasses import dataclass
from typing import Any, Final, Mapping, Protocol, runtime_checkable

import requests
from requests.structures import CaseInsensitiveDict

from atweet.auth.errors import AuthExpiredError, ProviderTransportError

_LOG = logging.getLogger("atweet.auth.transport")

DEFAULT_TIMEOUT: Final[float] = 10.0
_BEARER_RE: Final[re.Pattern[str]] = re.compile(r"Bearer\s(\S+)")


@dataclass(frozen=True, slots=True)
class TransportResponse:
    status_code: int
    text: str

    def json(self) -> Any:
        """Decode the body; an empty body decodes to ``{}``."""
        if not self.text:
            return {}
        try:
            return _json.loads(self.text)
        except ValueError as exc:
            raise ProviderTransportError(
                f"Invalid JSON body (status {self.status_code})",
                status_code=self.status_code,
            ) from exc


@runtime_checkable
class HttpTransport(Protocol):
    """Blocking HTTP client contract used by the OAuth core."""

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        data: Mapping[str, str] | None = None,
        json: Any = None,
    ) -> TransportResponse: ...


class RequestsTransport(HttpTransport):
    """:mod:`requests` backed transport with an explicit timeout."""

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        verify: bool = True,
        session: requests.Session | None = None,
    ) -> None:
        self.timeout = timeout
        self.verify = verify
        self._session = session or requests.Session()

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        data: Mapping[str, str] | None = None,
        json: Any = None,
    ) -> TransportResponse:
        try:
            resp = self._session.request(
                method,
                url,
                headers=dict(headers or {}),
                data=data,
                json=json,
                timeout=self.timeout,
                verify=self.verify,
            )
        except requests.RequestException as exc:
            raise ProviderTransportError(f"{method} {url} failed: {exc}") from exc

        if resp.status_code == 401:
            raise AuthExpiredError(f"{method} {url} returned 401")
        if not resp.ok:
            raise ProviderTransportError(
                f"{method} {url} returned {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        _LOG.debug("%s %s -> %s", method, url, resp.status_code)
        return TransportResponse(status_code=resp.status_code, text=resp.text)


# --------------------------------------------------------------------------- #
# Inbound header helpers                                                      #
# --------------------------------------------------------------------------- #
def bearer_token(headers: Mapping[str, str] | None) -> str | None:
    """Return the bearer credential from an ``Authorization`` header.

    Header names are matched case-insensitively, so server variables,
    lower-cased ASGI headers and framework header maps all resolve the same way.
    """
    if not headers:
        return None
    value = CaseInsensitiveDict(headers).get("Authorization")
    if not value:
        return None
    match = _BEARER_RE.search(value.strip())
    return match.group(1) if match else None
