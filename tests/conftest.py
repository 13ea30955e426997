"""Shared fixtures: on-disk store, client config and a recording HTTP fake."""

from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Mapping

import pytest

from atweet.auth.errors import ProviderTransportError
from atweet.auth.models import ClientConfig
from atweet.auth.store import DiskCredentialStore
from atweet.auth.transport import TransportResponse


class FakeTransport:
    """HttpTransport double: scripted responses per (method, path suffix)."""

    def __init__(self) -> None:
        self.calls: list[SimpleNamespace] = []
        self._routes: dict[tuple[str, str], list[Any]] = {}

    def queue(self, method: str, path: str, *responses: Any) -> None:
        """Queue dict bodies or exceptions; the last one repeats."""
        self._routes.setdefault((method, path), []).extend(responses)

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        data: Mapping[str, str] | None = None,
        json: Any = None,  # noqa: A002
    ) -> TransportResponse:
        self.calls.append(
            SimpleNamespace(
                method=method, url=url, headers=dict(headers or {}), data=data, json=json
            )
        )
        for (m, path), responses in self._routes.items():
            if m == method and url.endswith(path) and responses:
                item = responses.pop(0) if len(responses) > 1 else responses[0]
                if isinstance(item, Exception):
                    raise item
                return TransportResponse(status_code=200, text=_dumps(item))
        raise ProviderTransportError(f"unexpected {method} {url}", status_code=404)

    def count(self, method: str, path: str) -> int:
        return sum(1 for c in self.calls if c.method == method and c.url.endswith(path))


def _dumps(body: Any) -> str:
    return json.dumps(body)


@pytest.fixture()
def store(tmp_path: Path) -> DiskCredentialStore:
    """Return a temporary DiskCredentialStore rooted at *tmp_path*."""
    return DiskCredentialStore(base_dir=tmp_path)


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def config() -> ClientConfig:
    return ClientConfig(client_id="abc", redirect_base_url="https://site.example")
