"""Internal broker endpoint (main website only).

``GET /internal/v1/access`` returns ``{"access": <token>}`` to satellites that
present ``Authorization: Bearer <internal-token>``; everything else gets
``401 {"error": "unauthorized"}`` and no token.
"""

from __future__ import annotations

import logging
from typing import Mapping

from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from atweet.auth.broker import ACCESS_PATH
from atweet.auth.errors import PermissionDeniedError
from atweet.servers.context import MainAppContext

_LOG = logging.getLogger("atweet.servers.internal")


def internal_routes(ctx: MainAppContext) -> list[Route]:
    """Return the broker endpoint route."""

    def _serve(headers: Mapping[str, str]) -> dict[str, str]:
        ctx.broker.authorize(headers)
        return ctx.broker.access_payload()

    async def _access(request: Request) -> Response:
        correlation_id = getattr(request.state, "correlation_id", "-")
        try:
            payload = await run_in_threadpool(_serve, request.headers)
        except PermissionDeniedError as exc:
            _LOG.warning(
                "Internal access denied (%s) client=%s correlation_id=%s",
                exc.reason,
                request.client.host if request.client else "-",
                correlation_id,
            )
            return JSONResponse(exc.to_payload(), status_code=401)

        _LOG.info("Internal access token served correlation_id=%s", correlation_id)
        return JSONResponse(payload)

    return [Route(ACCESS_PATH, _access, methods=["GET"])]
