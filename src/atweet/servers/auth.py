"""Browser-facing OAuth endpoints and the publish endpoint.

Handlers are intentionally thin:

1. Parse and validate HTTP-layer parameters (session cookie, query, body).
2. Delegate business logic to :class:`~atweet.auth.client.OAuthClient`.
3. Return an appropriate Starlette ``Response`` type.

Blocking provider calls run in Starlette's thread pool.

SECURITY NOTE
-------------
• No raw secrets (state, code verifiers, access / refresh tokens, internal
  token) are ever logged or echoed.
• Correlation IDs, if present in ``request.state.correlation_id``, are included
  in INFO logs to aid troubleshooting.
"""

from __future__ import annotations

import logging
from typing import Final

from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from starlette.routing import Route

from atweet.auth.errors import PermissionDeniedError
from atweet.auth.models import CallbackOutcome
from atweet.auth.session import csrf_context
from atweet.servers.context import MainAppContext

_LOG = logging.getLogger("atweet.servers.auth")

SESSION_COOKIE: Final[str] = "atweet_session"

_CALLBACK_PAGES: Final[dict[CallbackOutcome, tuple[str, str, int]]] = {
    CallbackOutcome.SUCCESS: ("Authorization successful", "You may close this window.", 200),
    CallbackOutcome.DENIED: ("Access denied", "The authorization request was canceled.", 400),
    CallbackOutcome.INVALID: ("Invalid callback", "Please restart the authorization.", 400),
    CallbackOutcome.FAILED: ("Authorization failed", "The provider could not be reached.", 502),
}


def _html_page(title: str, body: str, status: int = 200) -> HTMLResponse:
    """Return a tiny success / error HTML page."""
    content = (
        "<!doctype html><html lang='en'>"
        "<head><meta charset='utf-8'><title>"
        f"{title}</title></head><body><h1>{title}</h1><p>{body}</p></body></html>"
    )
    return HTMLResponse(content, status_code=status)


def _set_session_cookie(response: Response, session_id: str, request: Request, ttl: int) -> Response:
    response.set_cookie(
        SESSION_COOKIE,
        session_id,
        max_age=ttl,
        httponly=True,
        samesite="lax",
        secure=request.url.scheme == "https",
    )
    return response


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", "-")


# --------------------------------------------------------------------------- #
# Public API                                                                  #
# --------------------------------------------------------------------------- #
def auth_routes(ctx: MainAppContext, *, base_path: str = "/twitter") -> list[Route]:
    """Return the OAuth and publish endpoints mounted under *base_path*."""

    # ----- GET /twitter/authenticate/ ------------------------------------- #
    async def _authenticate(request: Request) -> Response:
        correlation_id = _correlation_id(request)
        session_id, session = ctx.sessions.get_or_create(request.cookies.get(SESSION_COOKIE))
        client = await run_in_threadpool(
            ctx.new_client, csrf_context(session), correlation_id=correlation_id
        )
        authorize_url = await run_in_threadpool(client.authenticate)
        _LOG.info(
            "Authenticate requested role=%s correlation_id=%s",
            "main" if authorize_url else "satellite",
            correlation_id,
        )

        if authorize_url is None:
            # Satellite: token pulled from the main website (or not).
            response: Response = JSONResponse(await run_in_threadpool(client.status))
        elif request.query_params.get("format") == "json":
            response = JSONResponse({"authorize_url": authorize_url})
        else:
            # Use 303 See Other for GET safety across methods
            response = RedirectResponse(authorize_url, status_code=303)
        return _set_session_cookie(response, session_id, request, ctx.settings.session_ttl)

    # ----- GET /twitter/callback/ ----------------------------------------- #
    async def _callback(request: Request) -> Response:
        correlation_id = _correlation_id(request)
        session_id, session = ctx.sessions.get_or_create(request.cookies.get(SESSION_COOKIE))
        csrf = csrf_context(session)
        client = await run_in_threadpool(ctx.new_client, csrf, correlation_id=correlation_id)
        outcome = await run_in_threadpool(
            client.handle_callback, dict(request.query_params), csrf
        )
        _LOG.info(
            "OAuth callback outcome=%s correlation_id=%s",
            outcome.value,
            correlation_id,
        )
        title, body, status = _CALLBACK_PAGES[outcome]
        return _set_session_cookie(
            _html_page(title, body, status), session_id, request, ctx.settings.session_ttl
        )

    # ----- GET /twitter/ -------------------------------------------------- #
    def _read_status(correlation_id: str) -> dict:
        return ctx.new_client(correlation_id=correlation_id).status()

    async def _status(request: Request) -> Response:
        return JSONResponse(await run_in_threadpool(_read_status, _correlation_id(request)))

    # ----- POST /twitter/tweet/ ------------------------------------------- #
    async def _tweet(request: Request) -> Response:
        correlation_id = _correlation_id(request)
        try:
            await run_in_threadpool(ctx.broker.require_internal_bearer, request.headers)
        except PermissionDeniedError as exc:
            _LOG.warning("Tweet rejected (%s) correlation_id=%s", exc.reason, correlation_id)
            return JSONResponse(exc.to_payload(), status_code=401)

        try:
            payload = await request.json()
        except ValueError:
            return JSONResponse({"error": "invalid JSON body"}, status_code=400)
        text = payload.get("text") if isinstance(payload, dict) else None
        if not isinstance(text, str) or not text.strip():
            return JSONResponse({"error": "missing text"}, status_code=400)

        client = await run_in_threadpool(ctx.new_client, correlation_id=correlation_id)
        result = await run_in_threadpool(client.publish, text)
        if result is None:
            return JSONResponse({"error": "publish_failed"}, status_code=502)

        _LOG.info("Tweet published correlation_id=%s", correlation_id)
        return JSONResponse({"data": result.get("data"), "shortened_url": client.shortened_url})

    return [
        Route(f"{base_path}/authenticate/", _authenticate, methods=["GET"]),
        Route(f"{base_path}/callback/", _callback, methods=["GET"]),
        Route(f"{base_path}/tweet/", _tweet, methods=["POST"]),
        Route(f"{base_path}/", _status, methods=["GET"]),
    ]
