"""Starlette application setup for the atweet site."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from atweet.auth.broker import AccessTokenPuller, TokenBroker
from atweet.auth.session import MemorySessionStore, SessionStore
from atweet.auth.store import CredentialStore, DiskCredentialStore
from atweet.auth.transport import HttpTransport, RequestsTransport
from atweet.utils.environment import Settings

from .auth import auth_routes
from .context import MainAppContext
from .correlation import CorrelationIdMiddleware
from .internal import internal_routes

logger = logging.getLogger("atweet.server.main")


async def health_check(request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


def build_context(
    settings: Settings | None = None,
    *,
    store: CredentialStore | None = None,
    sessions: SessionStore | None = None,
    transport: HttpTransport | None = None,
) -> MainAppContext:
    """Assemble the shared capabilities; raises ConfigurationError if incomplete."""
    settings = settings or Settings.from_env()
    config = settings.client_config()
    store = store or DiskCredentialStore(settings.storage_dir)
    transport = transport or RequestsTransport(
        timeout=settings.http_timeout, verify=settings.ssl_verify
    )
    return MainAppContext(
        settings=settings,
        config=config,
        store=store,
        sessions=sessions or MemorySessionStore(ttl_seconds=settings.session_ttl),
        transport=transport,
        broker=TokenBroker(store, transport, instance_id=settings.site_url),
    )


def create_app(ctx: MainAppContext | None = None) -> Starlette:
    """Return the ASGI application serving the OAuth, publish and broker routes."""
    ctx = ctx or build_context()

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        logger.info("atweet lifespan starting (site=%s)...", ctx.settings.site_url)
        ctx.broker.ensure_internal_token()
        puller: AccessTokenPuller | None = None
        if not ctx.broker.is_main_site():
            puller = AccessTokenPuller(ctx.broker, interval=ctx.settings.pull_interval)
            puller.start()
        try:
            yield
        finally:
            if puller is not None:
                puller.stop()
            logger.info("atweet lifespan stopped")

    routes = [
        Route("/healthz", health_check, methods=["GET"], include_in_schema=False),
        *auth_routes(ctx),
        *internal_routes(ctx),
    ]
    app = Starlette(
        routes=routes,
        middleware=[Middleware(CorrelationIdMiddleware)],
        lifespan=lifespan,
    )
    app.state.ctx = ctx
    return app
