"""HTTP layer: Starlette routes around the OAuth core."""

from .main import build_context, create_app

__all__ = ["build_context", "create_app"]
