"""Twitter OAuth 2.0 auto-publisher with a shared-account token broker."""

__version__ = "0.1.0"
