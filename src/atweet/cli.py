"""atweet command line.

Operator commands for one site instance.  Configuration comes from
``ATWEET_*`` environment variables (see :mod:`atweet.utils.environment`); the
role flag and broker secrets are persisted in the option store.

Example
-------
    atweet configure --main
    atweet status --show-internal-token
    atweet configure --satellite --endpoint https://main.example --token <secret>
    atweet refresh
    atweet tweet "Hello world https://site.example/post"
    atweet serve --port 8000
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Sequence

from atweet.auth.broker import TokenBroker
from atweet.auth.client import OAuthClient
from atweet.auth.errors import ConfigurationError, StorageError
from atweet.auth.log_utils import configure_logging, mask_sensitive
from atweet.auth.store import DiskCredentialStore, remove_options
from atweet.auth.transport import RequestsTransport
from atweet.utils.environment import Settings

logger = logging.getLogger("atweet.cli")


def _build(settings: Settings) -> tuple[OAuthClient, TokenBroker]:
    store = DiskCredentialStore(settings.storage_dir)
    transport = RequestsTransport(timeout=settings.http_timeout, verify=settings.ssl_verify)
    broker = TokenBroker(store, transport, instance_id=settings.site_url)
    client = OAuthClient(settings.client_config(), store, transport, broker=broker)
    return client, broker


# --------------------------------------------------------------------------- #
# Commands
# --------------------------------------------------------------------------- #
def _cmd_configure(args: argparse.Namespace, settings: Settings) -> int:
    broker = TokenBroker(
        DiskCredentialStore(settings.storage_dir),
        RequestsTransport(timeout=settings.http_timeout, verify=settings.ssl_verify),
        instance_id=settings.site_url,
    )
    if args.satellite and not (args.endpoint and args.token):
        print("--satellite requires --endpoint and --token", file=sys.stderr)
        return 2
    broker.configure(
        main_site=args.main,
        remote_endpoint=args.endpoint,
        remote_token=args.token,
    )
    token = broker.ensure_internal_token()
    print(f"Role: {broker.role}")
    print(f"Internal token: {mask_sensitive(token)}")
    return 0


def _cmd_status(args: argparse.Namespace, settings: Settings) -> int:
    client, broker = _build(settings)
    status = client.status()
    credential = broker.credential()
    if not credential.main_site:
        status["remote_endpoint"] = credential.remote_endpoint or None
    if args.show_internal_token:
        status["internal_token"] = credential.internal_token or broker.ensure_internal_token()
    print(json.dumps(status, indent=2))
    return 0


def _cmd_refresh(args: argparse.Namespace, settings: Settings) -> int:
    client, _ = _build(settings)
    return 0 if client.refresh_token() else 1


def _cmd_pull(args: argparse.Namespace, settings: Settings) -> int:
    _, broker = _build(settings)
    return 0 if broker.pull_access_token() else 1


def _cmd_tweet(args: argparse.Namespace, settings: Settings) -> int:
    client, _ = _build(settings)
    result = client.publish(args.text)
    if result is None:
        print("Tweet failed; see log for details.", file=sys.stderr)
        return 1
    print(json.dumps({"data": result.get("data"), "shortened_url": client.shortened_url}, indent=2))
    return 0


def _cmd_reset(args: argparse.Namespace, settings: Settings) -> int:
    if not args.yes:
        print("Refusing to delete stored credentials without --yes", file=sys.stderr)
        return 2
    remove_options(DiskCredentialStore(settings.storage_dir))
    print("Stored credentials and broker options removed.")
    return 0


def _cmd_serve(args: argparse.Namespace, settings: Settings) -> int:
    import uvicorn

    from atweet.servers.main import build_context, create_app

    app = create_app(build_context(settings))
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)
    return 0


# --------------------------------------------------------------------------- #
# Entry point
# --------------------------------------------------------------------------- #
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="atweet", description="Twitter OAuth 2.0 site tools.")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("configure", help="set the broker role of this instance")
    role = p.add_mutually_exclusive_group(required=True)
    role.add_argument("--main", action="store_true", help="this instance owns the token")
    role.add_argument("--satellite", action="store_true", help="borrow the token from --endpoint")
    p.add_argument("--endpoint", help="base URL of the main website")
    p.add_argument("--token", help="internal token of the main website")
    p.set_defaults(func=_cmd_configure)

    p = sub.add_parser("status", help="show role and account (no secrets)")
    p.add_argument("--show-internal-token", action="store_true")
    p.set_defaults(func=_cmd_status)

    p = sub.add_parser("refresh", help="refresh (main) or pull (satellite) the access token")
    p.set_defaults(func=_cmd_refresh)

    p = sub.add_parser("pull", help="pull the access token from the main website")
    p.set_defaults(func=_cmd_pull)

    p = sub.add_parser("tweet", help="publish a tweet")
    p.add_argument("text")
    p.set_defaults(func=_cmd_tweet)

    p = sub.add_parser("reset", help="delete stored credentials and broker options")
    p.add_argument("--yes", action="store_true")
    p.set_defaults(func=_cmd_reset)

    p = sub.add_parser("serve", help="run the HTTP server")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)
    p.set_defaults(func=_cmd_serve)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    configure_logging(
        settings.log_dir, level=logging.DEBUG if args.verbose else logging.INFO
    )
    try:
        return args.func(args, settings)
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return 2
    except StorageError as exc:
        logger.error("Storage error: %s", exc)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
