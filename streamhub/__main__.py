"""streamhub server entry point.

Usage:
    python -m streamhub --bind 0.0.0.0:9999 --loglevel info
    python -m streamhub --bootstrap admin:s3cret     # create an admin user
    python -m streamhub --regen-secret               # invalidates every session
"""

from __future__ import annotations

import argparse
import logging
import sys

from streamhub.auth.models import UserLevel
from streamhub.config import settings
from streamhub.serve import build_backend, create_app

logger = logging.getLogger("streamhub")

_LOG_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "notice": logging.INFO,
    "debug": logging.DEBUG,
}


def parse_log_level(level: str) -> int:
    return _LOG_LEVELS.get(level.lower(), logging.INFO)


def parse_bootstrap(value: str) -> tuple[str, str]:
    """Split ``user:key``; both parts must be non-empty."""
    user, sep, key = value.partition(":")
    if not sep or not user or not key:
        raise ValueError("--bootstrap requires credentials in format username:key")
    return user, key


def parse_bind(value: str) -> tuple[str, int]:
    host, _, port = value.rpartition(":")
    return host or "0.0.0.0", int(port)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="streamhub", description="Twitch EventSub bridge backend")
    parser.add_argument("--bind", default="0.0.0.0:9999", help="Bind address as host:port")
    parser.add_argument("--loglevel", default="info", help="debug, info, warn, error")
    parser.add_argument("--bootstrap", default="", help="Create admin user with credentials user:key")
    parser.add_argument(
        "--regen-secret",
        action="store_true",
        help="Regenerate the signing secret; invalidates every issued session",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=parse_log_level(args.loglevel),
        format="%(asctime)s %(levelname)-8s %(name)s %(message)s",
    )

    bootstrap = None
    if args.bootstrap:
        try:
            bootstrap = parse_bootstrap(args.bootstrap)
        except ValueError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            sys.exit(1)

    backend = build_backend(settings, regenerate_secret=args.regen_secret)

    if bootstrap:
        user, key = bootstrap
        backend.auth.add_user(user, key, UserLevel.ADMIN)
        logger.info("Created admin user %s", user)
    elif backend.auth.count_users() < 1:
        logger.warning("No users found, start streamhub with --bootstrap to set up an administrator")

    import uvicorn

    host, port = parse_bind(args.bind)
    logger.info("Starting web server on %s:%d", host, port)
    uvicorn.run(create_app(backend, settings), host=host, port=port)


if __name__ == "__main__":
    main()
