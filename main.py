#!/usr/bin/env python3
"""
Auth service -- password login with revocable bearer-token sessions.

Usage:
  python main.py serve
  python main.py serve --port 8080
  python main.py serve --reload
  python main.py init-db

Environment variables (see core/config.py for the full list):
  JWT_SECRET   Required. Token signing secret, at least 32 characters.
  DATASTORE    Required. "relational" (Postgres/SQLite) or "keyvalue" (Redis).
  PORT         HTTP port (default 3000).

Configuration is validated before anything else runs. A missing or invalid
required variable prints a FATAL ERROR line and exits with status 1.
"""

import argparse
import asyncio
import logging
import sys

from pydantic import ValidationError

from core.config import Settings, configure_logging, get_settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("authority.main")


def _load_settings() -> Settings:
    try:
        return get_settings()
    except ValidationError as exc:
        for err in exc.errors():
            field = ".".join(str(part) for part in err.get("loc", ())).upper() or "CONFIG"
            logger.critical("FATAL ERROR: %s: %s", field, err.get("msg", "invalid value"))
        sys.exit(1)


async def _init_db(settings: Settings) -> None:
    """Create the relational schema (or check Redis) without starting the server."""
    from redis.asyncio import Redis

    from auth.hashing import PasswordHasher
    from auth.store import create_user_store

    redis = Redis.from_url(settings.redis_url, decode_responses=True)
    store = create_user_store(settings, redis, PasswordHasher(rounds=settings.bcrypt_rounds))
    try:
        await store.init()
        await store.ping()
    finally:
        await store.close()
        await redis.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="authority",
        description="Password authentication API with revocable sessions.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  JWT_SECRET=... DATASTORE=relational python main.py serve
  DATASTORE=keyvalue python main.py serve --port 8080
  python main.py init-db
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=None, help="Bind address (default: HOST or 0.0.0.0)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (default: PORT or 3000)")
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")

    sub.add_parser("init-db", help="Create the user schema and verify store connectivity, then exit")

    args = parser.parse_args()
    settings = _load_settings()
    configure_logging(settings)

    if args.command == "init-db":
        try:
            asyncio.run(_init_db(settings))
        except Exception:
            logger.exception("Error initializing the user store")
            sys.exit(1)
        logger.info("User store initialized (datastore=%s)", settings.datastore)
        return

    import uvicorn

    host = args.host or settings.host
    port = args.port or settings.port
    logger.info("Auth API listening on %s:%d", host, port)
    uvicorn.run(
        "asgi:app",
        host=host,
        port=port,
        reload=args.reload,
        # Open connections get this long to finish on SIGTERM/SIGINT.
        timeout_graceful_shutdown=10,
    )


if __name__ == "__main__":
    main()
