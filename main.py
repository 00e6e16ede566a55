#!/usr/bin/env python3
"""
Session Broker -- username/password login, cookie sessions, and app session validation.

Usage:
  python main.py
  python main.py --host 0.0.0.0 --port 8080
  python main.py --reload

Configuration comes from environment variables or a .env file (see
core/config.py): BCRYPT_ROUNDS, SESSION_TTL_DAYS, DEFAULT_APP, SECURE_COOKIES,
ALLOWED_HOSTS, CORS_ORIGINS, LOG_LEVEL.
"""

import argparse

import uvicorn

from core.config import get_settings


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="session-broker",
        description="Run the session broker HTTP server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py
  python main.py --port 9000
  SESSION_TTL_DAYS=1 python main.py --reload
        """,
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Interface to bind (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to listen on (default: 8000)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Restart on code changes (development only; state is lost on every reload)",
    )
    args = parser.parse_args()

    # Fail fast on bad configuration before uvicorn imports the app.
    settings = get_settings()

    # A single worker: all state lives in this process's memory.
    uvicorn.run(
        "asgi:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=1,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
