#!/usr/bin/env python3
"""
authrelay -- HTTP facade over a managed identity backend.

Usage:
  python main.py
  python main.py --port 8080
  python main.py --host 127.0.0.1 --reload

Environment variables (or .env):
  SUPABASE_URL   Supabase project URL. Required.
  SUPABASE_KEY   Supabase service-role key. Required.
  PORT           Listening port (default 3000). --port overrides it.
  See core/config.py for the full list.
"""

import argparse

import uvicorn

from core.config import get_settings


def main() -> None:
    settings = get_settings()

    parser = argparse.ArgumentParser(
        prog="authrelay",
        description="HTTP facade over a managed identity backend.",
    )
    parser.add_argument("--host", default=settings.host, help=f"Bind address (default {settings.host})")
    parser.add_argument("--port", type=int, default=settings.port, help=f"Listening port (default {settings.port})")
    parser.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    args = parser.parse_args()

    uvicorn.run(
        "asgi:app",
        host=args.host,
        port=args.port,
        log_level=settings.log_level.lower(),
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
