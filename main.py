#!/usr/bin/env python3
"""
Jesusgram -- a small social network: post, follow, read your dashboard.

Usage:
  python main.py                 # serve on 127.0.0.1:8888
  python main.py 9000            # serve on port 9000
  python main.py --host 0.0.0.0
  python main.py --reload        # auto-reload on code changes (development)

Environment variables (see core/config.py for the full list):
  DATABASE_URL      SQLAlchemy URL. Defaults to a SQLite file next to the code.
  GUEST_USER_ID     Optional demo account seeded at startup, together with
  GUEST_USER_NAME   GUEST_USER_NAME and GUEST_PASSWORD.
  GUEST_PASSWORD
"""

import argparse

import uvicorn

_DEFAULT_PORT = 8888


def _port(value: str) -> int:
    port = int(value)
    if not 0 < port < 65536:
        raise argparse.ArgumentTypeError(f"'{value}' is not a valid TCP port.")
    return port


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="jesusgram",
        description="Run the Jesusgram API server.",
    )
    parser.add_argument("port", nargs="?", type=_port, default=_DEFAULT_PORT, help="TCP port (default: 8888)")
    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind (default: 127.0.0.1)")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")
    args = parser.parse_args()

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
