"""
auth/dependencies.py -- FastAPI Depends() helpers for identity extraction.

The bearer token is looked for in priority order:
  1. Cookie ("access_token") -- set by POST /api/v1/auth/login.
  2. Authorization: Bearer <token> header -- API clients.

These helpers only *extract* the token. Whether it belongs to the user a
route acts on is decided by SocialService.check_authentication(), which
takes the token and the claimed user id as explicit parameters.

Layer rule: no imports from api/ or social/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.tokens import COOKIE_NAME


def get_bearer_token(request: Request) -> str | None:
    """Return the caller's bearer token, or None if none was presented.

    Never raises -- a missing token is reported by the service layer as
    UNAUTHENTICATED so the error envelope stays uniform.
    """
    token: str | None = request.cookies.get(COOKIE_NAME)
    if token:
        return token

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
    return token or None
