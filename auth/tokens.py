"""
auth/tokens.py -- Bearer token minting and the auth cookie helpers.

Tokens are opaque UUID4 strings. They carry no claims: the only way to learn
who a token belongs to is SocialStore.token_to_user_id(). That keeps the
token revocable by deleting its row and means there is no signing key to
manage.

Layer rule: no imports from api/ or social/. Import from core/ is allowed.
"""

from __future__ import annotations

import uuid

from core.config import get_settings

COOKIE_NAME = "access_token"


def generate_token() -> str:
    """Return a new random bearer token (UUID4, 122 bits of entropy)."""
    return str(uuid.uuid4())


def set_auth_cookie(response, token: str) -> None:
    """Write the bearer token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": cookie sent on same-site navigations and GET cross-site
        links, but not on cross-site POST -- CSRF mitigation for most cases.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    """
    settings = get_settings()
    response.set_cookie(
        COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=settings.cookie_max_age,
    )


def clear_auth_cookie(response) -> None:
    response.delete_cookie(COOKIE_NAME)
