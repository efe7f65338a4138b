"""
api/limiter.py -- Shared slowapi rate limiter and the login limit.

api/main.py mounts the limiter as middleware; api/routes/v1/auth.py applies
login_limit to POST /auth/login. One shared instance means one counter store.

The login limit is read from Settings at request time (slowapi accepts a
callable) so LOGIN_RATE_LIMIT can be tuned without touching code.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_limit() -> str:
    """Return the configured login rate, e.g. "10/minute"."""
    return get_settings().login_rate_limit
