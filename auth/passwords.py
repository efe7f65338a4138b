"""
auth/passwords.py -- Salted scrypt password hashing.

Security design decisions:
  Encoding: ``salt:derivedKeyHex``. The salt is 16 random bytes rendered as
       32 hex characters; the hex text itself is fed to scrypt as the salt, so
       the stored string is everything verify_password() needs.

  KDF: hashlib.scrypt with n=2**14, r=8, p=1 and a 64-byte key. scrypt is
       memory-hard, which makes GPU/ASIC brute force of low-entropy passwords
       expensive. ~16 MiB per derivation, inside OpenSSL's default maxmem.

  Comparison: hmac.compare_digest, so the time taken does not depend on how
       many leading bytes of the derived key match.

  _DUMMY_HASH enables timing equalization in SocialService.check_credentials()
       so response time does not reveal whether a user id exists.

Layer rule: stdlib only. No imports from api/ or social/.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets

logger = logging.getLogger("jesusgram.auth")

_SEPARATOR = ":"
_SALT_BYTES = 16
_KEY_BYTES = 64
_SCRYPT_N = 2**14
_SCRYPT_R = 8
_SCRYPT_P = 1


def _derive(password: str, salt: str) -> bytes:
    return hashlib.scrypt(
        password.encode("utf-8"),
        salt=salt.encode("utf-8"),
        n=_SCRYPT_N,
        r=_SCRYPT_R,
        p=_SCRYPT_P,
        dklen=_KEY_BYTES,
    )


def hash_password(password: str) -> str:
    """Return ``salt:derivedKeyHex`` for the plaintext password.

    A fresh random salt is drawn on every call, so hashing the same password
    twice yields two different encodings that both verify.
    """
    salt = secrets.token_hex(_SALT_BYTES)
    return f"{salt}{_SEPARATOR}{_derive(password, salt).hex()}"


def verify_password(password: str, encoded: str) -> bool:
    """Return True if ``password`` matches the ``salt:derivedKeyHex`` encoding.

    Never raises: a mismatch, a malformed encoding or a non-hex key all
    return False.
    """
    salt, sep, key_hex = (encoded or "").partition(_SEPARATOR)
    if not sep or not salt or not key_hex:
        return False
    try:
        stored = bytes.fromhex(key_hex)
    except ValueError:
        logger.warning("Stored password hash is not valid hex")
        return False
    return hmac.compare_digest(_derive(password, salt), stored)


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("jesusgram_timing_dummy")
