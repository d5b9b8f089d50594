"""Password hashing utilities using bcrypt.

Uses the ``bcrypt`` library directly (>=4.0).  passlib[bcrypt] is intentionally
avoided because passlib is unmaintained and incompatible with bcrypt >=4.

Rows written by the previous service revision hold an unsalted hex digest
(the plaintext bytes followed by SHA-256 of the empty string).  Those still
verify so existing users can log in; ``needs_rehash`` flags them so the
caller can replace the stored hash with a bcrypt one after a successful login.
"""

import functools
import hashlib
import hmac
import re

import bcrypt

from config.settings import settings

# bcrypt only looks at the first 72 bytes; bcrypt>=5 rejects anything longer
MAX_PASSWORD_BYTES = 72

_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")
_EMPTY_SHA256_HEX = hashlib.sha256().hexdigest()
_LEGACY_PATTERN = re.compile(rf"^(?:[0-9a-f]{{2}})*{_EMPTY_SHA256_HEX}$")


def hash_password(plain: str) -> str:
    """Hash a plain-text password with bcrypt. Returns a utf-8 hash string.

    Raises ValueError when the password is longer than MAX_PASSWORD_BYTES
    once encoded; request schemas reject such passwords first.
    """
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    hashed_bytes: bytes = bcrypt.hashpw(plain.encode("utf-8"), salt)
    return hashed_bytes.decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a plain-text password against a bcrypt or legacy hash."""
    if hashed.startswith(_BCRYPT_PREFIXES):
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            # malformed salt, or a password over MAX_PASSWORD_BYTES
            return False
    if _is_legacy(hashed):
        return hmac.compare_digest(_legacy_digest(plain), hashed)
    return False


def needs_rehash(hashed: str) -> bool:
    """True when the stored hash predates bcrypt and should be replaced."""
    return _is_legacy(hashed)


def _is_legacy(hashed: str) -> bool:
    return _LEGACY_PATTERN.match(hashed) is not None


def _legacy_digest(plain: str) -> str:
    return (plain.encode("utf-8") + hashlib.sha256().digest()).hex()


@functools.cache
def _dummy_hash() -> str:
    return hash_password("unknown-user-placeholder")


def verify_dummy(plain: str) -> None:
    """Run one bcrypt check against a throwaway hash.

    Called when the username is unknown so the response takes as long as a
    password mismatch for an existing user.
    """
    verify_password(plain, _dummy_hash())
