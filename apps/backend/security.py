"""
AssetLogix - Credentials
========================
scrypt password hashing and session token helpers.

Stored password format is ``<hex digest>.<hex salt>``. The salt string
itself (not its decoded bytes) is the scrypt salt, which keeps hashes
compatible with accounts created by earlier deployments.
"""

import hashlib
import hmac
import secrets

SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1
KEY_LENGTH = 64
SALT_BYTES = 16


def _scrypt(password: str, salt: str) -> bytes:
    return hashlib.scrypt(
        password.encode("utf-8"),
        salt=salt.encode("utf-8"),
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
        dklen=KEY_LENGTH,
    )


def hash_password(password: str) -> str:
    """Hash a password with a fresh random salt."""
    salt = secrets.token_hex(SALT_BYTES)
    return f"{_scrypt(password, salt).hex()}.{salt}"


def verify_password(password: str, stored: str) -> bool:
    """
    Check a password against a stored hash in constant time.

    Malformed stored values never raise; they simply do not match.
    """
    if not stored or "." not in stored:
        return False

    hashed, salt = stored.split(".", 1)
    try:
        expected = bytes.fromhex(hashed)
    except ValueError:
        return False

    if len(expected) != KEY_LENGTH or not salt:
        return False

    return hmac.compare_digest(_scrypt(password, salt), expected)


def new_session_token() -> str:
    return secrets.token_urlsafe(32)


def hash_token(token: str, secret: str) -> str:
    """Keyed digest stored in place of the bearer token."""
    return hmac.new(secret.encode("utf-8"), token.encode("utf-8"), hashlib.sha256).hexdigest()
