"""Password hashing helpers (PBKDF2-SHA256, salted)."""
import base64
import hashlib
import hmac
import os
import secrets

PBKDF2_ITERS = int(os.environ.get("PASSWORD_HASH_ITERATIONS", "200000"))
PBKDF2_DKLEN = 32
SALT_BYTES = 16
SCHEME = "pbkdf2_sha256"


def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")


def b64d(s: str) -> bytes:
    return base64.b64decode(s.encode("ascii"))


def pbkdf2_hash(password: str, salt: bytes, iters: int) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iters, dklen=PBKDF2_DKLEN)


def hash_password(password: str) -> str:
    """Return ``scheme$iterations$salt$hash`` for storage."""
    salt = secrets.token_bytes(SALT_BYTES)
    digest = pbkdf2_hash(password, salt, PBKDF2_ITERS)
    return f"{SCHEME}${PBKDF2_ITERS}${b64e(salt)}${b64e(digest)}"


def verify_password(password: str, stored: str) -> bool:
    try:
        scheme, iters, salt, expected = stored.split("$")
    except ValueError:
        return False
    if scheme != SCHEME:
        return False
    got = pbkdf2_hash(password, b64d(salt), int(iters))
    return hmac.compare_digest(got, b64d(expected))
