"""
Approval token generation and hashing.

Raw tokens leave this module exactly once (to be embedded in an email) and
are never stored or logged; only their SHA-256 digest is persisted.
"""
import hashlib
import secrets
from typing import Tuple

# 32 random bytes = 256 bits of entropy
TOKEN_BYTES = 32


def hash_token(raw_token: str) -> str:
    """Return the hex SHA-256 digest used to look up a link."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def generate_token() -> Tuple[str, str]:
    """Return (raw_token, token_hash) for a new link."""
    raw_token = secrets.token_urlsafe(TOKEN_BYTES)
    return raw_token, hash_token(raw_token)
