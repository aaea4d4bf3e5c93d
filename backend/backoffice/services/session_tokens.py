from __future__ import annotations

import hashlib
import hmac
import secrets


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    This is the plaintext token handed to the client (never stored).
    """
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash a token or code for storage using SHA-256.

    Tokens are already high-entropy (unlike passwords), so SHA-256 is
    sufficient. Returns hex-encoded hash string.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_code(digits: int = 6) -> str:
    """Numeric one-time code, zero-padded."""
    return f"{secrets.randbelow(10 ** digits):0{digits}d}"


def matches(candidate: str, expected_hash: str) -> bool:
    return hmac.compare_digest(hash_token(candidate or ""), expected_hash)
