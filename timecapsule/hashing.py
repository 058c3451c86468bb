"""
Client-side helpers producing the 64-character SHA-256 hex digests a
capsule stores in place of the recipient identifier and the password.
"""

from nacl.hash import sha256
from nacl.encoding import HexEncoder


def sha256_hex(value) -> str:
    if isinstance(value, str):
        value = value.encode("utf-8")
    return sha256(value, encoder=HexEncoder).decode()


def hash_password(password: str) -> str:
    return sha256_hex(password)


def hash_email(email: str) -> str:
    """Email addresses are hashed trimmed and lower-cased."""
    return sha256_hex(email.strip().lower())
