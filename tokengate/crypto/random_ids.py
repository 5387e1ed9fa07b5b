"""Secure random identifiers and opaque session tokens."""

import secrets

ID_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
ID_LENGTH = 16
SESSION_TOKEN_BYTES = 32


def generate_id() -> str:
    """Generate a random 16-character alphanumeric id."""
    return generate_secure_string(ID_LENGTH)


def generate_session_token() -> str:
    """Generate a 64-character hex session token."""
    return secrets.token_hex(SESSION_TOKEN_BYTES)


def generate_secure_string(length: int, alphabet: str = ID_ALPHABET) -> str:
    """Generate ``length`` characters drawn uniformly from ``alphabet``."""
    if length < 0:
        raise ValueError("length must not be negative")
    if not alphabet:
        raise ValueError("alphabet must not be empty")
    return "".join(secrets.choice(alphabet) for _ in range(length))
