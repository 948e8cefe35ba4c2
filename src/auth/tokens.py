import hashlib
import secrets

TOKEN_BYTES = 32
_MASK_MIN_LENGTH = 12


def generate_token() -> str:
    """Generate a 32-byte random token, hex-encoded (64 chars)."""
    return secrets.token_hex(TOKEN_BYTES)


def hash_token(token: str) -> str:
    """SHA-256 hash a token for storage and lookup."""
    return hashlib.sha256(token.encode()).hexdigest()


def mask_for_display(token: str) -> str:
    """Short preview for UIs and logs. Never use for access checks."""
    if len(token) <= _MASK_MIN_LENGTH:
        return token
    return f"{token[:6]}...{token[-4:]}"


def mask_email(email: str) -> str:
    name, _, domain = email.partition("@")
    if not name or not domain:
        return email
    if len(name) <= 2:
        return f"{name[0]}*@{domain}"
    return f"{name[:2]}***@{domain}"
