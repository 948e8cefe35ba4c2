"""Optional password binding for capability links.

Hashes are stored as ``salt:derivedKey`` where ``salt`` is 16 random bytes as
hex and ``derivedKey`` is a 64-byte scrypt output as hex. The hex text of the
salt is what gets fed to the KDF, so records written by earlier versions of
the portal keep verifying.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from collections.abc import Mapping
from typing import Any

SALT_BYTES = 16
KEY_LENGTH = 64
SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1
SCRYPT_MAXMEM = 64 * 1024 * 1024


def _derive(password: str, salt: str) -> bytes:
    return hashlib.scrypt(
        password.encode(),
        salt=salt.encode(),
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
        maxmem=SCRYPT_MAXMEM,
        dklen=KEY_LENGTH,
    )


def hash_password(password: str) -> str:
    salt = secrets.token_hex(SALT_BYTES)
    return f"{salt}:{_derive(password, salt).hex()}"


def verify_password(password: str, stored_hash: str | None) -> bool:
    """Check ``password`` against a stored ``salt:derivedKey`` record.

    An empty or missing record means the resource has no password and always
    verifies. Callers that need to know whether to prompt for a password must
    ask ``is_password_protected`` first. Corrupt records fail closed.
    """
    if not stored_hash:
        return True
    salt, _, key_hex = stored_hash.partition(":")
    if not salt or not key_hex:
        return False
    try:
        stored = bytes.fromhex(key_hex)
        derived = _derive(password or "", salt)
    except (ValueError, TypeError, MemoryError):
        return False
    if len(stored) != len(derived):
        return False
    return hmac.compare_digest(stored, derived)


def is_password_protected(record: Mapping[str, Any] | str | None) -> bool:
    """True when a link record (or a bare hash) carries a password gate."""
    if isinstance(record, Mapping):
        record = record.get("password_hash")
    return bool(record)
