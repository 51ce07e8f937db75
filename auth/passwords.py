"""
auth/passwords.py -- Password hashing and random token utilities.

Security design decisions:
  Passwords: scrypt (memory-hard) with N=2**14, r=8, p=1 and a 64-byte key.
       Stored as "<salt hex>:<key hex>" with a fresh 16-byte salt per hash, so
       hashing the same password twice never yields the same string.

  Verification: hmac.compare_digest compares the full derived key in
       constant time. A malformed stored hash ("", "nocolon", ":") is a
       non-match, never an exception -- the login path must not be able to
       crash on bad data.

  Tokens: secrets.token_hex(32) -- 256 bits from the OS CSPRNG, 64 lowercase
       hex chars. Used for session ids, reset tokens and OAuth state. No
       uniqueness check is made before insert; a primary-key collision would
       surface as an IntegrityError.

Layer rule: stdlib only. No imports from api/.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

_SCRYPT_N = 2**14
_SCRYPT_R = 8
_SCRYPT_P = 1
_KEY_LEN = 64
_SALT_LEN = 16
# OpenSSL's default scrypt memory cap (32 MiB) is exactly what N=2**14, r=8
# needs, which trips the limit on some builds. Give it explicit headroom.
_SCRYPT_MAXMEM = 64 * 1024 * 1024


def _derive(password: str, salt: bytes) -> bytes:
    return hashlib.scrypt(
        password.encode("utf-8"),
        salt=salt,
        n=_SCRYPT_N,
        r=_SCRYPT_R,
        p=_SCRYPT_P,
        maxmem=_SCRYPT_MAXMEM,
        dklen=_KEY_LEN,
    )


def hash_password(password: str) -> str:
    """Return "<salt hex>:<derived key hex>" for the given plaintext."""
    salt = secrets.token_bytes(_SALT_LEN)
    return f"{salt.hex()}:{_derive(password, salt).hex()}"


def verify_password(password: str, stored_hash: str | None) -> bool:
    """Return True if password matches stored_hash. Malformed hashes return False."""
    if not stored_hash:
        return False
    salt_hex, _, key_hex = stored_hash.partition(":")
    if not salt_hex or not key_hex:
        return False
    try:
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(key_hex)
    except ValueError:
        return False
    return hmac.compare_digest(_derive(password, salt), expected)


# Timing equalization dummy hash. Computed once at import so the first
# unknown-email login is not measurably slower than later ones. The manager
# verifies against it whenever there is no real hash to check.
DUMMY_HASH: str = hash_password("static-admin-timing-dummy")


def generate_session_id() -> str:
    return secrets.token_hex(32)


def generate_token() -> str:
    """Random token for password resets, OAuth state and linked secrets."""
    return secrets.token_hex(32)
