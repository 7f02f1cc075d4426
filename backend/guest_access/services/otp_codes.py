"""OTP code generation and keyed hashing.

Codes are 6 uniformly random digits (leading zeros kept). Only
``HMAC-SHA256(secret, f"{salt}:{code}")`` is persisted, so a leaked table
cannot be brute-forced offline without the server secret.
"""

import hashlib
import hmac
import secrets

CODE_LENGTH = 6
_SALT_BYTES = 16


def generate_code() -> str:
    """Random numeric code, zero-padded to CODE_LENGTH digits."""
    return f"{secrets.randbelow(10**CODE_LENGTH):0{CODE_LENGTH}d}"


def generate_salt() -> str:
    return secrets.token_hex(_SALT_BYTES)


def hash_code(code: str, salt: str, secret: str) -> str:
    """Keyed hash of a code (hex digest)."""
    message = f"{salt}:{code}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def code_matches(code: str, salt: str, expected_hash: str, secret: str) -> bool:
    """Constant-time comparison of a submitted code against a stored hash."""
    return hmac.compare_digest(hash_code(code, salt, secret), expected_hash)
