"""Security helpers for passwords, session tokens and one-time codes."""

from __future__ import annotations

import base64
import hashlib
import hmac
import os
import secrets


PBKDF2_ROUNDS = 260_000


def hash_password(password: str) -> str:
    """Hash password with PBKDF2-SHA256 and a random salt."""

    salt = os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ROUNDS)
    salt_b64 = base64.b64encode(salt).decode("ascii")
    digest_b64 = base64.b64encode(digest).decode("ascii")
    return f"pbkdf2_sha256${PBKDF2_ROUNDS}${salt_b64}${digest_b64}"


def verify_password(password: str, encoded_hash: str | None) -> bool:
    """Verify password against a PBKDF2-SHA256 encoded hash."""

    if not encoded_hash:
        return False
    try:
        algorithm, rounds_str, salt_b64, digest_b64 = encoded_hash.split("$", 3)
        if algorithm != "pbkdf2_sha256":
            return False
        rounds = int(rounds_str)
        salt = base64.b64decode(salt_b64.encode("ascii"))
        expected = base64.b64decode(digest_b64.encode("ascii"))
    except (ValueError, TypeError):
        return False

    observed = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)
    return hmac.compare_digest(observed, expected)


def hash_token(secret_value: str) -> str:
    return hashlib.sha256(secret_value.encode("utf-8")).hexdigest()


def generate_session_secret() -> str:
    return secrets.token_urlsafe(32)


def generate_otp_code(length: int = 6) -> str:
    return "".join(secrets.choice("0123456789") for _ in range(length))


def otp_codes_match(code: str, code_hash: str) -> bool:
    return hmac.compare_digest(hash_token(code), code_hash)
