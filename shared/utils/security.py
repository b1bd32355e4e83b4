"""
shared/utils/security.py
Password hashing, delete-code generation, and constant-time secret checks.
"""

import hashlib
import hmac
import secrets
import string

from passlib.context import CryptContext

from config.settings import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

DELETE_CODE_ALPHABET = string.ascii_uppercase + string.digits


# ── Password ──────────────────────────────────────────────────

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


# ── Delete Codes ──────────────────────────────────────────────

def hash_token(token: str) -> str:
    """SHA-256 hash for securely storing delete codes."""
    return hashlib.sha256(token.encode()).hexdigest()


def generate_delete_code(length: int | None = None) -> str:
    """
    Random uppercase alphanumeric code, e.g. "AB12CD".
    36 symbols per position: 6 characters give ~31 bits of entropy.
    """
    length = length or settings.DELETE_CODE_LENGTH
    return "".join(secrets.choice(DELETE_CODE_ALPHABET) for _ in range(length))


def delete_code_matches(supplied_code: str, stored_hash: str) -> bool:
    """
    Exact, case-sensitive match after trimming surrounding whitespace.
    Compares digests in constant time.
    """
    candidate = hash_token(supplied_code.strip())
    return hmac.compare_digest(candidate, stored_hash)
