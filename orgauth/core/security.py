"""
Security Module

Password hashing/verification and the small credential helpers shared by
the account and password-reset services.

SECURITY NOTES:
- Passwords are hashed with bcrypt (slow by design to prevent brute force)
- Every hash gets a fresh random salt, so identical passwords never share a hash
- Verification goes through passlib, which compares in constant time
"""
import re
from typing import Optional

from passlib.context import CryptContext
from passlib.exc import UnknownHashError

from orgauth.config import get_settings

settings = get_settings()

# Work factor comes from settings: 12 in production. Tests set BCRYPT_ROUNDS=4
# because every sign-up and reset in the suite pays for one hash.
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)

PASSWORD_MIN_LENGTH = 8
# bcrypt ignores everything past the first 72 bytes of input
PASSWORD_MAX_BYTES = 72

_PASSWORD_RULES = (
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"[0-9]"), "Password must contain at least one number"),
)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash.

    Never raises on a malformed or unrecognised hash; that is simply a
    mismatch.
    """
    if len(plain_password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        # Could only match a stored password through bcrypt truncation.
        # Still pay for one hash so timing matches the normal path.
        pwd_context.dummy_verify()
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (UnknownHashError, ValueError, TypeError):
        return False


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt.

    NOTE: This is intentionally slow (100ms+ at 12 rounds).
    Don't call this in hot paths or tight loops.
    """
    return pwd_context.hash(password)


def validate_password_strength(password: str) -> Optional[str]:
    """Return the first unmet password requirement, or None if all are met."""
    if len(password) < PASSWORD_MIN_LENGTH:
        return f"Password must be at least {PASSWORD_MIN_LENGTH} characters"
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        return f"Password must be at most {PASSWORD_MAX_BYTES} bytes"
    for pattern, message in _PASSWORD_RULES:
        if not pattern.search(password):
            return message
    return None


def normalize_email(email: str) -> str:
    """Emails are case-insensitive; store and compare them lowercase."""
    return email.strip().lower()
