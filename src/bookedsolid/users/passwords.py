"""Password hashing and strength rules."""

import re
import secrets
import string

import bcrypt

from bookedsolid.common.exceptions import WeakPasswordError

MIN_LENGTH = 8
# bcrypt only reads the first 72 bytes
_BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds=12)).decode("ascii")


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(_encode(password), password_hash.encode("ascii"))
    except ValueError:
        return False


def check_admin_password(password: str) -> None:
    """At least 8 characters and one digit."""
    if len(password) < MIN_LENGTH:
        raise WeakPasswordError("Password must be at least 8 characters")
    if not re.search(r"\d", password):
        raise WeakPasswordError("Password must contain at least one number")


def check_reset_password(password: str) -> None:
    """At least 8 characters with upper case, lower case and a digit."""
    if len(password) < MIN_LENGTH:
        raise WeakPasswordError("Password must be at least 8 characters")
    if not (
        re.search(r"[a-z]", password)
        and re.search(r"[A-Z]", password)
        and re.search(r"\d", password)
    ):
        raise WeakPasswordError(
            "Password must contain at least one uppercase letter, one lowercase letter, and one number"
        )


def generate_temporary_password(length: int = 12) -> str:
    """Random password that satisfies check_reset_password."""
    alphabet = string.ascii_letters + string.digits
    while True:
        candidate = "".join(secrets.choice(alphabet) for _ in range(length))
        if (
            any(c.islower() for c in candidate)
            and any(c.isupper() for c in candidate)
            and any(c.isdigit() for c in candidate)
        ):
            return candidate
