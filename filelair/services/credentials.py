import base64
import hashlib
import re
from dataclasses import dataclass, field
from functools import lru_cache

import bcrypt

from filelair.config import BCRYPT_ROUNDS, PASSWORD_MAX_LENGTH, PASSWORD_MIN_LENGTH

SPECIAL_CHARACTERS = "!@#$%^&*()_+-=[]{};':\"\\|,.<>/?"

COMMON_PREFIXES = (
    "12345678",
    "password",
    "qwerty",
    "admin",
    "letmein",
    "welcome",
    "monkey",
    "dragon",
    "iloveyou",
    "abc123",
    "asdfgh",
    "zxcvbn",
    "1q2w3e",
)

_REPEATED_RUN = re.compile(r"(.)\1{3,}", re.DOTALL)


def _encode(password: str) -> bytes:
    # bcrypt ignores input past 72 bytes; the digest keeps every character significant
    return base64.b64encode(hashlib.sha256(password.encode("utf-8")).digest())


@lru_cache(maxsize=1)
def _decoy_hash() -> bytes:
    return bcrypt.hashpw(b"filelair-decoy", bcrypt.gensalt(rounds=BCRYPT_ROUNDS))


def hash_password(password: str) -> str:
    if len(password) > PASSWORD_MAX_LENGTH:
        raise ValueError(f"Password must not exceed {PASSWORD_MAX_LENGTH} characters")
    return bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode()


def verify_password(password: str, password_hash: str) -> bool:
    """Check ``password`` against a stored bcrypt hash.

    A malformed hash still costs one full bcrypt round against a decoy so the
    response time does not reveal it.
    """
    candidate = _encode(password)
    if len(password) > PASSWORD_MAX_LENGTH:
        bcrypt.checkpw(candidate, _decoy_hash())
        return False
    try:
        return bcrypt.checkpw(candidate, password_hash.encode())
    except ValueError:
        bcrypt.checkpw(candidate, _decoy_hash())
        return False


@dataclass
class PasswordCheck:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    strength: str = "weak"


def _character_classes(password: str) -> list[bool]:
    return [
        any("A" <= c <= "Z" for c in password),
        any("a" <= c <= "z" for c in password),
        any("0" <= c <= "9" for c in password),
        any(c in SPECIAL_CHARACTERS for c in password),
    ]


def password_score(password: str) -> int:
    score = sum(1 for threshold in (8, 12, 16) if len(password) >= threshold)
    score += sum(_character_classes(password))
    if password and len(set(password)) > len(password) * 0.7:
        score += 1
    return min(score, 5)


def password_strength(password: str) -> str:
    score = password_score(password)
    if score >= 5:
        return "strong"
    if score >= 3:
        return "medium"
    return "weak"


def validate_password_strength(password: str) -> PasswordCheck:
    errors = []

    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    if len(password) > PASSWORD_MAX_LENGTH:
        errors.append(f"Password must not exceed {PASSWORD_MAX_LENGTH} characters")

    if sum(_character_classes(password)) < 3:
        errors.append(
            "Password must contain at least 3 of the following: uppercase letters, "
            "lowercase letters, numbers, special characters"
        )

    if password.lower().startswith(COMMON_PREFIXES):
        errors.append("Password is too common or follows a predictable pattern")

    if _REPEATED_RUN.search(password):
        errors.append("Password should not contain more than 3 repeated characters in a row")

    return PasswordCheck(
        is_valid=not errors,
        errors=errors,
        strength=password_strength(password),
    )
