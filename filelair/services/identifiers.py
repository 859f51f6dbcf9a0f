import base64
import hashlib
import re
import secrets
import time

from cryptography.hazmat.primitives import hashes

SHARE_ID_LENGTH = 32
SHARE_ID_RANDOM_BYTES = 24
DOWNLOAD_TOKEN_BYTES = 16
DOWNLOAD_TOKEN_LENGTH = 22

_SHARE_ID_RE = re.compile(r"[A-Za-z0-9_-]{%d}" % SHARE_ID_LENGTH)
_DOWNLOAD_TOKEN_RE = re.compile(r"[A-Za-z0-9_-]{%d}" % DOWNLOAD_TOKEN_LENGTH)


def generate_share_id() -> str:
    """Return a 32 character URL-safe share ID carrying 192 bits of entropy.

    Random bytes and a nanosecond timestamp are run through SHA-256 so the
    output is uniform and fixed length whatever the random source looks like.
    """
    digest = hashes.Hash(hashes.SHA256())
    digest.update(secrets.token_bytes(SHARE_ID_RANDOM_BYTES))
    digest.update(time.time_ns().to_bytes(8, "big"))
    encoded = base64.urlsafe_b64encode(digest.finalize()).decode("ascii")
    return encoded[:SHARE_ID_LENGTH]


def generate_download_token() -> str:
    return secrets.token_urlsafe(DOWNLOAD_TOKEN_BYTES)


def token_digest(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def is_valid_share_id(value) -> bool:
    return isinstance(value, str) and _SHARE_ID_RE.fullmatch(value) is not None


def is_valid_download_token(value) -> bool:
    return isinstance(value, str) and _DOWNLOAD_TOKEN_RE.fullmatch(value) is not None
