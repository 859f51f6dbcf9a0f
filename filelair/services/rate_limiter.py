import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from filelair.config import (
    ATTEMPT_WINDOW_SECONDS,
    FAIL_CLOSED_LOCKOUT_SECONDS,
    LOCKOUT_SECONDS,
    MAX_PASSWORD_ATTEMPTS,
)
from filelair.logging_config import mask_identifier
from filelair.services.metadata_store import MetadataStore

logger = logging.getLogger(__name__)


@dataclass
class RateLimitResult:
    allowed: bool
    remaining_attempts: int | None = None
    locked_until: int | None = None


def password_limit_key(share_id: str, client_address: str) -> str:
    return f"RATELIMIT#{share_id}#{client_address}"


def throttle_key(key: str) -> str:
    return f"THROTTLE#{key}"


class RateLimiter:
    """Sliding-window password attempt limiter with lockout.

    Per (share ID, client address):
      Fresh  - no record, or the last attempt is older than the window
      Active - 1..max-1 failed attempts inside the window
      Locked - max failed attempts reached; every attempt is refused until
               ``locked_until`` passes, after which the record starts fresh

    Store failures never let a request through: the check answers
    ``allowed=False`` with a short lockout instead.
    """

    def __init__(
        self,
        store: MetadataStore,
        max_attempts: int = MAX_PASSWORD_ATTEMPTS,
        window_seconds: int = ATTEMPT_WINDOW_SECONDS,
        lockout_seconds: int = LOCKOUT_SECONDS,
    ):
        self.store = store
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.lockout_seconds = lockout_seconds

    def _fail_closed(self) -> RateLimitResult:
        return RateLimitResult(
            allowed=False, locked_until=self.store.now() + FAIL_CLOSED_LOCKOUT_SECONDS
        )

    def check_rate_limit(self, share_id: str, client_address: str) -> RateLimitResult:
        key = password_limit_key(share_id, client_address)
        try:
            now = self.store.now()
            record = self.store.get_rate_limit(key)

            if record is None:
                return RateLimitResult(allowed=True, remaining_attempts=self.max_attempts)

            if record.locked_until is not None:
                if record.locked_until > now:
                    return RateLimitResult(allowed=False, locked_until=record.locked_until)
                self.store.clear_elapsed_lockout(key, self.window_seconds)
                return RateLimitResult(allowed=True, remaining_attempts=self.max_attempts)

            if record.last_attempt < now - self.window_seconds:
                return RateLimitResult(allowed=True, remaining_attempts=self.max_attempts)

            if record.attempts >= self.max_attempts:
                locked_until = now + self.lockout_seconds
                # losing this race to a concurrent request only shifts the
                # lockout boundary by the time between the two checks
                self.store.lock_rate_limit(key, locked_until)
                logger.warning(
                    "Password attempts locked out",
                    extra={
                        "share": mask_identifier(share_id),
                        "client": mask_identifier(client_address),
                    },
                )
                return RateLimitResult(allowed=False, locked_until=locked_until)

            return RateLimitResult(
                allowed=True, remaining_attempts=self.max_attempts - record.attempts
            )
        except Exception:
            logger.exception("Rate limit check failed; denying attempt")
            return self._fail_closed()

    def record_attempt(self, share_id: str, client_address: str, success: bool) -> None:
        """Reset the counter on success, count one failure otherwise.

        Store errors propagate so the caller refuses the request.
        """
        key = password_limit_key(share_id, client_address)
        try:
            if success:
                self.store.put_rate_limit(key, attempts=0, ttl_seconds=self.window_seconds)
            else:
                self.store.increment_rate_limit_attempts(key, self.window_seconds)
        except SQLAlchemyError:
            logger.exception("Failed to record password attempt")
            raise

    def check_rate_limit_generic(self, key: str, window_seconds: int, max_requests: int) -> bool:
        """Count one request for ``key`` and say whether it fits the window."""
        try:
            count = self.store.increment_request_count(throttle_key(key), window_seconds)
        except Exception:
            logger.exception("Request throttle failed; denying request")
            return False
        return count <= max_requests
