from sqlalchemy import Column, Integer, BigInteger, String
from filelair.database import Base


class RateLimitRecord(Base):
    """Attempt counter for one limiter key.

    Password limiter keys look like ``RATELIMIT#{share_id}#{client}``; the
    per-client request throttle uses ``THROTTLE#{name}:{client}``.
    """

    __tablename__ = "rate_limits"

    key = Column(String(255), primary_key=True)
    attempts = Column(Integer, default=0, nullable=False)
    window_start = Column(BigInteger, nullable=False)
    last_attempt = Column(BigInteger, nullable=False)
    locked_until = Column(BigInteger, nullable=True)
    expires_at = Column(BigInteger, nullable=False, index=True)
