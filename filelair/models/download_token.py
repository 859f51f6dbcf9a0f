from sqlalchemy import Column, BigInteger, Boolean, String
from filelair.database import Base


class DownloadToken(Base):
    __tablename__ = "download_tokens"

    # sha256 hex digest of the token handed to the client
    token_id = Column(String(64), primary_key=True)
    share_id = Column(String(32), nullable=False, index=True)
    client_address = Column(String(64), nullable=False)
    created_at = Column(BigInteger, nullable=False)
    expires_at = Column(BigInteger, nullable=False, index=True)
    used = Column(Boolean, default=False, nullable=False)
    used_at = Column(BigInteger, nullable=True)
