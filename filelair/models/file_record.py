from enum import Enum
from sqlalchemy import Column, Integer, BigInteger, String, Text
from filelair.database import Base


class ScanStatus(str, Enum):
    PENDING = "pending"
    SCANNING = "scanning"
    CLEAN = "clean"
    INFECTED = "infected"
    ERROR = "error"


class FileRecord(Base):
    __tablename__ = "file_records"

    share_id = Column(String(32), primary_key=True)
    original_filename = Column(String(255), nullable=False)
    storage_key = Column(String(1024), nullable=False)
    file_size = Column(BigInteger, nullable=False)
    mime_type = Column(String(255), nullable=False)
    # NULL means the file is not password protected
    password_hash = Column(String(60), nullable=True)
    # epoch seconds
    uploaded_at = Column(BigInteger, nullable=False)
    expires_at = Column(BigInteger, nullable=False, index=True)
    download_count = Column(Integer, default=0, nullable=False)
    scan_status = Column(String(16), default=ScanStatus.PENDING.value, nullable=False)
    scan_date = Column(BigInteger, nullable=True)
    scan_result = Column(Text, nullable=True)

    @property
    def is_password_protected(self) -> bool:
        return bool(self.password_hash)
