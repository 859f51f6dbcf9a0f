from filelair.models.file_record import FileRecord, ScanStatus
from filelair.models.rate_limit import RateLimitRecord
from filelair.models.download_token import DownloadToken

__all__ = ["FileRecord", "ScanStatus", "RateLimitRecord", "DownloadToken"]
