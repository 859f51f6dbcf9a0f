from enum import Enum


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    INVALID_PASSWORD = "INVALID_PASSWORD"
    RATE_LIMITED = "RATE_LIMITED"
    ACCESS_DENIED = "ACCESS_DENIED"
    SCAN_PENDING = "SCAN_PENDING"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    STORAGE_ERROR = "STORAGE_ERROR"
    INVALID_FILE_TYPE = "INVALID_FILE_TYPE"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"


STATUS_BY_CODE = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.FILE_NOT_FOUND: 404,
    ErrorCode.INVALID_PASSWORD: 401,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.ACCESS_DENIED: 403,
    ErrorCode.SCAN_PENDING: 202,
    ErrorCode.UPLOAD_FAILED: 500,
    ErrorCode.STORAGE_ERROR: 500,
    ErrorCode.INVALID_FILE_TYPE: 400,
    ErrorCode.FILE_TOO_LARGE: 413,
}

# Identical for "never existed" and "expired" on purpose.
FILE_NOT_FOUND_MESSAGE = "File not found or has expired"


class FileLairError(Exception):
    """A failure the caller is allowed to see: a stable code and a safe message."""

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    @property
    def status_code(self) -> int:
        return STATUS_BY_CODE[self.code]

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error": {"code": self.code.value, "message": self.message},
        }


def not_found() -> FileLairError:
    return FileLairError(ErrorCode.FILE_NOT_FOUND, FILE_NOT_FOUND_MESSAGE)
