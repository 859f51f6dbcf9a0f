import os

from filelair.config import MAX_FILE_SIZE
from filelair.errors import ErrorCode, FileLairError

ALLOWED_EXTENSIONS = {
    ".txt", ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".svg",
    ".mp3", ".wav", ".mp4", ".avi", ".mov",
    ".zip", ".rar", ".7z", ".tar", ".gz",
}

ALLOWED_MIME_TYPES = {
    "text/plain", "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "image/jpeg", "image/png", "image/gif", "image/bmp", "image/svg+xml",
    "audio/mpeg", "audio/wav", "video/mp4", "video/x-msvideo", "video/quicktime",
    "application/zip", "application/x-rar-compressed", "application/x-7z-compressed",
    "application/x-tar", "application/gzip",
}


def format_file_size(size: int) -> str:
    for unit in ("Bytes", "KB", "MB"):
        if size < 1024:
            return f"{size:g} {unit}"
        size = round(size / 1024, 2)
    return f"{size:g} GB"


def validate_extension(file_name: str) -> None:
    extension = os.path.splitext(file_name.lower())[1]
    if not extension:
        raise FileLairError(ErrorCode.INVALID_FILE_TYPE, "File must have an extension")
    if extension not in ALLOWED_EXTENSIONS:
        raise FileLairError(
            ErrorCode.INVALID_FILE_TYPE, f"File type {extension} is not allowed"
        )


def validate_mime_type(mime_type: str) -> None:
    # browsers fall back to octet-stream for types they do not know
    if not mime_type or mime_type == "application/octet-stream":
        return
    if mime_type not in ALLOWED_MIME_TYPES:
        raise FileLairError(
            ErrorCode.INVALID_FILE_TYPE, f"MIME type {mime_type} is not allowed"
        )


def validate_file_size(size: int) -> None:
    if size <= 0:
        raise FileLairError(ErrorCode.FILE_TOO_LARGE, "File size must be greater than 0")
    if size > MAX_FILE_SIZE:
        raise FileLairError(
            ErrorCode.FILE_TOO_LARGE,
            f"File size {format_file_size(size)} exceeds maximum allowed size of "
            f"{format_file_size(MAX_FILE_SIZE)}",
        )


def validate_upload(file_name: str, mime_type: str, size: int) -> None:
    validate_extension(file_name)
    validate_mime_type(mime_type)
    validate_file_size(size)
