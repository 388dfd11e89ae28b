"""Project-wide constants (topics, message keys, segment sizes)."""

UPLOAD_STREAM_TOPIC: str = "upload-stream"
UPLOAD_ACKNOWLEDGE_TOPIC: str = "upload-acknowledge"
DOWNLOAD_STREAM_TOPIC: str = "download-stream"

DEFAULT_STORAGE_PATH: str = "./archives"
DEFAULT_SEGMENT_SIZE_BYTES: int = 64 * 1024  # one download data message per 64 KiB read

UNEXPECTED_UPLOAD_ERROR: str = "Unexpected error during file upload handling"

ACK_STATUS_SUCCESS: str = "success"
ACK_STATUS_OK: str = "ok"
ACK_STATUS_ERROR: str = "error"
