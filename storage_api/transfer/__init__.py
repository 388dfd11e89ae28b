"""Chunked transfer protocol engine: upload ingestion and download emission."""

from storage_api.transfer.download_emission import DownloadEmitter, DownloadStatus, DownloadTicket
from storage_api.transfer.sessions import UploadSession, UploadSessionRegistry, UploadState
from storage_api.transfer.upload_ingestion import UploadIngestion

__all__ = [
    "DownloadEmitter",
    "DownloadStatus",
    "DownloadTicket",
    "UploadIngestion",
    "UploadSession",
    "UploadSessionRegistry",
    "UploadState",
]
