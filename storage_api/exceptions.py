"""Custom exception classes for the storage API."""


class StorageServiceError(Exception):
    """
    Base exception class for all storage API errors.
    """
    pass


class ArchiveNotFoundError(StorageServiceError):
    """
    Raised when a requested archive does not exist for the caller,
    or has not finished uploading.
    """
    pass


class ArchiveAlreadyExistsError(StorageServiceError):
    """
    Raised when an upload is started for a name the owner already uses.
    """
    pass


class ArchiveBusyError(StorageServiceError):
    """
    Raised when deleting an archive that is currently being emitted to the download topic.
    """
    pass


class InvalidArchiveNameError(StorageServiceError):
    """
    Raised when an owner or archive name cannot be mapped to a storage path.
    """
    pass


class InvalidAPIKeyError(StorageServiceError):
    """
    Raised when an API Key is invalid or unknown.
    """
    pass


class DownloadNotFoundError(StorageServiceError):
    """
    Raised when a download ticket does not exist for the caller.
    """
    pass
