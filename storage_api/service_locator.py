"""Service locator for components wired at startup."""

from typing import Optional

from storage_api.services.archive_service import ArchiveService
from storage_api.sequence_tracker import SequenceTracker

_archive_service: Optional[ArchiveService] = None
_sequence_tracker: Optional[SequenceTracker] = None


def set_archive_service(service: Optional[ArchiveService]):
    """Set global archive service instance"""
    global _archive_service
    _archive_service = service


def get_archive_service() -> ArchiveService:
    """Dependency to get archive service"""
    if _archive_service is None:
        raise RuntimeError("Archive service is not initialized")
    return _archive_service


def set_sequence_tracker(tracker: Optional[SequenceTracker]):
    """Set global sequence tracker instance"""
    global _sequence_tracker
    _sequence_tracker = tracker


def get_sequence_tracker() -> Optional[SequenceTracker]:
    """Get global sequence tracker instance"""
    return _sequence_tracker
