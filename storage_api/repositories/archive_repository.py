"""Archive metadata repository for database operations."""

import sqlite3
from datetime import datetime
from typing import List, Optional

from common.logging_config import get_logger
from common.types import ArchiveRecord
from storage_api.database import get_db_connection

logger = get_logger(__name__)

ARCHIVE_COLUMNS = "owner, name, size_in_bytes, checksum, iv, created_at"


def _row_to_archive(row: sqlite3.Row) -> ArchiveRecord:
    return ArchiveRecord(
        owner=row["owner"],
        name=row["name"],
        size_in_bytes=row["size_in_bytes"],
        checksum=row["checksum"],
        iv=row["iv"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class ArchiveRepository:
    @staticmethod
    def create_archive(
        owner: str,
        name: str,
        created_at: datetime,
        iv: Optional[str] = None,
    ) -> ArchiveRecord:
        """
        Insert an archive record without checksum.

        Raises:
            sqlite3.IntegrityError: If the owner already has an archive with this name
        """
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                INSERT INTO archives ({ARCHIVE_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (owner, name, 0, None, iv, created_at.isoformat())
            )
            conn.commit()

        logger.debug(f"Created archive record [owner={owner}] [name={name}]")
        return ArchiveRecord(
            owner=owner,
            name=name,
            size_in_bytes=0,
            created_at=created_at,
            iv=iv,
        )

    @staticmethod
    def find_by_owner_and_name(owner: str, name: str) -> Optional[ArchiveRecord]:
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT {ARCHIVE_COLUMNS} FROM archives WHERE owner = ? AND name = ?",
                (owner, name)
            )
            row = cursor.fetchone()

            if row is None:
                return None

            return _row_to_archive(row)

    @staticmethod
    def list_by_owner(owner: str) -> List[ArchiveRecord]:
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT {ARCHIVE_COLUMNS} FROM archives WHERE owner = ? ORDER BY created_at, name",
                (owner,)
            )
            return [_row_to_archive(row) for row in cursor.fetchall()]

    @staticmethod
    def list_unfinished() -> List[ArchiveRecord]:
        """Records of uploads that never received a successful finish."""
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT {ARCHIVE_COLUMNS} FROM archives WHERE checksum IS NULL ORDER BY created_at, owner, name"
            )
            return [_row_to_archive(row) for row in cursor.fetchall()]

    @staticmethod
    def mark_finished(owner: str, name: str, checksum: str, iv: str, size_in_bytes: int) -> bool:
        """
        Set checksum, iv and final size of an uploaded archive.

        Returns:
            True if the record was updated, False if it does not exist
        """
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE archives
                SET checksum = ?, iv = ?, size_in_bytes = ?
                WHERE owner = ? AND name = ?
                """,
                (checksum, iv, size_in_bytes, owner, name)
            )
            conn.commit()
            return cursor.rowcount == 1

    @staticmethod
    def delete_archive(owner: str, name: str) -> Optional[ArchiveRecord]:
        """
        Delete an archive record.

        Returns:
            The deleted record, or None if there was nothing to delete
        """
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT {ARCHIVE_COLUMNS} FROM archives WHERE owner = ? AND name = ?",
                (owner, name)
            )
            row = cursor.fetchone()

            if row is None:
                return None

            cursor.execute("DELETE FROM archives WHERE owner = ? AND name = ?", (owner, name))
            conn.commit()

        logger.debug(f"Deleted archive record [owner={owner}] [name={name}]")
        return _row_to_archive(row)
