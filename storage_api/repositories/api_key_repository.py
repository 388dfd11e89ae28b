"""API key repository. Keys are issued by the external auth service."""

from datetime import datetime
from typing import Optional

from common.logging_config import get_logger
from storage_api.database import get_db_connection

logger = get_logger(__name__)


class ApiKeyRepository:
    @staticmethod
    def add_api_key(api_key: str, user_id: str, created_at: datetime) -> None:
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT OR REPLACE INTO api_keys (api_key, user_id, created_at) VALUES (?, ?, ?)",
                (api_key, user_id, created_at.isoformat())
            )
            conn.commit()
        logger.debug(f"Stored API key [user_id={user_id}]")

    @staticmethod
    def get_user_id(api_key: str) -> Optional[str]:
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT user_id FROM api_keys WHERE api_key = ?", (api_key,))
            row = cursor.fetchone()

            if row is None:
                return None

            return row["user_id"]

    @staticmethod
    def revoke_user_keys(user_id: str) -> int:
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM api_keys WHERE user_id = ?", (user_id,))
            conn.commit()
            return cursor.rowcount
