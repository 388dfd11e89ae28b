"""Authentication dependency for the HTTP layer."""

from fastapi import Header

from common.logging_config import get_logger
from storage_api.config import API_KEY_PREFIX
from storage_api.exceptions import InvalidAPIKeyError
from storage_api.repositories.api_key_repository import ApiKeyRepository

logger = get_logger(__name__)


async def get_current_user(authorization: str = Header(...)) -> str:
    """
    FastAPI dependency to validate the API Key and extract user_id.

    Args:
        authorization: Authorization header value (format: "Bearer <api_key>")

    Returns:
        user_id of the authenticated user

    Raises:
        InvalidAPIKeyError: If the header is malformed or the key is unknown
    """
    if not authorization.startswith(API_KEY_PREFIX):
        raise InvalidAPIKeyError("Invalid authorization header format")

    api_key = authorization[len(API_KEY_PREFIX):].strip()
    user_id = ApiKeyRepository.get_user_id(api_key) if api_key else None
    if user_id is None:
        logger.warning("API key validation failed: invalid key")
        raise InvalidAPIKeyError("Invalid or unknown API key")

    return user_id
