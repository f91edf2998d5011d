import hmac
import logging

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

from docanalysis.utils.config import settings

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(
    name="X-API-Key",
    auto_error=False
)


async def validate_api_key(
    api_key: str = Security(api_key_header)
):
    """Check the gateway X-API-Key header against the configured key.

    An unset key only disables the check in development.
    """
    if not settings.api_key:
        if settings.is_development():
            return None
        logger.error("API_KEY is not configured; refusing gateway requests")
        raise HTTPException(status_code=503, detail="Gateway API key not configured")

    if not api_key:
        raise HTTPException(status_code=401, detail="API key required")

    if not hmac.compare_digest(settings.api_key.encode(), api_key.encode()):
        raise HTTPException(status_code=401, detail="Invalid API key")

    return api_key
