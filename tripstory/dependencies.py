import hmac
import logging

from fastapi import Header, HTTPException, Request

from tripstory.config import settings

logger = logging.getLogger(__name__)


async def verify_api_key(request: Request, x_api_key: str = Header(default="")) -> None:
    """Guard for the trip API. An empty ``API_KEY`` setting turns the check off."""
    if not settings.api_key:
        return
    if not hmac.compare_digest(x_api_key.encode(), settings.api_key.encode()):
        logger.warning("Rejected %s %s: bad API key", request.method, request.url.path)
        raise HTTPException(status_code=403, detail="Invalid or missing API key")
