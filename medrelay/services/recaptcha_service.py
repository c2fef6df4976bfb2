from typing import Optional
import httpx
import logging

from ..core.config import settings
from ..core.exceptions import BackendError

logger = logging.getLogger(__name__)

async def verify_recaptcha(token: Optional[str]) -> bool:
    """Check a client reCAPTCHA token with the verification endpoint."""
    if not token:
        return False

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                settings.RECAPTCHA_VERIFY_URL,
                data={
                    "secret": settings.RECAPTCHA_SECRET_KEY or "",
                    "response": token,
                },
            )
            response.raise_for_status()
            data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"reCAPTCHA verification failed: {e}")
        raise BackendError("Failed to verify reCAPTCHA")

    return bool(data.get("success"))
