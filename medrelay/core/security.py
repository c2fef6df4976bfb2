from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import quote
from jose import JWTError, jwt
from pydantic import BaseModel

from .config import settings

FILE_TOKEN_TYPE = "file"

class SignedUrlPayload(BaseModel):
    sub: str  # object path inside the bucket
    exp: Optional[int] = None
    token_type: Optional[str] = None

def signed_url_lifetime() -> timedelta:
    """Fixed validity window for every signed URL the service issues."""
    return timedelta(days=settings.SIGNED_URL_TTL_DAYS)

def create_signed_token(
    path: str,
    expires_delta: Optional[timedelta] = None,
    now: Optional[datetime] = None
) -> str:
    """Create a JWT granting read access to one stored object."""
    issued_at = now or datetime.utcnow()
    expire = issued_at + (expires_delta or signed_url_lifetime())

    to_encode = {
        "sub": path,
        "exp": expire,
        "token_type": FILE_TOKEN_TYPE
    }

    return jwt.encode(
        to_encode,
        settings.SIGNING_SECRET_KEY,
        algorithm=settings.SIGNING_ALGORITHM
    )

def verify_signed_token(token: str) -> Optional[SignedUrlPayload]:
    """Verify and decode a signed URL token."""
    try:
        payload = jwt.decode(
            token,
            settings.SIGNING_SECRET_KEY,
            algorithms=[settings.SIGNING_ALGORITHM]
        )
    except JWTError:
        return None

    token_payload = SignedUrlPayload(**payload)
    if token_payload.token_type != FILE_TOKEN_TYPE:
        return None
    return token_payload

def build_signed_url(token: str) -> str:
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/files/{quote(token)}"
