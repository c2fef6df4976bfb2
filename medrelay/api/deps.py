from fastapi import Depends, HTTPException, status, Request
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.database import get_db, get_redis
from ..core.storage import ReportStorage, get_storage
from ..services.patient_service import PatientService
from ..services.report_service import ReportService

def get_report_service(
    db: Session = Depends(get_db),
    storage: ReportStorage = Depends(get_storage)
) -> ReportService:
    return ReportService(db, storage)

def get_patient_service(db: Session = Depends(get_db)) -> PatientService:
    return PatientService(db)

# Rate limiting dependency
async def rate_limit_check(
    request: Request,
    redis_client = Depends(get_redis)
) -> None:
    """Basic per-client rate limiting for public endpoints."""
    client_ip = request.client.host if request.client else "unknown"
    key = f"rate_limit:{request.url.path}:{client_ip}"

    current_requests = redis_client.get(key)
    if current_requests is None:
        redis_client.setex(key, 3600, 1)  # 1 hour window
    else:
        if int(current_requests) >= settings.RATE_LIMIT_PER_HOUR:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests. Please try again later."
            )
        redis_client.incr(key)
