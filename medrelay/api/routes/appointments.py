from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from typing import List
import logging

from ...core.database import get_db, get_session_factory
from ...core.exceptions import BackendError
from ...schemas.appointment import AppointmentResponse, StatusUpdateResponse
from ...services.appointment_service import advance_appointment_statuses, list_appointments

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Appointments"])

@router.get("/appointments", response_model=List[AppointmentResponse])
async def get_appointments(db: Session = Depends(get_db)):
    try:
        return list_appointments(db)
    except SQLAlchemyError as e:
        logger.error(f"Error fetching appointments: {e}")
        raise BackendError("Failed to fetch appointments")

@router.post("/update-appointments", response_model=StatusUpdateResponse)
async def update_appointments(
    session_factory: sessionmaker = Depends(get_session_factory)
):
    """Run the appointment status update now; same logic as the daily job."""
    try:
        result = await run_in_threadpool(advance_appointment_statuses, session_factory)
    except SQLAlchemyError as e:
        logger.error(f"Error updating appointments: {e}")
        raise BackendError("Failed to update appointments")

    return StatusUpdateResponse(
        message="Appointments updated successfully",
        updated=result.updated,
        failed=result.failed_ids
    )
