from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.exc import SQLAlchemyError
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo
import logging

from ..core.config import settings
from ..models.appointment import Appointment, AppointmentStatus, PENDING_STATUSES

logger = logging.getLogger(__name__)

@dataclass
class StatusUpdateResult:
    updated: int = 0
    errors: List[Tuple[str, str]] = field(default_factory=list)  # (appointment id, cause)

    @property
    def failed_ids(self) -> List[str]:
        return [appointment_id for appointment_id, _ in self.errors]

def local_now() -> datetime:
    """Current wall-clock time in the zone appointment times are written in."""
    return datetime.now(ZoneInfo(settings.APPOINTMENT_TIMEZONE)).replace(tzinfo=None)

def derive_status(date_value: str, time_value: str, now: datetime) -> Optional[AppointmentStatus]:
    """Status an Upcoming/Late appointment should move to, or None to keep it.

    A previous calendar day escalates straight to Failed; a past time on the
    current day only makes the appointment Late.
    """
    appointment_date = datetime.strptime(date_value, "%Y-%m-%d").date()
    appointment_time = datetime.strptime(time_value, "%H:%M").time()
    appointment_datetime = datetime.combine(appointment_date, appointment_time)
    appointment_date_start = datetime.combine(appointment_date, time.min)
    today_start = datetime.combine(now.date(), time.min)

    if appointment_date_start < today_start:
        return AppointmentStatus.FAILED
    if appointment_datetime < now:
        return AppointmentStatus.LATE
    return None

def list_appointments(db: Session) -> List[Appointment]:
    return db.query(Appointment).order_by(Appointment.date, Appointment.time).all()

class AppointmentStatusEngine:
    def __init__(self, session_factory: sessionmaker, max_workers: Optional[int] = None):
        self.session_factory = session_factory
        self.max_workers = max(1, max_workers or settings.STATUS_UPDATE_CONCURRENCY)

    def advance(self, now: datetime) -> StatusUpdateResult:
        """Advance every Upcoming or Late appointment that is overdue at ``now``."""
        result = StatusUpdateResult()
        transitions = []

        for appointment_id, date_value, time_value, current in self._pending():
            try:
                new_status = derive_status(date_value, time_value, now)
            except (TypeError, ValueError) as e:
                logger.error(f"Appointment {appointment_id} has unreadable Date/Time: {e}")
                result.errors.append((appointment_id, "invalid date or time"))
                continue
            if new_status is not None and new_status.value != current:
                transitions.append((appointment_id, current, new_status))

        if not transitions:
            return result

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            outcomes = list(pool.map(lambda t: self._apply(*t), transitions))

        for (appointment_id, _, _), error in zip(transitions, outcomes):
            if error is None:
                result.updated += 1
            else:
                result.errors.append((appointment_id, error))
        return result

    def _pending(self) -> List[Tuple[str, str, str, str]]:
        db = self.session_factory()
        try:
            rows = []
            # Two equality queries; the result sets are disjoint
            for status in PENDING_STATUSES:
                rows.extend(
                    db.query(
                        Appointment.id, Appointment.date, Appointment.time, Appointment.status
                    ).filter(Appointment.status == status.value).all()
                )
            return [tuple(row) for row in rows]
        finally:
            db.close()

    def _apply(self, appointment_id: str, current: str, new_status: AppointmentStatus) -> Optional[str]:
        db = self.session_factory()
        try:
            # Guarded by the status that was read, so a concurrent change is never reverted
            changed = db.query(Appointment).filter(
                Appointment.id == appointment_id,
                Appointment.status == current
            ).update({Appointment.status: new_status.value}, synchronize_session=False)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error updating appointment {appointment_id}: {e}")
            return "update failed"
        finally:
            db.close()

        if changed:
            logger.info(f"Appointment {appointment_id} marked as {new_status.value}.")
        else:
            logger.info(f"Appointment {appointment_id} changed concurrently, left as is.")
        return None

def advance_appointment_statuses(
    session_factory: sessionmaker,
    now: Optional[datetime] = None
) -> StatusUpdateResult:
    """Entry point shared by the daily job and the on-demand endpoint."""
    now = now or local_now()
    result = AppointmentStatusEngine(session_factory).advance(now)
    logger.info(
        f"Appointment status update at {now.isoformat()}: "
        f"{result.updated} updated, {len(result.errors)} failed"
    )
    return result
