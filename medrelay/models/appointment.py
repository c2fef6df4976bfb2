from sqlalchemy import Column, String, DateTime, Text
from sqlalchemy.sql import func
import enum
import uuid

from ..core.database import Base

class AppointmentStatus(str, enum.Enum):
    UPCOMING = "Upcoming"
    LATE = "Late"
    FAILED = "Failed"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

# Statuses the status engine is allowed to advance
PENDING_STATUSES = (AppointmentStatus.UPCOMING, AppointmentStatus.LATE)

def _new_id() -> str:
    return uuid.uuid4().hex

class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(String(32), primary_key=True, default=_new_id)
    patient_id = Column(String(64), nullable=True, index=True)

    # Stored as strings: Date is YYYY-MM-DD, Time is HH:MM local wall-clock
    date = Column(String(10), nullable=False, index=True)
    time = Column(String(5), nullable=False)
    status = Column(String(20), nullable=False, default=AppointmentStatus.UPCOMING.value, index=True)

    department = Column(String(100), nullable=True)
    doctor = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Appointment(id={self.id}, date='{self.date}', time='{self.time}', status='{self.status}')>"
