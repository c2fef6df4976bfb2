from .appointment import Appointment, AppointmentStatus
from .patient import Patient
from .report import Report, DeletedReport

__all__ = ["Appointment", "AppointmentStatus", "Patient", "Report", "DeletedReport"]
