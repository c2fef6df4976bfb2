from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from typing import List, Optional


def _field(stored_as: str, exposed_as: str, **kwargs):
    return Field(
        validation_alias=AliasChoices(exposed_as, stored_as),
        serialization_alias=exposed_as,
        **kwargs
    )


class AppointmentResponse(BaseModel):
    """Appointment as exposed to clients, with the collection's field names."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: str
    date: str = _field("date", "Date")
    time: str = _field("time", "Time")
    status: str = _field("status", "Status")
    patient_id: Optional[str] = _field("patient_id", "patientId", default=None)
    department: Optional[str] = None
    doctor: Optional[str] = None
    notes: Optional[str] = None


class StatusUpdateResponse(BaseModel):
    message: str
    updated: int
    failed: List[str] = []
