from sqlalchemy import or_
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from typing import List, Optional
import logging

from ..core.exceptions import BackendError, ValidationError
from ..models.patient import Patient

logger = logging.getLogger(__name__)

class PatientService:
    def __init__(self, db: Session):
        self.db = db

    def get_patient(self, patient_id: Optional[str]) -> Optional[Patient]:
        if not patient_id:
            raise ValidationError("patientId is required")
        try:
            return self.db.query(Patient).filter(
                Patient.patient_id == patient_id
            ).first()
        except SQLAlchemyError as e:
            logger.error(f"Error fetching patient {patient_id}: {e}")
            raise BackendError("Failed to fetch patient")

    def get_family(self, patient_id: Optional[str]) -> List[Patient]:
        """Everyone in the patient's family except the patient."""
        patient = self.get_patient(patient_id)
        if patient is None:
            return []

        head_id = patient.family_key
        try:
            return self.db.query(Patient).filter(
                or_(Patient.family_head_id == head_id, Patient.patient_id == head_id),
                Patient.patient_id != patient.patient_id
            ).order_by(Patient.id).all()
        except SQLAlchemyError as e:
            logger.error(f"Error fetching family of {patient_id}: {e}")
            raise BackendError("Failed to fetch family")
