from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func

from ..core.database import Base

class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(String(64), unique=True, index=True, nullable=False)

    # Personal information
    name = Column(String(200), nullable=False)
    date_of_birth = Column(String(10), nullable=True)
    gender = Column(String(20), nullable=True)

    # Contact information
    phone = Column(String(20), nullable=True)
    email = Column(String(255), nullable=True)

    # Family: dependants point at the patient_id of the family head
    family_head_id = Column(String(64), nullable=True, index=True)
    relation = Column(String(50), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    @property
    def family_key(self) -> str:
        return self.family_head_id or self.patient_id

    def __repr__(self):
        return f"<Patient(patient_id='{self.patient_id}', name='{self.name}')>"
