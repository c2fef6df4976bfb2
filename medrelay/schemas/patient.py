from pydantic import BaseModel
from typing import List, Optional

from .report import CamelModel


class PatientResponse(CamelModel):
    patient_id: str
    name: str
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    family_head_id: Optional[str] = None
    relation: Optional[str] = None


class PatientLookupResponse(BaseModel):
    exists: bool
    data: Optional[PatientResponse] = None


class FamilyResponse(BaseModel):
    family: List[PatientResponse] = []


class RecaptchaRequest(BaseModel):
    token: Optional[str] = None


class RecaptchaResponse(BaseModel):
    success: bool
