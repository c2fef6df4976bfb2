from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from typing import Optional

from ..deps import get_patient_service, rate_limit_check
from ...schemas.patient import (
    PatientLookupResponse, PatientResponse, FamilyResponse,
    RecaptchaRequest, RecaptchaResponse
)
from ...services.patient_service import PatientService
from ...services.recaptcha_service import verify_recaptcha

router = APIRouter(tags=["Patients"])

@router.get("/get-patient", response_model=PatientLookupResponse)
async def get_patient(
    patient_id: Optional[str] = Query(None, alias="patientId"),
    patient_service: PatientService = Depends(get_patient_service)
):
    patient = patient_service.get_patient(patient_id)
    if patient is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"exists": False}
        )
    return PatientLookupResponse(
        exists=True,
        data=PatientResponse.model_validate(patient)
    )

@router.get("/get-family", response_model=FamilyResponse)
async def get_family(
    patient_id: Optional[str] = Query(None, alias="patientId"),
    patient_service: PatientService = Depends(get_patient_service)
):
    members = patient_service.get_family(patient_id)
    return FamilyResponse(family=[PatientResponse.model_validate(m) for m in members])

@router.post("/api/verify-recaptcha", response_model=RecaptchaResponse)
async def verify_recaptcha_token(
    request_data: RecaptchaRequest,
    _: None = Depends(rate_limit_check)
):
    success = await verify_recaptcha(request_data.token)
    return RecaptchaResponse(success=success)
