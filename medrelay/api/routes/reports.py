from fastapi import APIRouter, Depends, File, Form, UploadFile
from typing import List, Optional

from ..deps import get_report_service
from ...services.report_service import ReportService
from ...schemas.report import (
    ReportResponse, UploadResponse, FetchReportsRequest, PatientReportsRequest,
    RegenerateUrlRequest, SignedUrlResponse, ArchiveReportRequest,
    DeleteReportRequest, AddInstructionRequest, MessageResponse
)

router = APIRouter(tags=["Reports"])

@router.post("/upload-report", response_model=UploadResponse)
async def upload_report(
    file: Optional[UploadFile] = File(None),
    patient_id: Optional[str] = Form(None, alias="patientId"),
    file_name: Optional[str] = Form(None, alias="fileName"),
    department: Optional[str] = Form(None),
    sub_department: Optional[str] = Form(None, alias="subDepartment"),
    notes: Optional[str] = Form(None),
    report_service: ReportService = Depends(get_report_service)
):
    """Upload a report file and record its metadata."""
    content = await file.read() if file is not None else None
    report = report_service.upload_report(
        patient_id=patient_id,
        department=department,
        file_name=file_name or (file.filename if file is not None else None),
        content=content,
        mime_type=file.content_type if file is not None else None,
        sub_department=sub_department,
        notes=notes
    )
    return UploadResponse(
        message="File uploaded successfully",
        metadata=ReportResponse.model_validate(report)
    )

@router.post("/fetch-reports", response_model=List[ReportResponse])
async def fetch_reports(
    filters: FetchReportsRequest,
    report_service: ReportService = Depends(get_report_service)
):
    """Reports by department and upload date range."""
    return report_service.fetch_reports(
        department=filters.department,
        start_date=filters.start_date,
        end_date=filters.end_date
    )

@router.post("/get-reports", response_model=List[ReportResponse])
async def get_reports(
    request_data: PatientReportsRequest,
    report_service: ReportService = Depends(get_report_service)
):
    """All reports of one patient."""
    return report_service.get_patient_reports(request_data.patient_id)

@router.post("/regenerate-signed-url", response_model=SignedUrlResponse)
async def regenerate_signed_url(
    request_data: RegenerateUrlRequest,
    report_service: ReportService = Depends(get_report_service)
):
    signed_url = report_service.regenerate_signed_url(request_data.file_path)
    return SignedUrlResponse(signed_url=signed_url)

@router.post("/archive-report", response_model=MessageResponse)
async def archive_report(
    request_data: ArchiveReportRequest,
    report_service: ReportService = Depends(get_report_service)
):
    report_service.archive_report(request_data.name)
    return {"message": "Report archived successfully"}

@router.post("/delete-report", response_model=MessageResponse)
async def delete_report(
    request_data: DeleteReportRequest,
    report_service: ReportService = Depends(get_report_service)
):
    """Soft delete a report into the DELETED folder and the archive table."""
    report_service.delete_report(
        name=request_data.name,
        technician_id=request_data.technician_id,
        timestamp=request_data.timestamp,
        reason=request_data.reason
    )
    return {"message": "Report deleted successfully"}

@router.post("/add-instruction", response_model=List[str])
async def add_instruction(
    request_data: AddInstructionRequest,
    report_service: ReportService = Depends(get_report_service)
):
    return report_service.add_instruction(
        request_data.report_id,
        request_data.instruction
    )
