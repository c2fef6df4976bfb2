from pydantic import AliasChoices, AliasGenerator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional


def camel_or_snake(name: str) -> AliasChoices:
    return AliasChoices(to_camel(name), name)


camel_aliases = AliasGenerator(
    validation_alias=camel_or_snake,
    serialization_alias=to_camel,
)


class CamelModel(BaseModel):
    """Accepts camelCase or snake_case input, serializes to camelCase."""
    model_config = ConfigDict(
        alias_generator=camel_aliases,
        populate_by_name=True,
        from_attributes=True,
    )


class ReportResponse(CamelModel):
    id: int
    name: str
    patient_id: str
    department: str
    sub_department: Optional[str] = None
    notes: Optional[str] = None
    mime_type: Optional[str] = None
    url: str
    size: float
    upload_date: str
    expiry_time: str
    instructions: List[str] = Field(default_factory=list)


class UploadResponse(BaseModel):
    message: str
    metadata: ReportResponse


class FetchReportsRequest(CamelModel):
    department: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class PatientReportsRequest(CamelModel):
    patient_id: Optional[str] = None


class RegenerateUrlRequest(CamelModel):
    file_path: Optional[str] = None


class SignedUrlResponse(CamelModel):
    signed_url: str


class ArchiveReportRequest(CamelModel):
    name: Optional[str] = None


class DeleteReportRequest(CamelModel):
    name: Optional[str] = None
    technician_id: Optional[str] = None
    timestamp: Optional[str] = None
    reason: Optional[str] = None


class AddInstructionRequest(CamelModel):
    report_id: Optional[int] = None
    instruction: Optional[str] = None


class MessageResponse(BaseModel):
    message: str
