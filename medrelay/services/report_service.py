from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime
from typing import List, Optional
import logging

from ..core.config import settings
from ..core.exceptions import BackendError, NotFoundError, ValidationError
from ..core.security import signed_url_lifetime
from ..core.storage import ReportStorage, StorageError
from ..models.report import (
    Report, DeletedReport, ARCHIVED_DEPARTMENT, DELETED_FOLDER,
    RESERVED_DEPARTMENTS
)

logger = logging.getLogger(__name__)

def _check_segment(value: str, field: str) -> str:
    if "/" in value or "\\" in value or value in (".", ".."):
        raise ValidationError(f"Invalid {field}")
    return value

def build_storage_path(
    patient_id: str,
    department: str,
    name: str,
    sub_department: Optional[str] = None
) -> str:
    """Object key of a report: patientId/department/[subDepartment/]name."""
    segments = [
        _check_segment(patient_id, "patientId"),
        _check_segment(department, "department"),
    ]
    if sub_department:
        segments.append(_check_segment(sub_department, "subDepartment"))
    segments.append(_check_segment(name, "fileName"))
    return "/".join(segments)

def build_deleted_path(patient_id: str, name: str, deleted_at: datetime) -> str:
    """Archive key under DELETED; the deletion time keeps repeated deletes of a name apart."""
    stamp = deleted_at.strftime("%Y%m%d%H%M%S%f")
    return "/".join([patient_id, DELETED_FOLDER, f"{stamp}_{name}"])

def report_storage_path(report: Report) -> str:
    return build_storage_path(
        report.patient_id,
        report.storage_department,
        report.name,
        report.sub_department
    )

def size_in_kb(content: bytes) -> float:
    return round(len(content) / 1024, 2)


class ReportService:
    def __init__(self, db: Session, storage: ReportStorage):
        self.db = db
        self.storage = storage

    def upload_report(
        self,
        patient_id: Optional[str],
        department: Optional[str],
        file_name: Optional[str],
        content: Optional[bytes],
        mime_type: Optional[str] = None,
        sub_department: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Report:
        """Store a report file and its metadata row."""
        if not content:
            raise ValidationError("No file uploaded")
        if not patient_id or not department:
            raise ValidationError("patientId and department are required")
        if department.upper() in RESERVED_DEPARTMENTS:
            raise ValidationError(f"department cannot be {department}")
        if not file_name:
            raise ValidationError("fileName is required")

        file_path = build_storage_path(patient_id, department, file_name, sub_department)

        if self._find_by_name(file_name, "Failed to upload file"):
            raise ValidationError("A report with this name already exists")

        now = now or datetime.utcnow()
        lifetime = signed_url_lifetime()

        # Object first: a failed write must not leave metadata behind
        try:
            self.storage.upload(file_path, content)
            signed_url = self.storage.create_signed_url(file_path, lifetime, now=now)
        except StorageError as e:
            logger.error(f"Error uploading file {file_path}: {e}")
            raise BackendError("Failed to upload file")

        report = Report(
            name=file_name,
            patient_id=patient_id,
            department=department,
            sub_department=sub_department or None,
            notes=notes or None,
            mime_type=mime_type,
            url=signed_url,
            size=size_in_kb(content),
            upload_date=now.date().isoformat(),
            expiry_time=(now + lifetime).isoformat(),
            instructions=[]
        )

        try:
            self.db.add(report)
            self.db.commit()
            self.db.refresh(report)
        except SQLAlchemyError as e:
            self.db.rollback()
            # The object stays in storage without a metadata row
            logger.error(f"Error saving metadata for {file_path}, object left orphaned: {e}")
            raise BackendError("Failed to save report metadata")

        logger.info(f"Report {report.name} uploaded for patient {patient_id}")
        return report

    def get_patient_reports(self, patient_id: Optional[str]) -> List[Report]:
        """All live reports of a patient; an empty list when there are none."""
        if not patient_id:
            raise ValidationError("patientId is required")
        try:
            return self.db.query(Report).filter(
                Report.patient_id == patient_id
            ).order_by(Report.upload_date, Report.id).all()
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving reports for {patient_id}: {e}")
            raise BackendError("Failed to retrieve reports")

    def fetch_reports(
        self,
        department: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None
    ) -> List[Report]:
        """Reports filtered by department and an inclusive uploadDate range.

        Dates are YYYY-MM-DD strings, so lexical comparison orders them.
        """
        query = self.db.query(Report)
        if department:
            query = query.filter(Report.department == department)
        if start_date:
            query = query.filter(Report.upload_date >= start_date)
        if end_date:
            query = query.filter(Report.upload_date <= end_date)

        try:
            return query.order_by(Report.upload_date, Report.id).all()
        except SQLAlchemyError as e:
            logger.error(f"Error fetching reports: {e}")
            raise BackendError("Failed to fetch reports")

    def regenerate_signed_url(
        self,
        file_path: Optional[str],
        now: Optional[datetime] = None
    ) -> str:
        """Issue a fresh signed URL for the report stored at ``file_path``."""
        if not file_path:
            raise ValidationError("filePath is required")

        name = file_path.rsplit("/", 1)[-1]
        report = self._find_by_name(name, "Failed to regenerate signed URL")
        # The whole path must match, not just the trailing file name
        if report is None or report_storage_path(report) != file_path:
            raise NotFoundError("Report not found")

        now = now or datetime.utcnow()
        lifetime = signed_url_lifetime()
        try:
            signed_url = self.storage.create_signed_url(file_path, lifetime, now=now)
        except StorageError as e:
            logger.error(f"Error regenerating signed URL for {file_path}: {e}")
            raise BackendError("Failed to regenerate signed URL")

        try:
            report.url = signed_url
            report.expiry_time = (now + lifetime).isoformat()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating expiry for {file_path}: {e}")
            raise BackendError("Failed to regenerate signed URL")

        return signed_url

    def archive_report(self, name: Optional[str]) -> Report:
        """Tombstone a report in place; the stored object does not move."""
        if not name:
            raise ValidationError("name is required")

        report = self._find_by_name(name, "Failed to archive report")
        if report is None:
            raise NotFoundError("Report not found")
        if report.department == ARCHIVED_DEPARTMENT:
            return report

        try:
            report.archived_from = report.department
            report.department = ARCHIVED_DEPARTMENT
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error archiving report {name}: {e}")
            raise BackendError("Failed to archive report")

        logger.info(f"Report {name} archived")
        return report

    def delete_report(
        self,
        name: Optional[str],
        technician_id: Optional[str],
        timestamp: Optional[str],
        reason: Optional[str],
        now: Optional[datetime] = None
    ) -> DeletedReport:
        """Soft delete: move the object under DELETED and archive the row.

        A failure after the move leaves the object relocated; there is no
        rollback of the storage step.
        """
        if not name or not technician_id or not timestamp or not reason:
            raise ValidationError("name, technicianId, timestamp and reason are required")

        report = self._find_by_name(name, "Failed to delete report")
        if report is None:
            raise NotFoundError("Report not found")

        source = report_storage_path(report)
        now = now or datetime.utcnow()
        destination = build_deleted_path(report.patient_id, report.name, now)
        lifetime = signed_url_lifetime()

        try:
            self.storage.move(source, destination)
        except StorageError as e:
            logger.error(f"Error moving {source} to {destination}: {e}")
            raise BackendError("Failed to delete report")

        try:
            signed_url = self.storage.create_signed_url(destination, lifetime, now=now)
        except StorageError as e:
            logger.error(f"Object moved to {destination} but signing failed, metadata unchanged: {e}")
            raise BackendError("Failed to delete report")

        archived = DeletedReport(
            report_id=report.id,
            name=report.name,
            patient_id=report.patient_id,
            department=report.department,
            sub_department=report.sub_department,
            notes=report.notes,
            mime_type=report.mime_type,
            url=signed_url,
            size=report.size,
            upload_date=report.upload_date,
            expiry_time=(now + lifetime).isoformat(),
            instructions=list(report.instructions or []),
            object_path=destination,
            technician_id=technician_id,
            timestamp=timestamp,
            reason=reason
        )

        try:
            self.db.delete(report)
            self.db.add(archived)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Object moved to {destination} but metadata migration failed: {e}")
            raise BackendError("Failed to delete report")

        logger.info(f"Report {name} deleted by technician {technician_id}")
        return archived

    def add_instruction(
        self,
        report_id: Optional[int],
        instruction: Optional[str]
    ) -> List[str]:
        """Append an instruction under optimistic concurrency control.

        A concurrent writer bumps the row version; the stale write is rolled
        back and the append is redone against the fresh list.
        """
        if report_id is None or not instruction:
            raise ValidationError("reportId and instruction are required")

        attempts = max(1, settings.INSTRUCTION_APPEND_ATTEMPTS)
        for attempt in range(1, attempts + 1):
            try:
                report = self.db.get(Report, report_id)
                if report is None:
                    raise NotFoundError("Report not found")
                # Assign a new list so the JSON column is flagged dirty
                report.instructions = [*(report.instructions or []), instruction]
                self.db.commit()
                return list(report.instructions)
            except StaleDataError:
                self.db.rollback()
                logger.warning(
                    f"Concurrent update on report {report_id}, "
                    f"retrying append ({attempt}/{attempts})"
                )
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Error adding instruction to report {report_id}: {e}")
                raise BackendError("Failed to add instruction")

        logger.error(f"Gave up appending to report {report_id} after {attempts} attempts")
        raise BackendError("Failed to add instruction")

    def _find_by_name(self, name: str, failure_message: str) -> Optional[Report]:
        try:
            return self.db.query(Report).filter(Report.name == name).first()
        except SQLAlchemyError as e:
            logger.error(f"Error looking up report {name}: {e}")
            raise BackendError(failure_message)
