from sqlalchemy import Column, Integer, String, DateTime, Float, Text, JSON
from sqlalchemy.sql import func

from ..core.database import Base

ARCHIVED_DEPARTMENT = "ARCHIVED"
DELETED_FOLDER = "DELETED"
# Namespaces the service owns; never valid as an uploaded department
RESERVED_DEPARTMENTS = (ARCHIVED_DEPARTMENT, DELETED_FOLDER)

class Report(Base):
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, index=True, nullable=False)

    patient_id = Column(String(64), nullable=False, index=True)
    department = Column(String(100), nullable=False, index=True)
    sub_department = Column(String(100), nullable=True)
    # Department the object is still filed under after archiving
    archived_from = Column(String(100), nullable=True)

    notes = Column(Text, nullable=True)
    mime_type = Column(String(100), nullable=True)
    url = Column(Text, nullable=False)
    size = Column(Float, nullable=False)  # kilobytes
    upload_date = Column(String(10), nullable=False, index=True)  # YYYY-MM-DD
    expiry_time = Column(String(32), nullable=False)  # ISO-8601
    instructions = Column(JSON, nullable=False, default=list)

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}

    @property
    def storage_department(self) -> str:
        return self.archived_from or self.department

    def __repr__(self):
        return f"<Report(id={self.id}, name='{self.name}', patient_id='{self.patient_id}')>"

class DeletedReport(Base):
    __tablename__ = "deleted_reports"

    id = Column(Integer, primary_key=True, index=True)
    report_id = Column(Integer, nullable=True, index=True)
    name = Column(String(255), index=True, nullable=False)

    patient_id = Column(String(64), nullable=False, index=True)
    department = Column(String(100), nullable=False)
    sub_department = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    mime_type = Column(String(100), nullable=True)
    url = Column(Text, nullable=False)
    size = Column(Float, nullable=False)
    upload_date = Column(String(10), nullable=False)
    expiry_time = Column(String(32), nullable=False)
    instructions = Column(JSON, nullable=False, default=list)
    # Object key under the DELETED folder
    object_path = Column(Text, nullable=False)

    # Deletion context
    technician_id = Column(String(64), nullable=False)
    timestamp = Column(String(64), nullable=False)
    reason = Column(Text, nullable=False)
    deleted_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<DeletedReport(id={self.id}, name='{self.name}', technician_id='{self.technician_id}')>"
