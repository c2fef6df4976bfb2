import pytest
from datetime import datetime

from medrelay.core.exceptions import BackendError, NotFoundError, ValidationError
from medrelay.core.security import verify_signed_token
from medrelay.core.storage import StorageError
from medrelay.models.report import Report, DeletedReport
from medrelay.services.report_service import (
    ReportService, build_storage_path, build_deleted_path, size_in_kb
)

PDF_BYTES = b"%PDF-1.4 test report " * 100

def upload(client, **overrides):
    data = {
        "patientId": "P1",
        "fileName": "scan.pdf",
        "department": "Radiology",
    }
    data.update(overrides)
    data = {k: v for k, v in data.items() if v is not None}
    return client.post(
        "/upload-report",
        data=data,
        files={"file": (data.get("fileName", "scan.pdf"), PDF_BYTES, "application/pdf")}
    )

def seed_report(service, name, upload_date, department="Radiology", patient_id="P1"):
    return service.upload_report(
        patient_id=patient_id,
        department=department,
        file_name=name,
        content=b"report body",
        mime_type="application/pdf",
        now=datetime.strptime(upload_date, "%Y-%m-%d")
    )


class TestStoragePath:

    def test_path_without_sub_department(self):
        """Path is patientId/department/name."""
        assert build_storage_path("P1", "Radiology", "scan.pdf") == "P1/Radiology/scan.pdf"

    def test_path_with_sub_department(self):
        """Sub-department sits between department and name."""
        path = build_storage_path("P1", "Radiology", "scan.pdf", "MRI")
        assert path == "P1/Radiology/MRI/scan.pdf"

    def test_empty_sub_department_is_skipped(self):
        assert build_storage_path("P1", "Radiology", "scan.pdf", "") == "P1/Radiology/scan.pdf"

    def test_segments_cannot_contain_separators(self):
        """A slash or dot-dot in a segment is rejected."""
        with pytest.raises(ValidationError):
            build_storage_path("P1/..", "Radiology", "scan.pdf")
        with pytest.raises(ValidationError):
            build_storage_path("P1", "..", "scan.pdf")

    def test_deleted_path(self):
        """Archive keys carry the deletion time ahead of the name."""
        deleted_at = datetime(2024, 3, 1, 10, 0, 0, 123456)
        path = build_deleted_path("P1", "scan.pdf", deleted_at)
        assert path == "P1/DELETED/20240301100000123456_scan.pdf"

    def test_size_in_kb(self):
        assert size_in_kb(b"x" * 1536) == 1.5
        assert size_in_kb(b"x" * 1000) == 0.98


class TestUploadReport:

    def test_upload_stores_object_and_metadata(self, client, storage, db_session):
        """Upload writes P1/Radiology/scan.pdf and a matching row."""
        response = upload(client, notes="left knee")
        assert response.status_code == 200

        body = response.json()
        assert body["message"] == "File uploaded successfully"
        metadata = body["metadata"]
        assert metadata["name"] == "scan.pdf"
        assert metadata["patientId"] == "P1"
        assert metadata["department"] == "Radiology"
        assert metadata["subDepartment"] is None
        assert metadata["notes"] == "left knee"
        assert metadata["instructions"] == []
        assert metadata["size"] == size_in_kb(PDF_BYTES)
        assert metadata["uploadDate"] == datetime.utcnow().date().isoformat()

        assert storage.exists("P1/Radiology/scan.pdf")
        rows = db_session.query(Report).filter(Report.name == "scan.pdf").all()
        assert len(rows) == 1
        assert rows[0].mime_type == "application/pdf"

    def test_upload_with_sub_department(self, client, storage):
        response = upload(client, subDepartment="MRI")
        assert response.status_code == 200
        assert response.json()["metadata"]["subDepartment"] == "MRI"
        assert storage.exists("P1/Radiology/MRI/scan.pdf")

    def test_signed_url_is_valid_for_180_days(self, client):
        """The issued URL carries a token for the object path."""
        response = upload(client)
        metadata = response.json()["metadata"]

        token = metadata["url"].rsplit("/files/", 1)[1]
        payload = verify_signed_token(token)
        assert payload is not None
        assert payload.sub == "P1/Radiology/scan.pdf"

        expiry = datetime.fromisoformat(metadata["expiryTime"])
        days = (expiry - datetime.utcnow()).days
        assert days in (179, 180)

    def test_signed_url_serves_file(self, client):
        response = upload(client)
        url = response.json()["metadata"]["url"]

        download = client.get(url.replace("http://localhost:8000", ""))
        assert download.status_code == 200
        assert download.content == PDF_BYTES

    def test_upload_missing_patient_id(self, client, storage, db_session):
        """Missing patientId fails without any writes."""
        response = upload(client, patientId=None)
        assert response.status_code == 400
        assert "error" in response.json()
        assert not storage.exists("P1/Radiology/scan.pdf")
        assert db_session.query(Report).count() == 0

    def test_upload_missing_department(self, client, storage, db_session):
        response = upload(client, department=None)
        assert response.status_code == 400
        assert db_session.query(Report).count() == 0

    def test_upload_without_file(self, client, db_session):
        response = client.post(
            "/upload-report",
            data={"patientId": "P1", "department": "Radiology", "fileName": "scan.pdf"}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "No file uploaded"

    @pytest.mark.parametrize("department", ["DELETED", "ARCHIVED", "deleted"])
    def test_upload_reserved_department(self, client, storage, db_session, department):
        """DELETED and ARCHIVED belong to the service, not to uploads."""
        response = upload(client, department=department)
        assert response.status_code == 400
        assert not storage.exists(f"P1/{department}/scan.pdf")
        assert db_session.query(Report).count() == 0

    def test_upload_duplicate_name(self, client, db_session):
        """Names are unique across the reports table."""
        assert upload(client).status_code == 200
        response = upload(client, patientId="P2")
        assert response.status_code == 400
        assert db_session.query(Report).count() == 1

    def test_storage_failure_skips_metadata(self, db_session, storage, monkeypatch):
        """A failed object write never leaves a metadata row."""
        def failing_upload(path, content):
            raise StorageError("bucket unavailable")

        monkeypatch.setattr(storage, "upload", failing_upload)
        service = ReportService(db_session, storage)

        with pytest.raises(BackendError) as exc_info:
            service.upload_report("P1", "Radiology", "scan.pdf", b"data")
        assert exc_info.value.detail == "Failed to upload file"
        assert db_session.query(Report).count() == 0


class TestListReports:

    def test_get_reports_for_patient(self, client):
        upload(client, fileName="a.pdf")
        upload(client, fileName="b.pdf")
        upload(client, fileName="c.pdf", patientId="P2")

        response = client.post("/get-reports", json={"patientId": "P1"})
        assert response.status_code == 200
        assert sorted(r["name"] for r in response.json()) == ["a.pdf", "b.pdf"]

    def test_get_reports_empty(self, client, test_db):
        """No reports is an empty list, not an error."""
        response = client.post("/get-reports", json={"patientId": "nobody"})
        assert response.status_code == 200
        assert response.json() == []

    def test_fetch_reports_by_date_range(self, client, db_session, storage):
        """Only reports uploaded inside the inclusive range are returned."""
        service = ReportService(db_session, storage)
        seed_report(service, "dec.pdf", "2023-12-31")
        seed_report(service, "start.pdf", "2024-01-01")
        seed_report(service, "mid.pdf", "2024-01-15")
        seed_report(service, "end.pdf", "2024-01-31")
        seed_report(service, "feb.pdf", "2024-02-01")

        response = client.post(
            "/fetch-reports",
            json={"startDate": "2024-01-01", "endDate": "2024-01-31"}
        )
        assert response.status_code == 200
        assert [r["name"] for r in response.json()] == ["start.pdf", "mid.pdf", "end.pdf"]

    def test_fetch_reports_by_department(self, client, db_session, storage):
        service = ReportService(db_session, storage)
        seed_report(service, "x-ray.pdf", "2024-01-10", department="Radiology")
        seed_report(service, "ecg.pdf", "2024-01-10", department="Cardiology")

        response = client.post("/fetch-reports", json={"department": "Cardiology"})
        assert [r["name"] for r in response.json()] == ["ecg.pdf"]

    def test_fetch_reports_no_match(self, client, test_db):
        response = client.post(
            "/fetch-reports",
            json={"department": "Radiology", "startDate": "2024-01-01", "endDate": "2024-01-31"}
        )
        assert response.status_code == 200
        assert response.json() == []


class TestRegenerateSignedUrl:

    def test_regenerate_updates_expiry(self, db_session, storage):
        service = ReportService(db_session, storage)
        report = seed_report(service, "scan.pdf", "2024-01-10")
        old_expiry = report.expiry_time

        url = service.regenerate_signed_url(
            "P1/Radiology/scan.pdf", now=datetime(2024, 6, 1, 12, 0)
        )

        db_session.refresh(report)
        assert report.url == url
        assert report.expiry_time != old_expiry
        assert report.expiry_time == "2024-11-28T12:00:00"

    def test_regenerate_endpoint(self, client):
        upload(client)
        response = client.post(
            "/regenerate-signed-url", json={"filePath": "P1/Radiology/scan.pdf"}
        )
        assert response.status_code == 200
        assert "/files/" in response.json()["signedUrl"]

    def test_regenerate_requires_full_path_match(self, client):
        """Same file name under another patient does not match."""
        upload(client)
        response = client.post(
            "/regenerate-signed-url", json={"filePath": "P2/Radiology/scan.pdf"}
        )
        assert response.status_code == 404

    def test_regenerate_missing_path(self, client, test_db):
        response = client.post("/regenerate-signed-url", json={})
        assert response.status_code == 400


class TestArchiveReport:

    def test_archive_sets_department(self, client, db_session, storage):
        """Archiving is metadata-only; the object stays put."""
        upload(client)
        response = client.post("/archive-report", json={"name": "scan.pdf"})
        assert response.status_code == 200
        assert response.json()["message"] == "Report archived successfully"

        report = db_session.query(Report).filter(Report.name == "scan.pdf").one()
        assert report.department == "ARCHIVED"
        assert report.archived_from == "Radiology"
        assert storage.exists("P1/Radiology/scan.pdf")

    def test_archived_report_can_still_be_relinked(self, client):
        upload(client)
        client.post("/archive-report", json={"name": "scan.pdf"})
        response = client.post(
            "/regenerate-signed-url", json={"filePath": "P1/Radiology/scan.pdf"}
        )
        assert response.status_code == 200

    def test_archive_unknown_report(self, client, test_db):
        response = client.post("/archive-report", json={"name": "missing.pdf"})
        assert response.status_code == 404


class TestDeleteReport:

    delete_payload = {
        "name": "scan.pdf",
        "technicianId": "T42",
        "timestamp": "2024-03-01T10:00:00Z",
        "reason": "Uploaded to the wrong patient",
    }

    def test_soft_delete(self, client, db_session, storage):
        """Object moves under DELETED and the row moves to the archive table."""
        upload(client, subDepartment="MRI")
        response = client.post("/delete-report", json=self.delete_payload)
        assert response.status_code == 200
        assert response.json()["message"] == "Report deleted successfully"

        assert db_session.query(Report).filter(Report.name == "scan.pdf").count() == 0
        archived = db_session.query(DeletedReport).filter(DeletedReport.name == "scan.pdf").all()
        assert len(archived) == 1
        assert archived[0].patient_id == "P1"
        assert archived[0].department == "Radiology"
        assert archived[0].sub_department == "MRI"
        assert archived[0].technician_id == "T42"
        assert archived[0].reason == "Uploaded to the wrong patient"

        object_path = archived[0].object_path
        assert object_path.startswith("P1/DELETED/")
        assert object_path.endswith("_scan.pdf")
        assert not storage.exists("P1/Radiology/MRI/scan.pdf")
        assert storage.exists(object_path)

        payload = verify_signed_token(archived[0].url.rsplit("/files/", 1)[1])
        assert payload.sub == object_path

    def test_soft_delete_archived_report(self, client, db_session, storage):
        upload(client)
        client.post("/archive-report", json={"name": "scan.pdf"})
        response = client.post("/delete-report", json=self.delete_payload)
        assert response.status_code == 200
        assert not storage.exists("P1/Radiology/scan.pdf")
        archived = db_session.query(DeletedReport).one()
        assert storage.exists(archived.object_path)

    def test_delete_same_name_twice(self, client, db_session, storage):
        """A name can be uploaded and deleted again after an earlier delete."""
        assert upload(client).status_code == 200
        assert client.post("/delete-report", json=self.delete_payload).status_code == 200

        assert upload(client).status_code == 200
        response = client.post("/delete-report", json=self.delete_payload)
        assert response.status_code == 200

        assert db_session.query(Report).count() == 0
        archived = db_session.query(DeletedReport).order_by(DeletedReport.id).all()
        assert len(archived) == 2
        assert archived[0].object_path != archived[1].object_path
        assert all(storage.exists(row.object_path) for row in archived)

    def test_delete_requires_all_fields(self, client, db_session):
        upload(client)
        payload = dict(self.delete_payload)
        del payload["reason"]
        response = client.post("/delete-report", json=payload)
        assert response.status_code == 400
        assert db_session.query(Report).count() == 1

    def test_delete_unknown_report(self, client, test_db):
        response = client.post("/delete-report", json=self.delete_payload)
        assert response.status_code == 404

    def test_move_failure_leaves_metadata(self, db_session, storage, monkeypatch):
        """If the object cannot be moved, no metadata changes."""
        service = ReportService(db_session, storage)
        seed_report(service, "scan.pdf", "2024-01-10")

        def failing_move(source, destination):
            raise StorageError("move failed")

        monkeypatch.setattr(storage, "move", failing_move)
        with pytest.raises(BackendError):
            service.delete_report("scan.pdf", "T42", "2024-03-01", "duplicate")

        assert db_session.query(Report).count() == 1
        assert db_session.query(DeletedReport).count() == 0


class TestAddInstruction:

    def test_append_preserves_order(self, client, db_session, storage):
        """["A"] plus "B" gives ["A", "B"]."""
        service = ReportService(db_session, storage)
        report = seed_report(service, "scan.pdf", "2024-01-10")

        first = client.post("/add-instruction", json={"reportId": report.id, "instruction": "A"})
        assert first.json() == ["A"]

        second = client.post("/add-instruction", json={"reportId": report.id, "instruction": "B"})
        assert second.status_code == 200
        assert second.json() == ["A", "B"]

    def test_concurrent_append_is_not_lost(self, db_session, storage, session_factory):
        """A writer holding a stale version re-reads instead of overwriting."""
        report = seed_report(ReportService(db_session, storage), "scan.pdf", "2024-01-10")

        stale_session = session_factory()
        try:
            stale_service = ReportService(stale_session, storage)
            # Load the row into the stale session before the other writer commits
            stale_session.get(Report, report.id).instructions

            ReportService(db_session, storage).add_instruction(report.id, "A")
            result = stale_service.add_instruction(report.id, "B")
        finally:
            stale_session.close()

        assert result == ["A", "B"]

    def test_append_to_unknown_report(self, db_session, storage):
        with pytest.raises(NotFoundError):
            ReportService(db_session, storage).add_instruction(999, "A")

    def test_append_requires_instruction(self, client, test_db):
        response = client.post("/add-instruction", json={"reportId": 1})
        assert response.status_code == 400
