"""
Tests — HTTP API (intake, photos, submissions, catalogs, sync operations).

Outbound calls are mocked on the gateway singletons; SYNC_FANOUT_MODE is
"inline" under TestingConfig so the fan-out has finished when the intake
response comes back.
"""

import io
import os
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest

import fieldsync.blueprints.submission_bp as submission_module
import fieldsync.integrations.coverage_gateway as coverage_module
import fieldsync.integrations.sheets_gateway as sheets_module
from conftest import FULL_LOCALITY, err_result, ok_result
from fieldsync.core.exceptions import StoreError
from fieldsync.models import db
from fieldsync.models.catalog import Village
from fieldsync.models.submission import Submission
from fieldsync.services import ingestion_service, photo_storage
from fieldsync.services.catalog_service import seed_defaults


def _form(**overrides):
    data = {
        "salesmanName": "Firtana",
        "customerName": "Siti Rahma",
        "customerAddress": "Jl. Merdeka 10",
        "customerHomeNo": "10A",
        "village": FULL_LOCALITY,
        "coordinates": "1.0,2.0",
        "buildingType": "Residential",
        "operators": ["FS", "other"],
        "remarks": "gate is blue",
    }
    data.update(overrides)
    return data


def _photo(name="front.jpg", content=b"\xff\xd8\xff fake jpeg"):
    return (io.BytesIO(content), name)


@pytest.fixture()
def gateways_ok():
    appended = ok_result(data={"updates": {"updatedRange": "Sheet1!A2:L2"}})
    registered = ok_result(data={"data": [{"id": "bot-55"}]}, status_code=201)
    with patch.object(sheets_module.sheets_gateway, "append_row", return_value=appended) as mock_append, \
         patch.object(coverage_module.coverage_gateway, "register", return_value=registered) as mock_reg:
        yield mock_append, mock_reg


# ═══════════════════════════════════════════════════════════════════════════
#  HEALTH
# ═══════════════════════════════════════════════════════════════════════════

class TestHealth:
    def test_health_ok(self, client):
        res = client.get("/api/health")
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "ok"
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["scheduler"]["status"] == "stopped"

    def test_request_duration_header(self, client):
        res = client.get("/api/salesman")
        assert "X-Request-Duration-Ms" in res.headers


# ═══════════════════════════════════════════════════════════════════════════
#  INTAKE
# ═══════════════════════════════════════════════════════════════════════════

class TestSubmitForm:
    def test_missing_fields_rejected(self, client):
        res = client.post("/api/submit-form", data=_form(customerName="", operators=[]),
                          content_type="multipart/form-data")
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_REQUIRED"
        assert body["details"]["missing"] == ["customerName", "operators"]
        assert Submission.query.count() == 0

    def test_too_many_photos_rejected(self, client):
        data = _form(buildingPhotos=[_photo(f"p{i}.jpg") for i in range(6)])
        res = client.post("/api/submit-form", data=data, content_type="multipart/form-data")
        assert res.status_code == 400
        assert "Maximum 5" in res.get_json()["error"]
        assert Submission.query.count() == 0

    def test_disallowed_file_type_rejected(self, client):
        data = _form(buildingPhotos=[_photo("payload.exe", b"MZ")])
        res = client.post("/api/submit-form", data=data, content_type="multipart/form-data")
        assert res.status_code == 400
        assert res.get_json()["details"]["rejected"] == ["payload.exe"]

    def test_oversized_photo_rejected(self, app, client):
        app.config["MAX_PHOTO_BYTES"] = 8
        try:
            data = _form(buildingPhotos=[_photo("big.jpg", b"x" * 64)])
            res = client.post("/api/submit-form", data=data, content_type="multipart/form-data")
        finally:
            app.config["MAX_PHOTO_BYTES"] = 10 * 1024 * 1024
        assert res.status_code == 400

    def test_success_stores_and_fans_out(self, client, gateways_ok):
        mock_append, mock_reg = gateways_ok
        data = _form(buildingPhotos=[_photo("front.jpg"), _photo("side.png", b"png-bytes")])
        res = client.post("/api/submit-form", data=data, content_type="multipart/form-data")

        assert res.status_code == 200
        body = res.get_json()
        assert body["success"] is True
        assert body["timestamp"]

        stored = db.session.get(Submission, body["submissionId"])
        assert stored.operators == ["FS", "other"]
        assert stored.postal_code == "12345"
        assert len(stored.photo_filenames) == 2
        assert stored.photo_filenames[0].endswith("-0-front.jpg")
        assert stored.all_mirror_written_at is not None
        assert stored.fs_mirror_written_at is not None
        assert stored.coverage_bot_id == "bot-55"
        assert mock_append.call_count == 2
        mock_reg.assert_called_once()

    def test_success_without_photos(self, client, gateways_ok):
        res = client.post("/api/submit-form", data=_form(operators=["other"]),
                          content_type="multipart/form-data")
        assert res.status_code == 200
        stored = db.session.get(Submission, res.get_json()["submissionId"])
        assert stored.photo_filenames == []
        assert stored.fs_selected is False

    def test_downstream_failure_still_accepts(self, client):
        with patch.object(sheets_module.sheets_gateway, "append_row", return_value=err_result(503)), \
             patch.object(coverage_module.coverage_gateway, "register", return_value=err_result(500)):
            res = client.post("/api/submit-form", data=_form(), content_type="multipart/form-data")
        assert res.status_code == 200
        stored = db.session.get(Submission, res.get_json()["submissionId"])
        assert stored.all_mirror_written_at is None
        assert stored.coverage_bot_id is None

    def test_store_failure_discards_photos(self, app, client):
        root = os.path.join(app.config["UPLOADS_DIR"], "submissions")
        before = set(os.listdir(root)) if os.path.isdir(root) else set()

        with patch.object(submission_module, "ingest_submission",
                          side_effect=StoreError("insert failed")):
            res = client.post("/api/submit-form", data=_form(buildingPhotos=[_photo()]),
                              content_type="multipart/form-data")

        assert res.status_code == 500
        assert res.get_json()["code"] == "ERR_DATABASE"
        assert set(os.listdir(root)) == before


# ═══════════════════════════════════════════════════════════════════════════
#  PHOTOS
# ═══════════════════════════════════════════════════════════════════════════

class TestPhotos:
    def test_uploaded_photo_is_served(self, client, gateways_ok):
        data = _form(buildingPhotos=[_photo("front.jpg", b"jpeg-bytes")])
        submission_id = client.post("/api/submit-form", data=data,
                                    content_type="multipart/form-data").get_json()["submissionId"]
        filename = db.session.get(Submission, submission_id).photo_filenames[0]

        res = client.get(f"/api/submissions/{submission_id}/photos/{filename}")
        assert res.status_code == 200
        assert res.data == b"jpeg-bytes"
        res.close()

    def test_disallowed_extension_forbidden(self, client):
        res = client.get("/api/submissions/abc/photos/notes.txt")
        assert res.status_code == 403

    def test_missing_photo_not_found(self, client):
        res = client.get("/api/submissions/abc/photos/missing.jpg")
        assert res.status_code == 404

    def test_submission_dir_traversal_not_found(self, client):
        res = client.get("/api/submissions/..%2F..%2Fetc/photos/x.jpg")
        assert res.status_code == 404

    def test_photo_url_path_matches_route(self, app, make_submission):
        sub = make_submission(photos=["a.jpg"])
        os.makedirs(photo_storage.submission_dir(sub.id), exist_ok=True)
        with open(os.path.join(photo_storage.submission_dir(sub.id), "a.jpg"), "wb") as fh:
            fh.write(b"a")
        res = app.test_client().get(f"/api/submissions/{sub.id}/photos/a.jpg")
        assert res.status_code == 200
        res.close()


# ═══════════════════════════════════════════════════════════════════════════
#  STORED SUBMISSIONS
# ═══════════════════════════════════════════════════════════════════════════

class TestSubmissions:
    def test_list_requires_api_key(self, client):
        assert client.get("/api/submissions").status_code == 401

    def test_wrong_api_key(self, client):
        res = client.get("/api/submissions", headers={"X-API-Key": "nope"})
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHORIZED"

    def test_list_newest_first(self, client, api_headers, make_submission):
        old = make_submission(age=timedelta(days=1))
        new = make_submission(age=timedelta(minutes=1))
        res = client.get("/api/submissions?limit=10", headers=api_headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["total"] == 2
        assert [s["id"] for s in body["items"]] == [new.id, old.id]

    def test_get_submission(self, client, api_headers, make_submission):
        sub = make_submission(coverage_bot_id="bot-1")
        res = client.get(f"/api/submissions/{sub.id}", headers=api_headers)
        assert res.status_code == 200
        assert res.get_json()["coverage_bot_id"] == "bot-1"

    def test_get_unknown_submission(self, client, api_headers):
        res = client.get("/api/submissions/does-not-exist", headers=api_headers)
        assert res.status_code == 404


# ═══════════════════════════════════════════════════════════════════════════
#  CATALOGS
# ═══════════════════════════════════════════════════════════════════════════

class TestCatalog:
    def test_seed_and_list(self, client):
        assert seed_defaults() == {"salesmen": 5, "building_types": 6}
        assert seed_defaults() == {"salesmen": 0, "building_types": 0}

        salesmen = client.get("/api/salesman").get_json()
        assert salesmen == sorted(salesmen)
        assert "Firtana" in salesmen
        assert "Office" in client.get("/api/building-types").get_json()

    def test_salesman_search_case_insensitive(self, client):
        seed_defaults()
        res = client.get("/api/salesman/search?query=fIR")
        assert res.get_json() == ["Firtana"]

    def test_add_salesman(self, client, api_headers):
        res = client.post("/api/salesman", json={"name": "  Eka  "}, headers=api_headers)
        assert res.status_code == 201
        assert res.get_json() == {"success": True, "salesmanData": ["Eka"]}

        dup = client.post("/api/salesman", json={"name": "Eka"}, headers=api_headers)
        assert dup.status_code == 409

    def test_add_salesman_requires_name(self, client, api_headers):
        res = client.post("/api/salesman", json={"name": " "}, headers=api_headers)
        assert res.status_code == 400

    def test_add_salesman_requires_api_key(self, client):
        assert client.post("/api/salesman", json={"name": "Eka"}).status_code == 401

    def test_add_building_type(self, client, api_headers):
        res = client.post("/api/building-types", json={"type": "Ruko"}, headers=api_headers)
        assert res.status_code == 201
        assert res.get_json()["buildingTypes"] == ["Ruko"]

    def test_village_search_limits(self, client):
        db.session.add_all(Village(name=f"1{i:04d},Desa{i},Kec,Kota,Prov") for i in range(60))
        db.session.commit()

        assert len(client.get("/api/villages/search").get_json()) == 20
        assert len(client.get("/api/villages/search?query=desa").get_json()) == 50
        assert client.get("/api/villages/search?query=Desa7,").get_json() == ["10007,Desa7,Kec,Kota,Prov"]


# ═══════════════════════════════════════════════════════════════════════════
#  SYNC OPERATIONS
# ═══════════════════════════════════════════════════════════════════════════

class TestSyncOperations:
    def test_jobs_require_api_key(self, client):
        assert client.get("/api/sync/jobs").status_code == 401

    def test_list_jobs(self, client, api_headers):
        res = client.get("/api/sync/jobs", headers=api_headers)
        assert res.status_code == 200
        assert res.get_json()["total"] == 3

    def test_trigger_unknown_job(self, client, api_headers):
        res = client.post("/api/sync/jobs/nope/trigger", headers=api_headers)
        assert res.status_code == 404

    def test_trigger_job(self, client, api_headers):
        res = client.post("/api/sync/jobs/coverage_registration/trigger", headers=api_headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "success"
        assert body["result"] == {"selected": 0, "registered": 0, "failed": 0}

    def test_toggle_job(self, client, api_headers):
        res = client.patch("/api/sync/jobs/mirror_backfill/toggle", json={"enabled": False},
                           headers=api_headers)
        assert res.status_code == 200
        assert res.get_json()["is_enabled"] is False

        detail = client.get("/api/sync/jobs/mirror_backfill", headers=api_headers)
        assert detail.get_json()["status"] == "paused"

    def test_toggle_requires_flag(self, client, api_headers):
        res = client.patch("/api/sync/jobs/mirror_backfill/toggle", json={}, headers=api_headers)
        assert res.status_code == 400

    def test_toggle_unknown_job(self, client, api_headers):
        res = client.patch("/api/sync/jobs/nope/toggle", json={"enabled": True}, headers=api_headers)
        assert res.status_code == 404

    def test_submission_sync_state(self, client, api_headers, make_submission):
        sub = make_submission(operators=["other"])
        with patch.object(sheets_module.sheets_gateway, "append_row", return_value=err_result(503)):
            client.post(f"/api/sync/submissions/{sub.id}/fanout", headers=api_headers)

        res = client.get(f"/api/sync/submissions/{sub.id}", headers=api_headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["coverage"]["status"] is None
        assert [(log["target"], log["status"], log["triggered_by"]) for log in body["logs"]] == [
            ("mirror_all", "error", "manual"),
        ]

    def test_fanout_redrive_runs_pending_steps_only(self, client, api_headers, make_submission, gateways_ok):
        mock_append, mock_reg = gateways_ok
        sub = make_submission(coverage_bot_id="bot-1")

        res = client.post(f"/api/sync/submissions/{sub.id}/fanout", headers=api_headers)

        assert res.status_code == 200
        assert res.get_json()["steps"] == {
            "mirror_all": "ok", "mirror_fs": "ok", "coverage_register": "skipped",
        }
        assert mock_append.call_count == 2
        mock_reg.assert_not_called()

    def test_fanout_unknown_submission(self, client, api_headers):
        res = client.post("/api/sync/submissions/missing/fanout", headers=api_headers)
        assert res.status_code == 404

    def test_fanout_redrive_refused_while_running(self, client, api_headers, make_submission):
        sub = make_submission()
        running = MagicMock()
        running.is_alive.return_value = True

        with patch.dict(ingestion_service._running_fanouts, {sub.id: running}), \
             patch.object(sheets_module.sheets_gateway, "append_row") as mock_append:
            res = client.post(f"/api/sync/submissions/{sub.id}/fanout", headers=api_headers)

        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"
        mock_append.assert_not_called()
