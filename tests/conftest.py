"""
Shared pytest fixtures for the fieldsync test suite.

Provides:
    - app: Flask application (session-scoped, uploads in a temp dir)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - api_headers: X-API-Key header for protected endpoints
    - make_submission: factory for stored Submission rows
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from fieldsync import create_app
from fieldsync.integrations.base import GatewayResult
from fieldsync.models import db as _db
from fieldsync.models.submission import FS_OPERATOR, Submission, SubmissionPhoto
from fieldsync.services.helpers.locality import Locality

FULL_LOCALITY = "12345,VillageX,DistrictY,CityZ,ProvinceW"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app(tmp_path_factory):
    """Create the Flask application once per test session."""
    application = create_app("testing")
    application.config["UPLOADS_DIR"] = str(tmp_path_factory.mktemp("uploads"))
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def api_headers(app):
    return {"X-API-Key": app.config["API_KEY"]}


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_submission():
    """Return a factory that inserts and commits a Submission.

    Defaults to an FS submission created ten minutes ago with one photo.
    Keyword overrides are passed to the model.
    """

    def _make(**overrides):
        operators = overrides.pop("operators", [FS_OPERATOR, "other"])
        village = overrides.pop("village", FULL_LOCALITY)
        photos = overrides.pop("photos", ["1700000000000-0-front.jpg"])
        age = overrides.pop("age", timedelta(minutes=10))
        fields = dict(
            id=str(uuid.uuid4()),
            created_at=datetime.now(timezone.utc) - age,
            salesman_name="Firtana",
            customer_name="Siti Rahma",
            customer_address="Jl. Merdeka 10",
            customer_home_no="10A",
            village=village,
            coordinates="1.0,2.0",
            building_type="Residential",
            operators=operators,
            fs_selected=FS_OPERATOR in operators,
            remarks="gate is blue",
            **Locality.parse(village).as_columns(),
        )
        fields.update(overrides)
        submission = Submission(**fields)
        submission.photos = [SubmissionPhoto(filename=name) for name in photos]
        _db.session.add(submission)
        _db.session.commit()
        return submission

    return _make


def ok_result(data=None, status_code=200, **kwargs) -> GatewayResult:
    """Convenience: build a successful GatewayResult."""
    return GatewayResult(
        ok=True, status_code=status_code, data={} if data is None else data,
        error=None, duration_ms=kwargs.get("duration_ms", 12),
        payload_hash=kwargs.get("payload_hash", "abc123"),
    )


def err_result(status_code=500, error="Internal Server Error") -> GatewayResult:
    """Convenience: build a failed GatewayResult."""
    return GatewayResult(
        ok=False, status_code=status_code, data=None,
        error=error, duration_ms=40, payload_hash=None,
    )
