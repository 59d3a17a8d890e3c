"""
Shared pytest fixtures for the QC Inspection Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - repos / clock / inspections / lifecycle / catalog: services bound to db.session
    - project, phases, template: pre-created master data
    - make_instance: factory for DRAFT instances
"""

from datetime import datetime, timedelta, timezone

import pytest

from qc_platform import create_app
from qc_platform.core.principal import Principal
from qc_platform.integrations.attachment_store import LocalAttachmentStore
from qc_platform.models import db as _db
from qc_platform.models.project import Project
from qc_platform.services.catalog_service import CatalogService
from qc_platform.services.inspection_lifecycle import LifecycleService
from qc_platform.services.inspection_service import InspectionService
from qc_platform.services.repositories import SqlRepositories

INSPECTOR = Principal(user_id="u-insp", name="Ivan Inspector", role="inspector")
REVIEWER = Principal(user_id="u-rev", name="Rita Reviewer", role="qc_manager")

INSPECTOR_HEADERS = {"X-User-Id": "u-insp", "X-User-Name": "Ivan Inspector", "X-User-Role": "inspector"}
REVIEWER_HEADERS = {"X-User-Id": "u-rev", "X-User-Name": "Rita Reviewer", "X-User-Role": "qc_manager"}

DEFAULT_ITEMS = [
    {"code": "1.1", "title": "Base plate level", "weight": 2, "is_mandatory": True},
    {"code": "1.2", "title": "Anchor bolts torqued", "weight": 2},
    {"code": "1.10", "title": "Grout cured", "weight": 2},
    {"code": "2.1", "title": "Weld visual check", "weight": 4, "is_mandatory": True},
]


class FakeClock:
    """Deterministic clock; every call advances one minute."""

    def __init__(self, start=None):
        self.current = start or datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.current += timedelta(minutes=1)
        return self.current


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
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
def session(app, _setup_db, tmp_path):
    """Per-test: open app context, rollback after test, recreate tables."""
    app.extensions["qc_attachment_store"] = LocalAttachmentStore(str(tmp_path / "uploads"))
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Services ─────────────────────────────────────────────────────────────


@pytest.fixture()
def repos():
    return SqlRepositories(_db.session)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def store(tmp_path):
    return LocalAttachmentStore(str(tmp_path / "store"))


@pytest.fixture()
def inspections(repos, clock, store):
    return InspectionService(
        repos.templates, repos.instances, repos.attachments, repos.projects,
        attachment_store=store, clock=clock,
    )


@pytest.fixture()
def lifecycle(repos, clock):
    return LifecycleService(repos.instances, clock=clock)


@pytest.fixture()
def catalog(repos):
    return CatalogService(repos.templates)


# ── Master data ──────────────────────────────────────────────────────────


@pytest.fixture()
def project():
    proj = Project(code="PRJ-001", name="Steel Hall A", client_name="Acme Build", location="Rotterdam")
    _db.session.add(proj)
    _db.session.commit()
    return proj


@pytest.fixture()
def phases(catalog):
    """Two phases: Fabrication (order 1), Erection (order 2)."""
    return [catalog.create_phase("Fabrication"), catalog.create_phase("Erection")]


@pytest.fixture()
def template(catalog):
    """Published four-item template (weights 2, 2, 2, 4)."""
    tpl = catalog.create_template("Steel Structure", DEFAULT_ITEMS, project_type="steel")
    return catalog.publish_template(tpl.id)


@pytest.fixture()
def make_instance(inspections, project, phases, template):
    """Factory: ``make_instance(phase_index=0)`` → DRAFT InspectionInstance."""

    def _make(phase_index=0, principal=INSPECTOR):
        return inspections.instantiate(project.id, phases[phase_index].id, template.id, principal)

    return _make


def item_by_code(instance, code):
    return next(i for i in instance.items if i.code == code)
