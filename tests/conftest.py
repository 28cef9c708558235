"""
Shared pytest fixtures for the Assessment Sign-off Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - default_tenant: Pre-created Tenant entity
    - make_assessment: factory for assessments with classification rows
"""

import pytest

from assessment_platform import create_app
from assessment_platform.models import db as _db


def _ensure_default_tenant():
    """Create a default tenant for tests if it doesn't exist.

    Returns the tenant ID.
    """
    from assessment_platform.models.auth import Tenant
    t = Tenant.query.filter_by(slug="test-default").first()
    if not t:
        t = Tenant(name="Test Default", slug="test-default")
        _db.session.add(t)
        _db.session.commit()
    return t.id


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
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        _ensure_default_tenant()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def default_tenant():
    """Return the auto-created default test tenant."""
    from assessment_platform.models.auth import Tenant
    return Tenant.query.filter_by(slug="test-default").first()


@pytest.fixture()
def other_tenant():
    from assessment_platform.models.auth import Tenant
    t = Tenant(name="Other Co", slug="other-co")
    _db.session.add(t)
    _db.session.commit()
    return t


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def make_assessment(default_tenant):
    """Factory: create an Assessment plus classification rows and commit.

    Usage:
        a = make_assessment(
            scope=[("J58", True, "HIGH")],
            steps=[("J58-01", "FIT")],
            gaps=[{"resolution_type": "EXTENSION", "client_approved": True}],
        )
    """
    from assessment_platform.models.assessment import (
        Assessment,
        DataMigrationObject,
        GapResolution,
        IntegrationPoint,
        OcmImpact,
        ScopeSelection,
        StepResponse,
    )

    def _make(
        company_name="Acme GmbH",
        tenant=None,
        scope=(),
        steps=(),
        gaps=(),
        integrations=(),
        migrations=(),
        ocm=(),
    ):
        tenant_id = (tenant or default_tenant).id
        a = Assessment(company_name=company_name, industry="Manufacturing", tenant_id=tenant_id)
        _db.session.add(a)
        _db.session.flush()

        for scope_item_id, selected, relevance in scope:
            _db.session.add(ScopeSelection(
                assessment_id=a.id, scope_item_id=scope_item_id,
                selected=selected, relevance=relevance,
            ))
        for process_step_id, fit_status in steps:
            _db.session.add(StepResponse(
                assessment_id=a.id, process_step_id=process_step_id, fit_status=fit_status,
            ))
        for gap in gaps:
            _db.session.add(GapResolution(assessment_id=a.id, **gap))
        for name in integrations:
            _db.session.add(IntegrationPoint(assessment_id=a.id, name=name, direction="OUTBOUND"))
        for object_name in migrations:
            _db.session.add(DataMigrationObject(assessment_id=a.id, object_name=object_name))
        for role in ocm:
            _db.session.add(OcmImpact(assessment_id=a.id, impacted_role=role, severity="medium"))

        _db.session.commit()
        return a

    return _make
