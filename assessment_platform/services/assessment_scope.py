"""Tenant-scoped assessment lookup shared by the sign-off services."""

from __future__ import annotations

from sqlalchemy import select

from assessment_platform.core.exceptions import NotFoundError
from assessment_platform.models import db
from assessment_platform.models.assessment import Assessment


def get_assessment(assessment_id: str, tenant_id: int | None = None, *, lock: bool = False) -> Assessment:
    """Load an assessment, raising NotFoundError when it is missing or belongs
    to another tenant. ``lock=True`` takes a row lock (SELECT ... FOR UPDATE)
    for the rest of the transaction.
    """
    stmt = select(Assessment).where(Assessment.id == assessment_id)
    if lock:
        stmt = stmt.with_for_update()
    assessment = db.session.execute(stmt).scalar_one_or_none()
    if assessment is None or (tenant_id is not None and assessment.tenant_id != tenant_id):
        raise NotFoundError(resource="Assessment", resource_id=assessment_id, tenant_id=tenant_id)
    return assessment
