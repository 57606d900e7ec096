"""
OrgScopedModel — Abstract base class for organization-scoped models.

Every manufacturing and inventory table belongs to exactly one
organization. Inheriting from OrgScopedModel adds:
  - organization_id FK column with index
  - query_for_org(organization_id) classmethod
"""

import uuid
from datetime import datetime, timezone

from packerp.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class OrgScopedModel(db.Model):
    """Abstract base for organization-scoped tables."""
    __abstract__ = True

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    organization_id = db.Column(
        db.String(36),
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    @classmethod
    def query_for_org(cls, organization_id):
        """Return a query filtered by organization_id."""
        return cls.query.filter_by(organization_id=organization_id)
