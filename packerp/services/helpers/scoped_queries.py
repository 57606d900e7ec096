"""
Organization-scoped query helpers.

Every get-by-id in the services goes through these helpers instead of
``db.session.get(Model, pk)`` so a record can never be read across an
organization boundary.

Usage:
    order = get_scoped(Order, order_id, organization_id=org_id)

Scope resolution:
    Lookups filter on the model's ``organization_id`` column.
    A model without that column raises ValueError so the
    bug surfaces during development instead of silently skipping the filter.
"""

import logging

from sqlalchemy import select

from packerp.core.exceptions import NotFoundError
from packerp.models import db

logger = logging.getLogger(__name__)


def get_scoped(model, pk: str, *, organization_id: str):
    """Fetch a single entity by PK, filtered to ``organization_id``.

    Args:
        model: SQLAlchemy model class with ``id`` and ``organization_id`` columns.
        pk: Primary key value to look up.
        organization_id: Owning organization.

    Returns:
        The model instance if found within the organization.

    Raises:
        ValueError: If no organization is given or the model is not
                    organization-scoped.
        NotFoundError: If the entity does not exist OR belongs to a
                       different organization.
    """
    if organization_id is None:
        raise ValueError(f"{model.__name__} id={pk} requires an organization_id scope.")
    if not hasattr(model, "organization_id"):
        raise ValueError(
            f"{model.__name__} has no organization_id column; "
            "refusing to perform an unscoped lookup."
        )

    stmt = select(model).where(model.id == pk, model.organization_id == organization_id)
    result = db.session.execute(stmt).scalar_one_or_none()

    if result is None:
        logger.debug("get_scoped: %s id=%s not found in organization %s",
                     model.__name__, pk, organization_id)
        raise NotFoundError(
            resource=model.__name__,
            resource_id=pk,
            organization_id=organization_id,
        )

    return result


def require_organization(organization_id: str):
    """Return the active Organization or raise NotFoundError.

    Inactive organizations are reported as missing.
    """
    from packerp.models.organization import Organization

    org = db.session.get(Organization, organization_id) if organization_id else None
    if org is None or not org.is_active:
        raise NotFoundError(resource="Organization", resource_id=organization_id)
    return org
