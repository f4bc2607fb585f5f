from uuid import UUID

from sqlalchemy.orm import Session

from courtbook.models.organization import OrganizationMember
from courtbook.models.user import User


def is_org_admin(db: Session, user: User, organization_id: UUID) -> bool:
    """Platform admins administer every organization; otherwise membership role decides."""
    if user.role == "admin":
        return True
    membership = (
        db.query(OrganizationMember)
        .filter(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.user_id == user.id,
        )
        .first()
    )
    return membership is not None and membership.role == "admin"
