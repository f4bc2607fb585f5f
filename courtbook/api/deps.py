import hmac
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from courtbook.core.config import settings
from courtbook.core.exceptions import AuthorizationError, NotAuthenticatedError, NotFoundError
from courtbook.core.security import decode_token
from courtbook.db.session import get_db
from courtbook.models.organization import Organization
from courtbook.models.user import User
from courtbook.services.permissions import is_org_admin

bearer_scheme = HTTPBearer(auto_error=False)


def get_optional_user(
    db: Session = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[User]:
    """The signed-in user, or None when no bearer token was sent."""
    if credentials is None:
        return None
    subject = decode_token(credentials.credentials)
    if not subject:
        raise NotAuthenticatedError("Could not validate credentials")
    try:
        user_id = UUID(subject)
    except ValueError:
        raise NotAuthenticatedError("Could not validate credentials")
    user = db.query(User).filter(User.id == user_id).first()
    if user is None or not user.is_active:
        raise NotAuthenticatedError("Could not validate credentials")
    return user


def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    if user is None:
        raise NotAuthenticatedError("Please sign in to continue")
    return user


def get_org(slug: str, db: Session = Depends(get_db)) -> Organization:
    org = db.query(Organization).filter(Organization.slug == slug).first()
    if org is None or not org.is_active:
        raise NotFoundError("Organization not found")
    return org


def get_org_admin(
    org: Organization = Depends(get_org),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> User:
    if not is_org_admin(db, current_user, org.id):
        raise AuthorizationError("Admin access required")
    return current_user


def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    expected = f"Bearer {settings.CRON_SECRET}"
    if not settings.CRON_SECRET or not authorization or not hmac.compare_digest(authorization, expected):
        raise NotAuthenticatedError("Invalid cron credentials")


def verify_webhook_secret(x_webhook_secret: Optional[str] = Header(None)) -> None:
    expected = settings.PAYMENT_WEBHOOK_SECRET
    if not expected or not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, expected):
        raise AuthorizationError("Invalid webhook signature")
