from __future__ import annotations

from collections.abc import Generator

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from jobboard.billing.gateway import StripeGateway
from jobboard.config import get_settings
from jobboard.crm.zoho import ZohoClient
from jobboard.db.models import Profile
from jobboard.db.repositories import Repository
from jobboard.db.session import get_db_session


def get_db() -> Generator[Session, None, None]:
    yield from get_db_session()


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    # Set by the auth gateway after it validated the session token.
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id


def get_current_profile(
    user_id: str = Depends(get_current_user_id),
    x_user_email: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> Profile:
    return Repository(db).ensure_profile(user_id, email=x_user_email or "")


def get_stripe_gateway() -> StripeGateway:
    return StripeGateway(get_settings())


def get_zoho_client() -> ZohoClient:
    return ZohoClient(get_settings())
