"""
Validation and permission checks for BizDesk API.

This module centralizes guard logic such as:
- Token validation
- Role based permission checks
- Coordinate validation (WGS84)
- Email domain allowlisting

All functions raise appropriate exceptions from `app.src.exceptions`
when validation fails, ensuring consistent error handling.
"""

from datetime import datetime, timezone
from typing import Iterable
from sqlalchemy.orm.session import Session
from shapely.geometry import Point

from app.src.db import Account, AccountToken, LocationPoint
from app.src.enums import AccountStatus
from app.src import exceptions
from app.src.functions import isSRID4326, toPoint


# ---------------------------------------------------------------------------
# Token validation
# ---------------------------------------------------------------------------
def accountToken(access_token: str, session: Session) -> AccountToken:
    """
    Validate a bearer token and the account it belongs to.

    Args:
        access_token (str): The bearer token string provided by the client.
        session (Session): Active SQLAlchemy session for DB lookup.

    Returns:
        AccountToken: The valid token object from the database.

    Raises:
        exceptions.InvalidToken: If the token is not found or has expired.
        exceptions.InactiveAccount: If the account has been suspended.
    """
    current_time = datetime.now(timezone.utc)

    token = (
        session.query(AccountToken)
        .filter(
            AccountToken.access_token == access_token,
            AccountToken.expires_at > current_time,
        )
        .first()
    )
    if token is None:
        raise exceptions.InvalidToken()

    account = session.query(Account).filter(Account.id == token.account_id).first()
    if account is None:
        raise exceptions.InvalidToken()
    if account.status != AccountStatus.ACTIVE:
        raise exceptions.InactiveAccount()
    return token


# ---------------------------------------------------------------------------
# Permission checks
# ---------------------------------------------------------------------------
def anyRole(roles: Iterable[str], allowed: Iterable[str]) -> bool:
    """
    Validate that at least one of the caller's roles is allowed.

    Raises:
        exceptions.NoPermission: If the role sets do not intersect.
    """
    if set(roles) & set(allowed):
        return True
    raise exceptions.NoPermission()


# ---------------------------------------------------------------------------
# Geometry validation
# ---------------------------------------------------------------------------
def WGS84Point(latitude: float, longitude: float) -> Point:
    """
    Build a shapely point from WGS84 coordinates, rejecting out of range values.

    Raises:
        exceptions.InvalidValue: If latitude or longitude is out of range.
    """
    point = toPoint(latitude, longitude)
    if not isSRID4326(point):
        if not (-90 <= latitude <= 90):
            raise exceptions.InvalidValue(LocationPoint.latitude)
        raise exceptions.InvalidValue(LocationPoint.longitude)
    return point


# ---------------------------------------------------------------------------
# Other validations
# ---------------------------------------------------------------------------
def emailDomain(email: str, domains: list[str]) -> bool:
    """
    Validate that an email address belongs to one of the allowed domains.

    Raises:
        exceptions.DisallowedEmailDomain: For any other domain.
    """
    domain = email.rsplit("@", 1)[-1].lower()
    if domain in [allowed.strip().lower() for allowed in domains]:
        return True
    raise exceptions.DisallowedEmailDomain(domains)
