from typing import Set
from fastapi import Request
from sqlalchemy.orm.session import Session

from app.src import schemas
from app.src.db import AccountRole, AccountToken, CompanySetting


def requestInfo(request: Request) -> schemas.RequestInfo:
    """
    Extract metadata about the incoming request.

    Args:
        request (Request): FastAPI request object.

    Returns:
        schemas.RequestInfo: Pydantic model containing:
            - method (str): HTTP method (GET, POST, etc.).
            - path (str): Path portion of the request URL.
            - app_id (int): Application ID from app state.
    """
    return schemas.RequestInfo(
        method=request.method,
        path=request.url.path,
        app_id=request.scope["app"].state.id,
    )


def accountRoles(token: AccountToken, session: Session) -> Set[str]:
    """Fetch the role names held by the account owning the token."""
    rows = (
        session.query(AccountRole.role)
        .filter(AccountRole.account_id == token.account_id)
        .all()
    )
    return {row.role for row in rows}


def companySetting(session: Session) -> CompanySetting | None:
    return session.query(CompanySetting).order_by(CompanySetting.id.asc()).first()


def tenantConfig(session: Session) -> schemas.TenantConfig:
    """
    Build the business rule parameters for the current request.

    Defaults come from `app.src.constants`; the seller state code is taken
    from the company settings row when one exists.
    """
    config = schemas.TenantConfig()
    setting = companySetting(session)
    if setting is not None and setting.state_code:
        config.seller_state_code = setting.state_code
    return config
