from datetime import datetime
from typing import List, Literal, Optional, Union
from fastapi import APIRouter, Body, Depends
from sqlalchemy import func
from sqlalchemy.orm.session import Session
from pydantic import BaseModel, EmailStr, Field
from pydantic_extra_types.phone_numbers import PhoneNumber

from app.api.bearer import bearer_account
from app.src.db import Account, AccountRole, AccountToken, sessionMaker
from app.src import argon2, exceptions, validators, getters
from app.src.constants import ALLOWED_EMAIL_DOMAINS, REGEX_PASSWORD
from app.src.enums import Role
from app.src.loggers import logEvent
from app.src.functions import fuseExceptionResponses
from app.src.urls import URL_ACCOUNT

route_functions = APIRouter()


## Output Schema
class AccountSchema(BaseModel):
    id: int
    email: str
    full_name: str
    phone_number: Optional[str]
    status: int
    roles: List[str]
    created_on: datetime


class AccountResponse(BaseModel):
    success: bool
    data: AccountSchema | List[AccountSchema]


## Input Forms
class ListForm(BaseModel):
    action: Literal["list"]


class CreateForm(BaseModel):
    action: Literal["create"]
    email: EmailStr = Field(max_length=256)
    password: str = Field(min_length=8, max_length=32, pattern=REGEX_PASSWORD)
    full_name: str = Field(min_length=1, max_length=64)
    phone_number: PhoneNumber | None = None
    roles: List[Role] = Field(default_factory=list)


class UpdateRolesForm(BaseModel):
    action: Literal["update_roles"]
    account_id: int
    roles: List[Role]


AccountForm = Union[ListForm, CreateForm, UpdateRolesForm]


## Function
def accountData(account: Account, roles: List[str]) -> AccountSchema:
    return AccountSchema(
        id=account.id,
        email=account.email,
        full_name=account.full_name,
        phone_number=account.phone_number,
        status=account.status,
        roles=sorted(roles),
        created_on=account.created_on,
    )


def listAccounts(session: Session) -> List[AccountSchema]:
    accounts = (
        session.query(Account)
        .order_by(Account.created_on.desc(), Account.id.desc())
        .all()
    )
    roleRows = session.query(AccountRole.account_id, AccountRole.role).all()

    rolesOf = {}
    for row in roleRows:
        rolesOf.setdefault(row.account_id, []).append(row.role)
    return [accountData(account, rolesOf.get(account.id, [])) for account in accounts]


def assignRoles(
    session: Session, accountId: int, roles: List[Role], assignedBy: int
) -> List[str]:
    roleNames = sorted({role.value for role in roles})
    session.add_all(
        [
            AccountRole(account_id=accountId, role=role, assigned_by=assignedBy)
            for role in roleNames
        ]
    )
    return roleNames


def createAccount(
    session: Session, fParam: CreateForm, token: AccountToken
) -> AccountSchema:
    email = fParam.email.lower()
    validators.emailDomain(email, ALLOWED_EMAIL_DOMAINS)
    existing = (
        session.query(Account.id).filter(func.lower(Account.email) == email).first()
    )
    if existing is not None:
        raise exceptions.DuplicateAccount()

    account = Account(
        email=email,
        full_name=fParam.full_name,
        phone_number=fParam.phone_number,
        password=argon2.makePassword(fParam.password),
    )
    session.add(account)
    session.flush()
    roles = assignRoles(session, account.id, fParam.roles, token.account_id)
    session.commit()
    session.refresh(account)
    return accountData(account, roles)


def updateRoles(
    session: Session, fParam: UpdateRolesForm, token: AccountToken
) -> AccountSchema:
    account = session.query(Account).filter(Account.id == fParam.account_id).first()
    if account is None:
        raise exceptions.InvalidIdentifier()

    session.query(AccountRole).filter(AccountRole.account_id == account.id).delete()
    roles = assignRoles(session, account.id, fParam.roles, token.account_id)
    session.commit()
    return accountData(account, roles)


## API endpoints [Functions]
@route_functions.post(
    URL_ACCOUNT,
    tags=["Account"],
    response_model=AccountResponse,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.DisallowedEmailDomain(ALLOWED_EMAIL_DOMAINS),
            exceptions.DuplicateAccount(),
        ]
    ),
    description="""
    Administers staff accounts. The `action` field selects the operation:
    - `list`: every account with its roles, newest first.
    - `create`: a new account with an email on an allowed domain and optional roles.
    - `update_roles`: replaces the role set of an existing account.
    Only accounts holding the `admin` role can use this function.
    Logs every change with the associated token.
    """,
)
async def manage_accounts(
    fParam: AccountForm = Body(discriminator="action"),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        roles = getters.accountRoles(token, session)
        validators.anyRole(roles, [Role.ADMIN.value])

        if isinstance(fParam, ListForm):
            return {"success": True, "data": listAccounts(session)}

        if isinstance(fParam, CreateForm):
            account = createAccount(session, fParam, token)
        else:
            account = updateRoles(session, fParam, token)
        logEvent(
            token,
            request_info,
            {"action": fParam.action, **account.model_dump(mode="json")},
        )
        return {"success": True, "data": account}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
