import pytest
from argon2.exceptions import VerifyMismatchError

from app.src import argon2
from app.src.db import Account, AccountRole
from app.src.enums import Role
from app.src.urls import URL_ACCOUNT

ACCOUNT = "/functions" + URL_ACCOUNT

NEW_ACCOUNT = {
    "action": "create",
    "email": "Ravi.Kumar@RaizeChem.in",
    "password": "Field#2026",
    "full_name": "Ravi Kumar",
    "phone_number": "+919848022338",
    "roles": ["sales", "sales", "warehouse"],
}


def test_list_accounts(client, admin, sales):
    _, headers = admin

    response = client.post(ACCOUNT, json={"action": "list"}, headers=headers)

    assert response.status_code == 200
    accounts = response.json()["data"]
    assert {a["email"] for a in accounts} == {"admin@raizechem.in", "sales@raizechem.in"}
    rolesOf = {a["email"]: a["roles"] for a in accounts}
    assert rolesOf["sales@raizechem.in"] == ["sales"]


def test_create_account(client, session, admin, events):
    creator, headers = admin

    response = client.post(ACCOUNT, json=NEW_ACCOUNT, headers=headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["email"] == "ravi.kumar@raizechem.in"
    assert data["roles"] == ["sales", "warehouse"]
    assert "+91" in data["phone_number"]
    assert "password" not in data

    session.expire_all()
    account = session.get(Account, data["id"])
    assert account.password.startswith("$argon2id$")
    assert argon2.passwordHasher.verify(account.password, "Field#2026")
    assert not argon2.passwordHasher.check_needs_rehash(account.password)
    with pytest.raises(VerifyMismatchError):
        argon2.passwordHasher.verify(account.password, "field#2026")
    assigners = {
        row.assigned_by
        for row in session.query(AccountRole).filter(AccountRole.account_id == account.id)
    }
    assert assigners == {creator.id}
    assert events[-1]["action"] == "create"
    assert events[-1]["email"] == "ravi.kumar@raizechem.in"


def test_create_rejects_foreign_domain(client, admin):
    _, headers = admin
    payload = dict(NEW_ACCOUNT, email="ravi@gmail.com")

    response = client.post(ACCOUNT, json=payload, headers=headers)

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_create_rejects_duplicate_email(client, admin, sales):
    _, headers = admin
    payload = dict(NEW_ACCOUNT, email="SALES@raizechem.in")

    response = client.post(ACCOUNT, json=payload, headers=headers)

    assert response.status_code == 409
    assert response.json() == {
        "success": False,
        "error": "An account with this email already exists",
    }


def test_create_validates_input(client, admin):
    _, headers = admin

    short = client.post(ACCOUNT, json=dict(NEW_ACCOUNT, password="abc"), headers=headers)
    badRole = client.post(ACCOUNT, json=dict(NEW_ACCOUNT, roles=["owner"]), headers=headers)
    badAction = client.post(ACCOUNT, json={"action": "delete"}, headers=headers)

    for response in (short, badRole, badAction):
        assert response.status_code == 422
        assert response.json()["success"] is False


def test_update_roles_replaces_the_set(client, session, admin, sales):
    _, headers = admin
    account, _ = sales
    payload = {"action": "update_roles", "account_id": account.id, "roles": ["accounts"]}

    response = client.post(ACCOUNT, json=payload, headers=headers)

    assert response.status_code == 200
    assert response.json()["data"]["roles"] == ["accounts"]
    session.expire_all()
    roles = [
        row.role
        for row in session.query(AccountRole).filter(AccountRole.account_id == account.id)
    ]
    assert roles == [Role.ACCOUNTS.value]


def test_update_roles_of_unknown_account(client, admin):
    _, headers = admin
    payload = {"action": "update_roles", "account_id": 9999, "roles": []}

    response = client.post(ACCOUNT, json=payload, headers=headers)

    assert response.status_code == 404


def test_only_admins_manage_accounts(client, sales):
    _, headers = sales

    response = client.post(ACCOUNT, json={"action": "list"}, headers=headers)

    assert response.status_code == 403
    assert response.json() == {"success": False, "error": "Forbidden: insufficient role"}
