import argparse
from http import HTTPStatus
from decimal import Decimal
from requests import post
from datetime import date, datetime, timedelta, timezone

from app.src import argon2
from app.src.enums import Role, TrackingMode
from app.src.constants import (
    BOOTSTRAP_ADMIN_PASSWORD,
    COMPANY_STATE_CODE,
    MAX_TOKEN_VALIDITY,
)
from app.src.urls import (
    URL_ACCOUNT,
    URL_DUTY_START,
    URL_DUTY_LOCATION,
    URL_DUTY_STOP,
    URL_GST_COMPUTE,
)
from app.src.db import (
    Account,
    AccountRole,
    AccountToken,
    CompanySetting,
    Dealer,
    Supplier,
    Invoice,
    PurchaseInvoice,
    LedgerEntry,
    sessionMaker,
    engine,
    ORMbase,
)


# ----------------------------------- Project Setup -------------------------------------------#
def removeTables():
    session = sessionMaker()
    ORMbase.metadata.drop_all(engine)
    session.commit()
    print("* All tables deleted")
    session.close()


def createTables():
    session = sessionMaker()
    ORMbase.metadata.create_all(engine)
    session.commit()
    print("* All tables created")
    session.close()


def initDB():
    session = sessionMaker()
    setting = CompanySetting(
        company_name="Raize Chemicals",
        gstin="36AABCR1234A1Z5",
        state_code=COMPANY_STATE_CODE,
        invoice_series="RC",
    )
    session.add(setting)

    admin = Account(
        email="admin@raizechem.in",
        full_name="BizDesk admin",
        password=argon2.makePassword(BOOTSTRAP_ADMIN_PASSWORD),
    )
    session.add(admin)
    session.flush()

    session.add(AccountRole(account_id=admin.id, role=Role.ADMIN.value))
    token = AccountToken(
        account_id=admin.id,
        expires_in=MAX_TOKEN_VALIDITY,
        expires_at=datetime.now(timezone.utc) + timedelta(seconds=MAX_TOKEN_VALIDITY),
    )
    session.add(token)
    session.commit()
    print("* Initialization completed")
    print(f"* Admin bearer token: {token.access_token}")
    session.close()


def POST(URL: str, header: dict = {}, status_code: int = HTTPStatus.OK, **kwargs):
    response = post(URL, headers=header, **kwargs)
    if response.status_code != status_code:
        assert response.status_code == status_code
    else:
        return response


def seedFinance():
    session = sessionMaker()
    today = date.today()
    local = Dealer(name="Deccan Traders", gstin="36AAACD1234E1Z2", state_code="36")
    outstation = Dealer(name="Konkan Agencies", gstin="27AAACK4321F1Z9", state_code="27")
    supplier = Supplier(name="Godavari Solvents", gstin="36AAGCG7777H1Z4", state_code="36")
    session.add_all([local, outstation, supplier])
    session.flush()

    session.add_all(
        [
            Invoice(
                dealer_id=local.id,
                invoice_number="RC-0001",
                invoice_date=today - timedelta(days=150),
                due_date=today - timedelta(days=125),
                total_amount=Decimal("11800.00"),
                amount_paid=Decimal("1800.00"),
            ),
            Invoice(
                dealer_id=outstation.id,
                invoice_number="RC-0002",
                invoice_date=today - timedelta(days=40),
                total_amount=Decimal("5900.00"),
            ),
            PurchaseInvoice(
                supplier_id=supplier.id,
                invoice_number="GS-771",
                invoice_date=today - timedelta(days=200),
                due_date=today - timedelta(days=170),
                total_amount=Decimal("23600.00"),
            ),
            LedgerEntry(
                dealer_id=local.id,
                entry_date=today - timedelta(days=150),
                debit=Decimal("11800.00"),
                description="Invoice RC-0001",
            ),
            LedgerEntry(
                dealer_id=local.id,
                entry_date=today - timedelta(days=100),
                credit=Decimal("1800.00"),
                description="Receipt against RC-0001",
            ),
            LedgerEntry(
                supplier_id=supplier.id,
                entry_date=today - timedelta(days=200),
                credit=Decimal("23600.00"),
                description="Bill GS-771",
            ),
        ]
    )
    session.commit()
    print("* Created dealers, invoices and ledger entries")
    session.close()


def testDB(accessToken: str):
    # Base URL
    BASE_URL = "http://127.0.0.1:8080"
    header = {"Authorization": f"Bearer {accessToken}"}

    seedFinance()

    # Create a sales account
    accountData = {
        "action": "create",
        "email": "sales@raizechem.in",
        "password": "password",
        "full_name": "Field sales",
        "roles": [Role.SALES.value],
    }
    POST((BASE_URL + "/functions" + URL_ACCOUNT), header=header, json=accountData)
    print("* Created sales account")

    # GST split of a sample sale
    gstData = {"taxable_amount": "1000.00", "rate_percent": "18", "buyer_state_code": "27"}
    POST((BASE_URL + "/finance" + URL_GST_COMPUTE), header=header, data=gstData)
    print("* Computed GST split")

    # Run a short duty with the admin account
    duty = POST(
        (BASE_URL + "/fieldops" + URL_DUTY_START),
        header=header,
        data={"latitude": 17.3850, "longitude": 78.4867, "tracking_mode": TrackingMode.NORMAL},
        status_code=HTTPStatus.CREATED,
    )
    dutyId = duty.json()["id"]
    locationData = {
        "session_id": dutyId,
        "points": [
            {"latitude": 17.3860, "longitude": 78.4870, "accuracy": 12},
            {"latitude": 17.3880, "longitude": 78.4890, "accuracy": 9},
        ],
    }
    POST((BASE_URL + "/fieldops" + URL_DUTY_LOCATION), header=header, json=locationData)
    POST(
        (BASE_URL + "/fieldops" + URL_DUTY_STOP),
        header=header,
        data={"session_id": dutyId, "latitude": 17.3900, "longitude": 78.4910},
    )
    print("* Recorded a duty session")


# Setup database
if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("-rm", action="store_true", help="remove tables")
    parser.add_argument("-cr", action="store_true", help="create tables")
    parser.add_argument("-init", action="store_true", help="initialize DB")
    parser.add_argument(
        "-test", metavar="TOKEN", help="add test data using an admin bearer token"
    )
    args = parser.parse_args()

    if args.cr:
        createTables()
    if args.init:
        initDB()
    if args.test:
        testDB(args.test)
    if args.rm:
        removeTables()
