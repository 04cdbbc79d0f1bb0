from secrets import token_hex
from sqlalchemy import (
    JSON,
    TEXT,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    create_engine,
    func,
)
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.dialects.postgresql import JSONB

from app.src.constants import (
    PSQL_DB_DRIVER,
    PSQL_DB_HOST,
    PSQL_DB_PASSWORD,
    PSQL_DB_NAME,
    PSQL_DB_PORT,
    PSQL_DB_USERNAME,
)
from app.src.enums import (
    AccountStatus,
    InvoiceStatus,
    DutyStatus,
    TrackingMode,
    LocationSource,
)


# Global DBMS variables
dbURL = f"{PSQL_DB_DRIVER}://{PSQL_DB_USERNAME}:{PSQL_DB_PASSWORD}@{PSQL_DB_HOST}:{PSQL_DB_PORT}/{PSQL_DB_NAME}"
engine = create_engine(url=dbURL, echo=False)
sessionMaker = sessionmaker(bind=engine, expire_on_commit=False)
ORMbase = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ----------------------------------- Account DB Models ---------------------------------------#
class Account(ORMbase):
    """
    Represents a staff member who can sign in to the back office.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the account.

        email (String(256)):
            Login email of the account.
            Must be unique and belong to an allowed organisation domain.

        full_name (String(64)):
            Display name of the account holder.

        phone_number (String(32)):
            Optional contact number in RFC3966 format.

        password (TEXT):
            Argon2 hash of the account password.

        status (Integer):
            Enum representing the account status (`AccountStatus`).
            Defaults to `AccountStatus.ACTIVE`.

        updated_on (DateTime):
            Timestamp automatically updated whenever the account is modified.

        created_on (DateTime):
            Timestamp indicating when the account was created.
    """

    __tablename__ = "account"

    id = Column(Integer, primary_key=True)
    email = Column(String(256), nullable=False, unique=True)
    full_name = Column(String(64), nullable=False)
    phone_number = Column(String(32))
    password = Column(TEXT, nullable=False)
    status = Column(Integer, nullable=False, default=AccountStatus.ACTIVE)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class AccountRole(ORMbase):
    """
    Maps an account to one of the application roles (`Role`).

    An account may hold several roles; module access is granted when any of
    them is allowed. The pair (account_id, role) is unique.

    Columns:
        id (Integer):
            Primary key.

        account_id (Integer):
            Foreign key referencing `account.id`. Cascades on delete.

        role (String(16)):
            Role name, one of `Role` values.

        assigned_by (Integer):
            Account that granted the role. Optional, set null on delete.

        created_on (DateTime):
            Timestamp indicating when the role was granted.
    """

    __tablename__ = "account_role"
    __table_args__ = (UniqueConstraint("account_id", "role"),)

    id = Column(Integer, primary_key=True)
    account_id = Column(
        Integer,
        ForeignKey("account.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role = Column(String(16), nullable=False)
    assigned_by = Column(Integer, ForeignKey("account.id", ondelete="SET NULL"))
    # Metadata
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class AccountToken(ORMbase):
    """
    Represents a bearer token issued to an account.

    Columns:
        id (Integer):
            Primary key. Unique identifier for this token record.

        account_id (Integer):
            Foreign key referencing `account.id`.
            Cascades on delete, removing tokens with the account.

        access_token (String):
            Unique, securely generated 64-character hexadecimal access token.

        expires_in (Integer):
            Token validity in seconds.

        expires_at (DateTime):
            Date and time after which the token becomes invalid.

        created_on (DateTime):
            Timestamp indicating when this token was created.
    """

    __tablename__ = "account_token"

    id = Column(Integer, primary_key=True)
    account_id = Column(
        Integer,
        ForeignKey("account.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    access_token = Column(
        String(64), unique=True, nullable=False, default=lambda: token_hex(32)
    )
    expires_in = Column(Integer, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class CompanySetting(ORMbase):
    """
    Single row holding the company's own registration details.

    The `state_code` decides whether a sale is intra-state or inter-state.
    """

    __tablename__ = "company_setting"

    id = Column(Integer, primary_key=True)
    company_name = Column(String(128), nullable=False)
    gstin = Column(String(15))
    state_code = Column(String(2), nullable=False)
    invoice_series = Column(String(8))
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


# ----------------------------------- Finance DB Models ---------------------------------------#
class Dealer(ORMbase):
    __tablename__ = "dealer"

    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False)
    gstin = Column(String(15))
    state_code = Column(String(2))
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Supplier(ORMbase):
    __tablename__ = "supplier"

    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False)
    gstin = Column(String(15))
    state_code = Column(String(2))
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Invoice(ORMbase):
    """
    Sales invoice raised against a dealer (a receivable).

    Columns:
        id (Integer):
            Primary key.

        dealer_id (Integer):
            Foreign key referencing `dealer.id`. Cascades on delete.

        invoice_number (String(32)):
            Human readable invoice number. Unique.

        invoice_date (Date):
            Date the invoice was raised.

        due_date (Date):
            Payment due date. Optional, aging falls back to `invoice_date`.

        total_amount (Numeric):
            Grand total including tax.

        amount_paid (Numeric):
            Sum of payments allocated to the invoice so far.

        status (Integer):
            Enum representing the invoice status (`InvoiceStatus`).
    """

    __tablename__ = "invoice"

    id = Column(Integer, primary_key=True)
    dealer_id = Column(
        Integer,
        ForeignKey("dealer.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    invoice_number = Column(String(32), nullable=False, unique=True)
    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date)
    total_amount = Column(Numeric(14, 2), nullable=False, default=0)
    amount_paid = Column(Numeric(14, 2), nullable=False, default=0)
    status = Column(Integer, nullable=False, default=InvoiceStatus.ISSUED)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class PurchaseInvoice(ORMbase):
    """Supplier invoice booked against a purchase (a payable)."""

    __tablename__ = "purchase_invoice"

    id = Column(Integer, primary_key=True)
    supplier_id = Column(
        Integer,
        ForeignKey("supplier.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    invoice_number = Column(String(32), nullable=False)
    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date)
    total_amount = Column(Numeric(14, 2), nullable=False, default=0)
    amount_paid = Column(Numeric(14, 2), nullable=False, default=0)
    status = Column(Integer, nullable=False, default=InvoiceStatus.ISSUED)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class FinancialYear(ORMbase):
    """
    An accounting year, for example April 2025 to March 2026.

    Opening balances are carried into a financial year per counterparty.
    """

    __tablename__ = "financial_year"

    id = Column(Integer, primary_key=True)
    name = Column(String(16), nullable=False, unique=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    # Metadata
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class OpeningBalance(ORMbase):
    """
    Balance brought forward into a financial year for one dealer or supplier.

    Exactly one of `dealer_id` and `supplier_id` is set. The net opening
    balance is `opening_debit - opening_credit` and seeds the running balance
    of the ledger for that year.

    Columns:
        id (Integer):
            Primary key.

        financial_year_id (Integer):
            Foreign key referencing `financial_year.id`. Cascades on delete.

        dealer_id (Integer):
            Foreign key referencing `dealer.id` for a receivable account.

        supplier_id (Integer):
            Foreign key referencing `supplier.id` for a payable account.

        opening_debit (Numeric):
            Amount owed by the counterparty at the start of the year.

        opening_credit (Numeric):
            Amount owed to the counterparty at the start of the year.
    """

    __tablename__ = "opening_balance"
    __table_args__ = (
        UniqueConstraint("financial_year_id", "dealer_id"),
        UniqueConstraint("financial_year_id", "supplier_id"),
        CheckConstraint(
            "(dealer_id IS NULL) <> (supplier_id IS NULL)",
            name="opening_balance_one_counterparty",
        ),
    )

    id = Column(Integer, primary_key=True)
    financial_year_id = Column(
        Integer,
        ForeignKey("financial_year.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    dealer_id = Column(Integer, ForeignKey("dealer.id", ondelete="CASCADE"))
    supplier_id = Column(Integer, ForeignKey("supplier.id", ondelete="CASCADE"))
    opening_debit = Column(Numeric(14, 2), nullable=False, default=0)
    opening_credit = Column(Numeric(14, 2), nullable=False, default=0)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class LedgerEntry(ORMbase):
    """
    A single debit or credit posted to a dealer's or a supplier's account.

    Entries are written by invoice, purchase and payment postings and never
    updated. Exactly one of `dealer_id` and `supplier_id` is set.
    A positive running balance means the counterparty owes the company (Dr),
    a negative one means the company owes the counterparty (Cr).

    Columns:
        id (Integer):
            Primary key.

        dealer_id (Integer):
            Foreign key referencing `dealer.id`. Cascades on delete.
            Set for receivable postings.

        supplier_id (Integer):
            Foreign key referencing `supplier.id`. Cascades on delete.
            Set for payable postings.

        entry_date (Date):
            Accounting date of the entry.

        debit (Numeric):
            Amount charged to the counterparty, or paid to a supplier. Non-negative.

        credit (Numeric):
            Amount received from a dealer, or billed by a supplier. Non-negative.

        description (TEXT):
            Optional narration.

        created_on (DateTime):
            Insertion timestamp, used to order entries sharing an entry_date.
    """

    __tablename__ = "ledger_entry"
    __table_args__ = (
        CheckConstraint(
            "(dealer_id IS NULL) <> (supplier_id IS NULL)",
            name="ledger_entry_one_counterparty",
        ),
    )

    id = Column(Integer, primary_key=True)
    dealer_id = Column(
        Integer,
        ForeignKey("dealer.id", ondelete="CASCADE"),
        index=True,
    )
    supplier_id = Column(
        Integer,
        ForeignKey("supplier.id", ondelete="CASCADE"),
        index=True,
    )
    entry_date = Column(Date, nullable=False)
    debit = Column(Numeric(14, 2), nullable=False, default=0)
    credit = Column(Numeric(14, 2), nullable=False, default=0)
    description = Column(TEXT)
    # Metadata
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


# ----------------------------------- Field ops DB Models -------------------------------------#
class DutySession(ORMbase):
    """
    A tracked field-work period of an account.

    Created when the account starts duty and marked completed when it stops.
    Location points of completed sessions older than the retention window are
    thinned by the cleaner.

    Columns:
        id (Integer):
            Primary key.

        account_id (Integer):
            Foreign key referencing `account.id`. Cascades on delete.

        status (Integer):
            Enum representing the session status (`DutyStatus`).
            Defaults to `DutyStatus.ACTIVE`.

        tracking_mode (Integer):
            Enum representing the sampling rate requested by the device.

        started_on (DateTime):
            Timestamp when the duty started.

        finished_on (DateTime):
            Timestamp when the duty stopped. Null while active.

        distance_km (Float):
            Geodesic length of the recorded trail, set when the duty stops.

        points_thinned_on (DateTime):
            Timestamp when the retention cleaner thinned the session points.
            Thinned sessions are skipped by later cleaner runs.
    """

    __tablename__ = "duty_session"

    id = Column(Integer, primary_key=True)
    account_id = Column(
        Integer,
        ForeignKey("account.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = Column(Integer, nullable=False, default=DutyStatus.ACTIVE)
    tracking_mode = Column(Integer, nullable=False, default=TrackingMode.NORMAL)
    started_on = Column(DateTime(timezone=True), nullable=False, default=func.now())
    finished_on = Column(DateTime(timezone=True))
    distance_km = Column(Float)
    points_thinned_on = Column(DateTime(timezone=True))
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class LocationPoint(ORMbase):
    """
    A GPS fix recorded during a duty session.

    Columns:
        id (Integer):
            Primary key.

        duty_session_id (Integer):
            Foreign key referencing `duty_session.id`. Cascades on delete.

        account_id (Integer):
            Foreign key referencing `account.id`. Used for the daily cap.

        latitude (Float), longitude (Float):
            WGS84 coordinates.

        accuracy (Float):
            Reported accuracy radius in meters. Optional.

        source (Integer):
            Enum representing how the fix was obtained (`LocationSource`).

        recorded_at (DateTime):
            Device timestamp of the fix. Points are ordered by this column.
    """

    __tablename__ = "location_point"

    id = Column(Integer, primary_key=True)
    duty_session_id = Column(
        Integer,
        ForeignKey("duty_session.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    account_id = Column(
        Integer,
        ForeignKey("account.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    accuracy = Column(Float)
    source = Column(Integer, nullable=False, default=LocationSource.GPS)
    recorded_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    # Metadata
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


# ----------------------------------- Audit DB Models -----------------------------------------#
class GstinLookupLog(ORMbase):
    """
    Audit trail of GSTIN verification attempts.

    One row is written for every attempt that passed the format and role
    checks, whatever its outcome.

    Columns:
        id (Integer):
            Primary key.

        gstin (String(15)):
            Normalized GSTIN that was looked up.

        account_id (Integer):
            Account that requested the lookup. Set null on delete.

        endpoint (String(32)):
            Name of the function that served the lookup.

        outcome (Integer):
            Enum representing the result (`GstinLookupOutcome`).

        detail (JSON):
            Outcome specific details (normalized status, provider message...).

        created_on (DateTime):
            Timestamp of the attempt.
    """

    __tablename__ = "gstin_lookup_log"

    id = Column(Integer, primary_key=True)
    gstin = Column(String(15), nullable=False, index=True)
    account_id = Column(Integer, ForeignKey("account.id", ondelete="SET NULL"))
    endpoint = Column(String(32), nullable=False)
    outcome = Column(Integer, nullable=False)
    detail = Column(JSONType)
    # Metadata
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())
