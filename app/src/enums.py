from enum import Enum, IntEnum


class AppID(IntEnum):
    FUNCTIONS = 1
    FINANCE = 2
    FIELDOPS = 3


class OrderIn(IntEnum):
    ASC = 1
    DESC = 2


class AccountStatus(IntEnum):
    ACTIVE = 1
    SUSPENDED = 2


class Role(str, Enum):
    ADMIN = "admin"
    SALES = "sales"
    WAREHOUSE = "warehouse"
    ACCOUNTS = "accounts"
    INVENTORY = "inventory"


class InvoiceStatus(IntEnum):
    DRAFT = 1
    ISSUED = 2
    PARTIALLY_PAID = 3
    PAID = 4
    VOID = 5


class DutyStatus(IntEnum):
    ACTIVE = 1
    COMPLETED = 2


class TrackingMode(IntEnum):
    LOW = 1
    NORMAL = 2
    HIGH = 3


class LocationSource(IntEnum):
    OTHER = 1
    GPS = 2
    NETWORK = 3


class GstinLookupOutcome(IntEnum):
    SUCCESS = 1
    RATE_LIMITED = 2
    NOT_CONFIGURED = 3
    PROVIDER_UNREACHABLE = 4
    PROVIDER_REJECTED = 5
    INTERNAL_ERROR = 6
