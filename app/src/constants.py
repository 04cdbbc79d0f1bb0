"""
Application configuration and constants for BizDesk API Server.

This module centralizes environment-based configuration, business rule
parameters, regular expressions, provider settings and other constants.

Configuration values can be overridden via environment variables.
"""

from os import environ
from zoneinfo import ZoneInfo


# ---------------------------------------------------------------------------
# Application metadata
# ---------------------------------------------------------------------------
API_TITLE = "BizDesk API Server"
API_VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# PostgreSQL configuration
# ---------------------------------------------------------------------------
PSQL_DB_DRIVER = environ.get("PSQL_DB_DRIVER", "postgresql")
PSQL_DB_USERNAME = environ.get("PSQL_DB_USERNAME", "postgres")
PSQL_DB_PORT = environ.get("PSQL_DB_PORT", "5432")
PSQL_DB_PASSWORD = environ.get("PSQL_DB_PASSWORD", "password")
PSQL_DB_HOST = environ.get("PSQL_DB_HOST", "localhost")
PSQL_DB_NAME = environ.get("PSQL_DB_NAME", "postgres")


# ---------------------------------------------------------------------------
# OpenObserve configuration
# ---------------------------------------------------------------------------
OPENOBSERVE_PROTOCOL = environ.get("OPENOBSERVE_PROTOCOL", "http")
OPENOBSERVE_HOST = environ.get("OPENOBSERVE_HOST", "localhost")
OPENOBSERVE_PORT = environ.get("OPENOBSERVE_PORT", "5080")
OPENOBSERVE_USERNAME = environ.get("OPENOBSERVE_USERNAME", "admin@bizdesk.in")
OPENOBSERVE_PASSWORD = environ.get("OPENOBSERVE_PASSWORD", "password")
OPENOBSERVE_ORG = environ.get("OPENOBSERVE_ORG", "bizdesk")
OPENOBSERVE_STREAM = environ.get("OPENOBSERVE_STREAM", "bizdesk-core-server")
OPENOBSERVE_TIMEOUT = 5  # Event shipping timeout (in seconds)


# ---------------------------------------------------------------------------
# Redis configuration
# ---------------------------------------------------------------------------
REDIS_HOST = environ.get("REDIS_HOST", "localhost")
REDIS_PORT = environ.get("REDIS_PORT", "6379")
REDIS_PASSWORD = environ.get("REDIS_PASSWORD", "password")


# ---------------------------------------------------------------------------
# GST verification providers
# ---------------------------------------------------------------------------
GST_API_BASE_URL = environ.get("GST_API_BASE_URL")
GST_API_KEY = environ.get("GST_API_KEY")
APPYFLOW_API_URL = environ.get("APPYFLOW_API_URL", "https://appyflow.in/api/verifyGST")
APPYFLOW_KEY_SECRET = environ.get("APPYFLOW_KEY_SECRET")
GST_PROVIDER_TIMEOUT = 10  # Provider request timeout (in seconds)


# ---------------------------------------------------------------------------
# Company / tenant defaults
# ---------------------------------------------------------------------------
COMPANY_STATE_CODE = environ.get("COMPANY_STATE_CODE", "36")  # Telangana
ALLOWED_EMAIL_DOMAINS = environ.get("ALLOWED_EMAIL_DOMAINS", "raizechem.in").split(",")


# ---------------------------------------------------------------------------
# Password hashing (Argon2id)
# ---------------------------------------------------------------------------
ARGON2_TIME_COST = int(environ.get("ARGON2_TIME_COST", "3"))
ARGON2_MEMORY_COST = int(environ.get("ARGON2_MEMORY_COST", "65536"))  # In KiB
ARGON2_PARALLELISM = int(environ.get("ARGON2_PARALLELISM", "4"))
BOOTSTRAP_ADMIN_PASSWORD = environ.get("BOOTSTRAP_ADMIN_PASSWORD", "password")


# ---------------------------------------------------------------------------
# Resource upper limits
# ---------------------------------------------------------------------------
MAX_TOKEN_VALIDITY = 7 * 24 * 60 * 60  # Token validity (in seconds, 7 days)
GSTIN_RATE_LIMIT = 10  # Lookups per user per window
GSTIN_RATE_WINDOW = 60  # Sliding window (in seconds)
MAX_POINTS_PER_DAY = 600  # Location points per account per day
MAX_ACCURACY_METERS = 100  # Points less accurate than this are rejected


# ---------------------------------------------------------------------------
# Finance rules
# ---------------------------------------------------------------------------
SETTLED_EPSILON = "0.01"  # Outstanding at or below this is treated as paid
OVERDUE_THRESHOLD_DAYS = 120
BASE_AGING_LABEL = "Current"
RECEIVABLE_AGING = [
    (90, "90+ days"),
    (60, "60-90 days"),
    (30, "30-60 days"),
    (0, "0-30 days"),
]
PAYABLE_AGING = [
    (360, "360+ days"),
    (180, "181-360 days"),
    (120, "121-180 days"),
    (90, "91-120 days"),
    (60, "60-90 days"),
    (30, "30-60 days"),
    (0, "0-30 days"),
]


# ---------------------------------------------------------------------------
# Location retention
# ---------------------------------------------------------------------------
LOCATION_RETENTION_DAYS = 30
LOCATION_KEEP_EVERY_NTH = 5  # Keep 1 in 5 points, enough for distance calc
LOCATION_DELETE_BATCH_SIZE = 100


# ---------------------------------------------------------------------------
# Regex constants (input validation)
# ---------------------------------------------------------------------------
REGEX_GSTIN = r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z]{1}[1-9A-Z]{1}Z[0-9A-Z]{1}$"
REGEX_STATE_CODE = r"^[0-9]{2}$"
REGEX_PASSWORD = r"^[a-zA-Z0-9-+,.@_$%&*#!^=/?]*$"


# ---------------------------------------------------------------------------
# Timezone constants
# ---------------------------------------------------------------------------
TMZ_SECONDARY = ZoneInfo("Asia/Kolkata")


# ---------------------------------------------------------------------------
# Redis mutex lock constants
# ---------------------------------------------------------------------------
MUTEX_LOCK_TIMEOUT = 10  # Lock timeout (in seconds)
MUTEX_LOCK_MAX_WAIT_TIME = 60  # Max blocking wait time (in seconds)


# ---------------------------------------------------------------------------
# Module access (role names)
# ---------------------------------------------------------------------------
FINANCE_ROLES = ["admin", "accounts", "sales"]
GSTIN_ROLES = ["admin", "sales", "accounts"]
