"""
API Endpoint URL Constants

Relative paths of every route, shared by the routers and the test suite.
Each path is served under the prefix of the sub-application it belongs to:
`/functions`, `/finance` or `/fieldops`.
"""

# -------------------------------
# Functions
# -------------------------------
URL_GSTIN_LOOKUP = "/gstin/lookup"
URL_GSTIN_VERIFY = "/gstin/verify"
URL_ACCOUNT = "/account"
URL_LOCATION_CLEANUP = "/location/cleanup"

# -------------------------------
# Finance
# -------------------------------
URL_LEDGER = "/ledger"
URL_SUPPLIER_LEDGER = "/supplier-ledger"
URL_OUTSTANDING_RECEIVABLE = "/outstanding/receivable"
URL_OUTSTANDING_PAYABLE = "/outstanding/payable"
URL_OUTSTANDING_OVERDUE = "/outstanding/overdue"
URL_GST_COMPUTE = "/gst/compute"

# -------------------------------
# Field operations
# -------------------------------
URL_DUTY_START = "/duty/start"
URL_DUTY_STOP = "/duty/stop"
URL_DUTY_LOCATION = "/duty/location"
