from typing import Any, List, Tuple
from pydantic import BaseModel, Field

from app.src.constants import (
    COMPANY_STATE_CODE,
    RECEIVABLE_AGING,
    PAYABLE_AGING,
    OVERDUE_THRESHOLD_DAYS,
    LOCATION_RETENTION_DAYS,
    LOCATION_KEEP_EVERY_NTH,
    LOCATION_DELETE_BATCH_SIZE,
    GSTIN_RATE_LIMIT,
    GSTIN_RATE_WINDOW,
)


class RequestInfo(BaseModel):
    method: str
    path: str
    app_id: int


class HealthStatus(BaseModel):
    status: str
    version: str


class ErrorResponse(BaseModel):
    detail: Any


class TenantConfig(BaseModel):
    """
    Request scoped business rule parameters.

    Built once per request by `getters.tenantConfig` and passed explicitly
    into the rule functions instead of being looked up globally.
    """

    seller_state_code: str = COMPANY_STATE_CODE
    receivable_aging: List[Tuple[int, str]] = Field(default_factory=lambda: list(RECEIVABLE_AGING))
    payable_aging: List[Tuple[int, str]] = Field(default_factory=lambda: list(PAYABLE_AGING))
    overdue_threshold_days: int = OVERDUE_THRESHOLD_DAYS
    retention_days: int = LOCATION_RETENTION_DAYS
    keep_every_nth: int = Field(default=LOCATION_KEEP_EVERY_NTH, gt=0)
    delete_batch_size: int = Field(default=LOCATION_DELETE_BATCH_SIZE, gt=0)
    gstin_rate_limit: int = GSTIN_RATE_LIMIT
    gstin_rate_window: int = GSTIN_RATE_WINDOW
