"""
Pydantic schemas for escrow requests.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from revenue_ledger.models.enums import HoldReason, ReleaseReason
from revenue_ledger.schemas.transaction import SplitRule


class HoldRequest(BaseModel):
    reason: str = HoldReason.PAYMENT_VERIFICATION.value
    hold_until: datetime | None = None


class SplitRequest(BaseModel):
    rules: list[SplitRule] = Field(min_length=1)


class ReleaseRequest(BaseModel):
    recipient_id: str = Field(min_length=1)
    recipient_type: str = "organization"
    amount: int | None = Field(default=None, gt=0)
    reason: str = ReleaseReason.PAYMENT_VERIFIED.value
    released_by: str | None = None
    create_transaction: bool = True


class CancelHoldRequest(BaseModel):
    reason: str = Field(default="Hold cancelled", max_length=255)
