"""
Transaction table.

One row per ledger entry: charges, refunds, split payouts and escrow
releases. Embedded documents (commission, hold, splits, webhook) are
JSON columns so one conditional UPDATE changes them together with the
status. Gateway identifiers are real columns because lookups go
through them.
"""

from datetime import datetime

from sqlalchemy import (
    BigInteger, DateTime, ForeignKey, Integer, JSON, String,
)
from sqlalchemy.orm import Mapped, mapped_column

from revenue_ledger.models.base import Base


class TransactionRecord(Base):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    idempotency_key: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False, index=True
    )
    organization_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, index=True
    )
    customer_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, index=True
    )
    direction: Mapped[str] = mapped_column(String(16), nullable=False)
    category: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, index=True
    )
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    method: Mapped[str] = mapped_column(String(32), nullable=False)

    gateway_provider: Mapped[str | None] = mapped_column(
        String(32), nullable=True
    )
    gateway_session_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )
    gateway_payment_intent_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )

    commission: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    hold: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    splits: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    refunded_amount: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )
    refunded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    reference_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True
    )
    reference_model: Mapped[str | None] = mapped_column(
        String(64), nullable=True
    )
    related_transaction_id: Mapped[str | None] = mapped_column(
        ForeignKey("transactions.id"), nullable=True, index=True
    )
    verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    verified_by: Mapped[str | None] = mapped_column(
        String(64), nullable=True
    )
    webhook: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    # "metadata" is reserved on declarative classes
    metadata_: Mapped[dict] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<TransactionRecord {self.id} {self.direction} "
            f"{self.amount} {self.currency} ({self.status})>"
        )
