"""
Transaction and payment API endpoints.

The routers are thin: they translate HTTP to ledger calls, commit on
success and roll back on any ledger error.
"""

from fastapi import APIRouter, Body, Depends, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from revenue_ledger.api.deps import get_ledger, http_error, utcnow
from revenue_ledger.exceptions import RevenueError
from revenue_ledger.ledger import RevenueLedger
from revenue_ledger.models.base import get_db
from revenue_ledger.schemas.results import (
    CreateTransactionResult,
    PaymentStatusResult,
    RefundOutcome,
    TransactionPage,
    VerifyResult,
    WebhookOutcome,
)
from revenue_ledger.schemas.transaction import (
    ApproveRequest,
    CreatePaymentRequest,
    RefundRequest,
    Transaction,
    VerifyRequest,
)

router = APIRouter(prefix="/transactions", tags=["Transactions"])
webhook_router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("", response_model=CreateTransactionResult, status_code=201)
async def create_transaction(
    request: CreatePaymentRequest,
    ledger: RevenueLedger = Depends(get_ledger),
    db: Session = Depends(get_db),
):
    """Create a charge and its payment intent. Zero amounts create nothing."""
    try:
        result = await ledger.transactions.create(
            request.data,
            amount=request.amount,
            at=utcnow(),
            currency=request.currency,
            gateway=request.gateway,
            entity=request.entity,
            monetization_type=request.monetization_type,
            metadata=request.metadata,
            idempotency_key=request.idempotency_key,
        )
        await run_in_threadpool(db.commit)
        return result
    except RevenueError as e:
        await run_in_threadpool(db.rollback)
        raise http_error(e)


@router.get("", response_model=TransactionPage)
async def list_transactions(
    organization_id: str | None = None,
    customer_id: str | None = None,
    status: str | None = None,
    category: str | None = None,
    direction: str | None = None,
    reference_id: str | None = None,
    reference_model: str | None = None,
    limit: int = 50,
    offset: int = 0,
    ledger: RevenueLedger = Depends(get_ledger),
):
    """Newest first, filtered on any combination of the query fields."""
    filters = {
        "organization_id": organization_id,
        "customer_id": customer_id,
        "status": status,
        "category": category,
        "direction": direction,
        "reference_id": reference_id,
        "reference_model": reference_model,
    }
    try:
        return await ledger.transactions.list(filters, limit=limit, offset=offset)
    except RevenueError as e:
        raise http_error(e)


@router.patch("/{transaction_id}", response_model=Transaction)
async def update_transaction(
    transaction_id: str,
    changes: dict = Body(...),
    ledger: RevenueLedger = Depends(get_ledger),
    db: Session = Depends(get_db),
):
    """Edit customer_id and method while pending, metadata at any time."""
    try:
        result = await ledger.transactions.update(transaction_id, changes)
        await run_in_threadpool(db.commit)
        return result
    except RevenueError as e:
        await run_in_threadpool(db.rollback)
        raise http_error(e)


@router.get("/{transaction_id}", response_model=Transaction)
async def get_transaction(
    transaction_id: str,
    ledger: RevenueLedger = Depends(get_ledger),
):
    try:
        return await ledger.transactions.get(transaction_id)
    except RevenueError as e:
        raise http_error(e)


@router.get("/{transaction_id}/related", response_model=list[Transaction])
async def list_related_transactions(
    transaction_id: str,
    ledger: RevenueLedger = Depends(get_ledger),
):
    """Refunds, split payouts and releases recorded against a transaction."""
    try:
        return await ledger.transactions.list_related(transaction_id)
    except RevenueError as e:
        raise http_error(e)


@router.post("/{reference}/verify", response_model=VerifyResult)
async def verify_payment(
    reference: str,
    request: VerifyRequest,
    ledger: RevenueLedger = Depends(get_ledger),
    db: Session = Depends(get_db),
):
    try:
        result = await ledger.payments.verify(
            reference, at=utcnow(), verified_by=request.verified_by
        )
        await run_in_threadpool(db.commit)
        return result
    except RevenueError as e:
        await run_in_threadpool(db.rollback)
        raise http_error(e)


@router.post("/{reference}/approve", response_model=VerifyResult)
async def approve_payment(
    reference: str,
    request: ApproveRequest,
    ledger: RevenueLedger = Depends(get_ledger),
    db: Session = Depends(get_db),
):
    """Confirm an offline payment after checking its proof."""
    try:
        result = await ledger.payments.approve(
            reference,
            at=utcnow(),
            approved_by=request.approved_by,
            paid_at=request.paid_at,
        )
        await run_in_threadpool(db.commit)
        return result
    except RevenueError as e:
        await run_in_threadpool(db.rollback)
        raise http_error(e)


@router.get("/{reference}/status", response_model=PaymentStatusResult)
async def get_payment_status(
    reference: str,
    ledger: RevenueLedger = Depends(get_ledger),
):
    try:
        return await ledger.payments.get_status(reference)
    except RevenueError as e:
        raise http_error(e)


@router.post("/{reference}/refund", response_model=RefundOutcome, status_code=201)
async def refund_payment(
    reference: str,
    request: RefundRequest,
    ledger: RevenueLedger = Depends(get_ledger),
    db: Session = Depends(get_db),
):
    """Refund all or part of a settled charge."""
    try:
        result = await ledger.payments.refund(
            reference, at=utcnow(), amount=request.amount, reason=request.reason
        )
        await run_in_threadpool(db.commit)
        return result
    except RevenueError as e:
        await run_in_threadpool(db.rollback)
        raise http_error(e)


@webhook_router.post("/{provider_name}", response_model=WebhookOutcome)
async def receive_webhook(
    provider_name: str,
    http_request: Request,
    payload: dict = Body(...),
    ledger: RevenueLedger = Depends(get_ledger),
    db: Session = Depends(get_db),
):
    try:
        result = await ledger.payments.handle_webhook(
            provider_name,
            payload,
            dict(http_request.headers),
            at=utcnow(),
        )
        await run_in_threadpool(db.commit)
        return result
    except RevenueError as e:
        await run_in_threadpool(db.rollback)
        raise http_error(e)
