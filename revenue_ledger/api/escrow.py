"""
Escrow API endpoints.
"""

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from revenue_ledger.api.deps import get_ledger, http_error, utcnow
from revenue_ledger.exceptions import RevenueError
from revenue_ledger.ledger import RevenueLedger
from revenue_ledger.models.base import get_db
from revenue_ledger.schemas.escrow import (
    CancelHoldRequest,
    HoldRequest,
    ReleaseRequest,
    SplitRequest,
)
from revenue_ledger.schemas.results import EscrowStatus, ReleaseOutcome, SplitOutcome
from revenue_ledger.schemas.transaction import Transaction

router = APIRouter(prefix="/escrow", tags=["Escrow"])


@router.post("/{transaction_id}/hold", response_model=Transaction)
async def hold_funds(
    transaction_id: str,
    request: HoldRequest,
    ledger: RevenueLedger = Depends(get_ledger),
    db: Session = Depends(get_db),
):
    try:
        transaction = await ledger.escrow.hold(
            transaction_id,
            at=utcnow(),
            reason=request.reason,
            hold_until=request.hold_until,
        )
        await run_in_threadpool(db.commit)
        return transaction
    except RevenueError as e:
        await run_in_threadpool(db.rollback)
        raise http_error(e)


@router.post("/{transaction_id}/split", response_model=SplitOutcome)
async def split_funds(
    transaction_id: str,
    request: SplitRequest,
    ledger: RevenueLedger = Depends(get_ledger),
    db: Session = Depends(get_db),
):
    try:
        result = await ledger.escrow.split(transaction_id, request.rules, at=utcnow())
        await run_in_threadpool(db.commit)
        return result
    except RevenueError as e:
        await run_in_threadpool(db.rollback)
        raise http_error(e)


@router.post("/{transaction_id}/release", response_model=ReleaseOutcome)
async def release_funds(
    transaction_id: str,
    request: ReleaseRequest,
    ledger: RevenueLedger = Depends(get_ledger),
    db: Session = Depends(get_db),
):
    try:
        result = await ledger.escrow.release(
            transaction_id,
            recipient_id=request.recipient_id,
            recipient_type=request.recipient_type,
            amount=request.amount,
            reason=request.reason,
            released_by=request.released_by,
            create_transaction=request.create_transaction,
            at=utcnow(),
        )
        await run_in_threadpool(db.commit)
        return result
    except RevenueError as e:
        await run_in_threadpool(db.rollback)
        raise http_error(e)


@router.post("/{transaction_id}/cancel", response_model=Transaction)
async def cancel_hold(
    transaction_id: str,
    request: CancelHoldRequest,
    ledger: RevenueLedger = Depends(get_ledger),
    db: Session = Depends(get_db),
):
    try:
        transaction = await ledger.escrow.cancel(
            transaction_id, at=utcnow(), reason=request.reason
        )
        await run_in_threadpool(db.commit)
        return transaction
    except RevenueError as e:
        await run_in_threadpool(db.rollback)
        raise http_error(e)


@router.get("/{transaction_id}", response_model=EscrowStatus)
async def get_escrow_status(
    transaction_id: str,
    ledger: RevenueLedger = Depends(get_ledger),
):
    try:
        return await ledger.escrow.get_status(transaction_id)
    except RevenueError as e:
        raise http_error(e)
