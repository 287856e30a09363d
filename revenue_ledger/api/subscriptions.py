"""
Subscription API endpoints.
"""

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from revenue_ledger.api.deps import get_ledger, http_error, utcnow
from revenue_ledger.exceptions import RevenueError
from revenue_ledger.ledger import RevenueLedger
from revenue_ledger.models.base import get_db
from revenue_ledger.schemas.results import SubscriptionPage, SubscriptionResult
from revenue_ledger.schemas.subscription import (
    Subscription,
    SubscriptionCancel,
    SubscriptionCreate,
    SubscriptionPause,
    SubscriptionRenew,
    SubscriptionResume,
)

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


@router.post("", response_model=SubscriptionResult, status_code=201)
async def create_subscription(
    request: SubscriptionCreate,
    ledger: RevenueLedger = Depends(get_ledger),
    db: Session = Depends(get_db),
):
    try:
        result = await ledger.subscriptions.create(
            request.data,
            plan_key=request.plan_key,
            amount=request.amount,
            at=utcnow(),
            currency=request.currency,
            gateway=request.gateway,
            entity=request.entity,
            metadata=request.metadata,
            idempotency_key=request.idempotency_key,
        )
        await run_in_threadpool(db.commit)
        return result
    except RevenueError as e:
        await run_in_threadpool(db.rollback)
        raise http_error(e)


@router.get("", response_model=SubscriptionPage)
async def list_subscriptions(
    organization_id: str | None = None,
    customer_id: str | None = None,
    status: str | None = None,
    plan_key: str | None = None,
    limit: int = 50,
    offset: int = 0,
    ledger: RevenueLedger = Depends(get_ledger),
):
    filters = {
        "organization_id": organization_id,
        "customer_id": customer_id,
        "status": status,
        "plan_key": plan_key,
    }
    try:
        return await ledger.subscriptions.list(filters, limit=limit, offset=offset)
    except RevenueError as e:
        raise http_error(e)


@router.get("/{subscription_id}", response_model=Subscription)
async def get_subscription(
    subscription_id: str,
    ledger: RevenueLedger = Depends(get_ledger),
):
    try:
        return await ledger.subscriptions.get(subscription_id)
    except RevenueError as e:
        raise http_error(e)


@router.post("/{subscription_id}/activate", response_model=Subscription)
async def activate_subscription(
    subscription_id: str,
    ledger: RevenueLedger = Depends(get_ledger),
    db: Session = Depends(get_db),
):
    try:
        subscription = await ledger.subscriptions.activate(subscription_id, at=utcnow())
        await run_in_threadpool(db.commit)
        return subscription
    except RevenueError as e:
        await run_in_threadpool(db.rollback)
        raise http_error(e)


@router.post("/{subscription_id}/renew", response_model=SubscriptionResult, status_code=201)
async def renew_subscription(
    subscription_id: str,
    request: SubscriptionRenew,
    ledger: RevenueLedger = Depends(get_ledger),
    db: Session = Depends(get_db),
):
    try:
        result = await ledger.subscriptions.renew(
            subscription_id,
            at=utcnow(),
            gateway=request.gateway,
            entity=request.entity,
            metadata=request.metadata,
            idempotency_key=request.idempotency_key,
        )
        await run_in_threadpool(db.commit)
        return result
    except RevenueError as e:
        await run_in_threadpool(db.rollback)
        raise http_error(e)


@router.post("/{subscription_id}/extend", response_model=Subscription)
async def extend_subscription_period(
    subscription_id: str,
    ledger: RevenueLedger = Depends(get_ledger),
    db: Session = Depends(get_db),
):
    """Start the next period once a renewal payment is verified."""
    try:
        subscription = await ledger.subscriptions.extend_period(
            subscription_id, at=utcnow()
        )
        await run_in_threadpool(db.commit)
        return subscription
    except RevenueError as e:
        await run_in_threadpool(db.rollback)
        raise http_error(e)


@router.post("/{subscription_id}/pause", response_model=Subscription)
async def pause_subscription(
    subscription_id: str,
    request: SubscriptionPause,
    ledger: RevenueLedger = Depends(get_ledger),
    db: Session = Depends(get_db),
):
    try:
        subscription = await ledger.subscriptions.pause(
            subscription_id, at=utcnow(), reason=request.reason
        )
        await run_in_threadpool(db.commit)
        return subscription
    except RevenueError as e:
        await run_in_threadpool(db.rollback)
        raise http_error(e)


@router.post("/{subscription_id}/resume", response_model=Subscription)
async def resume_subscription(
    subscription_id: str,
    request: SubscriptionResume,
    ledger: RevenueLedger = Depends(get_ledger),
    db: Session = Depends(get_db),
):
    try:
        subscription = await ledger.subscriptions.resume(
            subscription_id, at=utcnow(), extend_period=request.extend_period
        )
        await run_in_threadpool(db.commit)
        return subscription
    except RevenueError as e:
        await run_in_threadpool(db.rollback)
        raise http_error(e)


@router.post("/{subscription_id}/cancel", response_model=Subscription)
async def cancel_subscription(
    subscription_id: str,
    request: SubscriptionCancel,
    ledger: RevenueLedger = Depends(get_ledger),
    db: Session = Depends(get_db),
):
    try:
        subscription = await ledger.subscriptions.cancel(
            subscription_id,
            at=utcnow(),
            immediate=request.immediate,
            reason=request.reason,
        )
        await run_in_threadpool(db.commit)
        return subscription
    except RevenueError as e:
        await run_in_threadpool(db.rollback)
        raise http_error(e)


@router.post("/{subscription_id}/expire", response_model=Subscription)
async def expire_subscription(
    subscription_id: str,
    ledger: RevenueLedger = Depends(get_ledger),
    db: Session = Depends(get_db),
):
    try:
        subscription = await ledger.subscriptions.expire(subscription_id, at=utcnow())
        await run_in_threadpool(db.commit)
        return subscription
    except RevenueError as e:
        await run_in_threadpool(db.rollback)
        raise http_error(e)
