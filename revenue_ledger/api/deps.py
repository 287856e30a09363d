"""
Request-scoped wiring shared by the routers.

Each request gets a RevenueLedger over the request's database
session. Providers, notifier and rate configuration live on
app.state and are shared across requests.
"""

from datetime import datetime, timezone

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from revenue_ledger.exceptions import (
    ConfigurationError,
    NotFoundError,
    OperationError,
    ProviderError,
    RevenueError,
    StateError,
    ValidationError,
)
from revenue_ledger.ledger import RevenueLedger
from revenue_ledger.models.base import get_db
from revenue_ledger.repositories.sql import (
    SqlSubscriptionRepository,
    SqlTransactionRepository,
)

# Checked in order; first matching family wins
ERROR_STATUS_CODES = [
    (NotFoundError, 404),
    (ValidationError, 422),
    (StateError, 409),
    (OperationError, 422),
    (ProviderError, 502),
    (ConfigurationError, 500),
]


def get_ledger(request: Request, db: Session = Depends(get_db)) -> RevenueLedger:
    state = request.app.state
    return RevenueLedger(
        transaction_repository=SqlTransactionRepository(db),
        subscription_repository=SqlSubscriptionRepository(db),
        providers=state.providers,
        notifier=state.notifier,
        config=state.revenue_config,
    )


def http_error(error: RevenueError) -> HTTPException:
    status_code = 500
    for family, code in ERROR_STATUS_CODES:
        if isinstance(error, family):
            status_code = code
            break
    return HTTPException(status_code=status_code, detail=error.to_dict())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
