"""
Revenue Ledger FastAPI application.

This is the entry point for the application.
All routers are registered here.
"""

from fastapi import FastAPI

from revenue_ledger.config import get_revenue_config, get_settings
from revenue_ledger.logging_config import configure_logging
from revenue_ledger.notifier import HookNotifier
from revenue_ledger.providers.manual import ManualProvider
from revenue_ledger.api.health import router as health_router
from revenue_ledger.api.transactions import router as transactions_router
from revenue_ledger.api.transactions import webhook_router
from revenue_ledger.api.escrow import router as escrow_router
from revenue_ledger.api.subscriptions import router as subscriptions_router

settings = get_settings()
configure_logging(settings.LOG_LEVEL)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Transaction ledger and payment orchestration for subscription billing",
)

# Shared across requests; handlers subscribe on app.state.notifier
app.state.providers = {"manual": ManualProvider()}
app.state.notifier = HookNotifier()
app.state.revenue_config = get_revenue_config()

# Register routers
app.include_router(health_router)
app.include_router(transactions_router)
app.include_router(webhook_router)
app.include_router(escrow_router)
app.include_router(subscriptions_router)
