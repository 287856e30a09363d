"""
Health check endpoint.

Used by load balancers and monitoring to verify the application is
running, can reach its database, and which payment providers it has
registered.
"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from revenue_ledger.models.base import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request, db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        db_status = "healthy"
    except SQLAlchemyError:
        logger.exception("Database health check failed")
        db_status = "unhealthy"

    providers = getattr(request.app.state, "providers", {})
    return {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "service": "revenue-ledger",
        "database": db_status,
        "providers": sorted(providers),
    }
