"""
SQLAlchemy repositories.

Built on the synchronous Session the API layer already manages. Each
coroutine runs its queries in the threadpool so the event loop is
never blocked on the database. The caller owns the unit of work and
decides when to commit or roll back.

Conditional updates are a single UPDATE ... WHERE id = :id AND
version = :v AND status IN (...), so two writers racing on one row
cannot both win.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from revenue_ledger.models.subscription import SubscriptionRecord
from revenue_ledger.models.transaction import TransactionRecord
from revenue_ledger.schemas.subscription import Subscription
from revenue_ledger.schemas.transaction import GatewayInfo, Transaction

logger = logging.getLogger(__name__)

# Transaction fields stored as JSON documents
_JSON_FIELDS = {"commission", "hold", "splits", "webhook", "metadata"}


def _utc(value: Any) -> Any:
    """Store and return datetimes as UTC. SQLite drops the offset."""
    if not isinstance(value, datetime):
        return value
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _json_value(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_json_value(item) for item in value]
    return value


def _transaction_columns(changes: dict[str, Any]) -> dict[str, Any]:
    """Translate entity field changes to column values."""
    columns: dict[str, Any] = {}
    for field, value in changes.items():
        if field in ("id", "version"):
            continue
        if field == "gateway":
            gateway = GatewayInfo.model_validate(value) if value else None
            columns["gateway_provider"] = gateway.provider if gateway else None
            columns["gateway_session_id"] = gateway.session_id if gateway else None
            columns["gateway_payment_intent_id"] = (
                gateway.payment_intent_id if gateway else None
            )
        elif field == "metadata":
            columns["metadata_"] = value or {}
        elif field in _JSON_FIELDS:
            columns[field] = _json_value(value)
        else:
            columns[field] = _utc(value)
    return columns


def _transaction_to_record(tx: Transaction) -> TransactionRecord:
    fields = {name: getattr(tx, name) for name in Transaction.model_fields}
    fields["created_at"] = tx.created_at or datetime.now(timezone.utc)
    return TransactionRecord(
        id=tx.id, version=tx.version, **_transaction_columns(fields)
    )


def _record_to_transaction(record: TransactionRecord) -> Transaction:
    gateway = None
    if record.gateway_provider:
        gateway = GatewayInfo(
            provider=record.gateway_provider,
            session_id=record.gateway_session_id,
            payment_intent_id=record.gateway_payment_intent_id,
        )
    return Transaction(
        id=record.id,
        idempotency_key=record.idempotency_key,
        organization_id=record.organization_id,
        customer_id=record.customer_id,
        direction=record.direction,
        category=record.category,
        status=record.status,
        amount=record.amount,
        currency=record.currency,
        method=record.method,
        gateway=gateway,
        commission=record.commission,
        hold=record.hold,
        splits=record.splits or [],
        refunded_amount=record.refunded_amount,
        refunded_at=_utc(record.refunded_at),
        reference_id=record.reference_id,
        reference_model=record.reference_model,
        related_transaction_id=record.related_transaction_id,
        verified_at=_utc(record.verified_at),
        verified_by=record.verified_by,
        webhook=record.webhook,
        metadata=record.metadata_ or {},
        version=record.version,
        created_at=_utc(record.created_at),
    )


def _guarded_update(model, record_id, columns, expected_status, expected_version):
    stmt = (
        update(model)
        .where(model.id == record_id)
        .values(**columns, version=model.version + 1)
        .execution_options(synchronize_session=False)
    )
    if expected_status is not None:
        stmt = stmt.where(model.status.in_(list(expected_status)))
    if expected_version is not None:
        stmt = stmt.where(model.version == expected_version)
    return stmt


def _filtered(stmt, model, filters):
    for field, expected in (filters or {}).items():
        column = getattr(model, field)
        if isinstance(expected, (list, tuple, set, frozenset)):
            stmt = stmt.where(column.in_(list(expected)))
        else:
            stmt = stmt.where(column == expected)
    return stmt


def _search(db, model, filters, limit, offset):
    stmt = (
        _filtered(select(model), model, filters)
        .order_by(model.created_at.desc(), model.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return db.execute(stmt).scalars().all()


def _count(db, model, filters):
    stmt = _filtered(select(func.count()).select_from(model), model, filters)
    return db.execute(stmt).scalar_one()


class SqlTransactionRepository:

    def __init__(self, db: Session):
        self.db = db

    async def find_by_id(self, transaction_id):
        return await run_in_threadpool(self._find_by_id, transaction_id)

    async def find_by_gateway_id(self, *, session_id=None, payment_intent_id=None):
        return await run_in_threadpool(
            self._find_by_gateway_id, session_id, payment_intent_id
        )

    async def find_by_idempotency_key(self, key):
        return await run_in_threadpool(self._find_by_idempotency_key, key)

    async def find_related(self, transaction_id):
        return await run_in_threadpool(self._find_related, transaction_id)

    async def search(self, filters=None, *, limit=50, offset=0):
        records = await run_in_threadpool(
            _search, self.db, TransactionRecord, filters, limit, offset
        )
        return [_record_to_transaction(r) for r in records]

    async def count(self, filters=None):
        return await run_in_threadpool(_count, self.db, TransactionRecord, filters)

    async def create(self, transaction):
        return await run_in_threadpool(self._create, transaction)

    async def conditional_update(
        self, transaction_id, changes, *, expected_status=None, expected_version=None
    ):
        return await run_in_threadpool(
            self._conditional_update,
            transaction_id,
            changes,
            expected_status,
            expected_version,
        )

    def _find_by_id(self, transaction_id):
        record = self.db.get(TransactionRecord, transaction_id)
        return _record_to_transaction(record) if record else None

    def _find_by_gateway_id(self, session_id, payment_intent_id):
        if session_id:
            condition = TransactionRecord.gateway_session_id == session_id
        elif payment_intent_id:
            condition = TransactionRecord.gateway_payment_intent_id == payment_intent_id
        else:
            return None
        record = self.db.execute(
            select(TransactionRecord).where(condition).limit(1)
        ).scalar_one_or_none()
        return _record_to_transaction(record) if record else None

    def _find_by_idempotency_key(self, key):
        record = self.db.execute(
            select(TransactionRecord).where(
                TransactionRecord.idempotency_key == key
            )
        ).scalar_one_or_none()
        return _record_to_transaction(record) if record else None

    def _find_related(self, transaction_id):
        records = self.db.execute(
            select(TransactionRecord)
            .where(TransactionRecord.related_transaction_id == transaction_id)
            .order_by(TransactionRecord.created_at)
        ).scalars().all()
        return [_record_to_transaction(r) for r in records]

    def _create(self, transaction):
        record = _transaction_to_record(transaction)
        try:
            # Savepoint, so a duplicate key does not poison the outer transaction
            with self.db.begin_nested():
                self.db.add(record)
        except IntegrityError:
            existing = self._find_by_idempotency_key(transaction.idempotency_key)
            if existing is None:
                raise
            logger.info(
                "Idempotency key already used, returning transaction %s",
                existing.id,
            )
            return existing
        return _record_to_transaction(record)

    def _conditional_update(
        self, transaction_id, changes, expected_status, expected_version
    ):
        stmt = _guarded_update(
            TransactionRecord,
            transaction_id,
            _transaction_columns(changes),
            expected_status,
            expected_version,
        )
        result = self.db.execute(stmt)
        if result.rowcount != 1:
            return None
        record = self.db.get(TransactionRecord, transaction_id, populate_existing=True)
        return _record_to_transaction(record)


def _subscription_columns(changes: dict[str, Any]) -> dict[str, Any]:
    columns = {
        k: _utc(v) for k, v in changes.items() if k not in ("id", "version", "metadata")
    }
    if "metadata" in changes:
        columns["metadata_"] = changes["metadata"] or {}
    return columns


def _record_to_subscription(record: SubscriptionRecord) -> Subscription:
    fields = {
        name: _utc(getattr(record, name))
        for name in Subscription.model_fields
        if name != "metadata"
    }
    return Subscription(**fields, metadata=record.metadata_ or {})


class SqlSubscriptionRepository:

    def __init__(self, db: Session):
        self.db = db

    async def find_by_id(self, subscription_id):
        return await run_in_threadpool(self._find_by_id, subscription_id)

    async def find_by_idempotency_key(self, key):
        return await run_in_threadpool(self._find_by_idempotency_key, key)

    async def search(self, filters=None, *, limit=50, offset=0):
        records = await run_in_threadpool(
            _search, self.db, SubscriptionRecord, filters, limit, offset
        )
        return [_record_to_subscription(r) for r in records]

    async def count(self, filters=None):
        return await run_in_threadpool(_count, self.db, SubscriptionRecord, filters)

    async def create(self, subscription):
        return await run_in_threadpool(self._create, subscription)

    async def conditional_update(
        self, subscription_id, changes, *, expected_status=None, expected_version=None
    ):
        return await run_in_threadpool(
            self._conditional_update,
            subscription_id,
            changes,
            expected_status,
            expected_version,
        )

    def _find_by_id(self, subscription_id):
        record = self.db.get(SubscriptionRecord, subscription_id)
        return _record_to_subscription(record) if record else None

    def _find_by_idempotency_key(self, key):
        if not key:
            return None
        record = self.db.execute(
            select(SubscriptionRecord).where(
                SubscriptionRecord.idempotency_key == key
            )
        ).scalar_one_or_none()
        return _record_to_subscription(record) if record else None

    def _create(self, subscription):
        fields = {name: getattr(subscription, name) for name in Subscription.model_fields}
        fields["created_at"] = subscription.created_at or datetime.now(timezone.utc)
        record = SubscriptionRecord(
            id=subscription.id,
            version=subscription.version,
            **_subscription_columns(fields),
        )
        try:
            with self.db.begin_nested():
                self.db.add(record)
        except IntegrityError:
            existing = self._find_by_idempotency_key(subscription.idempotency_key)
            if existing is None:
                raise
            logger.info(
                "Idempotency key already used, returning subscription %s",
                existing.id,
            )
            return existing
        return _record_to_subscription(record)

    def _conditional_update(
        self, subscription_id, changes, expected_status, expected_version
    ):
        stmt = _guarded_update(
            SubscriptionRecord,
            subscription_id,
            _subscription_columns(changes),
            expected_status,
            expected_version,
        )
        result = self.db.execute(stmt)
        if result.rowcount != 1:
            return None
        record = self.db.get(
            SubscriptionRecord, subscription_id, populate_existing=True
        )
        return _record_to_subscription(record)
