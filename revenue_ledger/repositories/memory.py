"""
In-memory repositories.

Single event loop only: no method awaits between its read and its
write, so each call is atomic with respect to other coroutines.
Entities are copied on the way in and out, so callers never share
state with the store.
"""

from datetime import datetime, timezone

from revenue_ledger.schemas.subscription import Subscription
from revenue_ledger.schemas.transaction import Transaction


def _guards_hold(entity, expected_status, expected_version) -> bool:
    if expected_status is not None and entity.status not in expected_status:
        return False
    if expected_version is not None and entity.version != expected_version:
        return False
    return True


def _matches(entity, filters) -> bool:
    for field, expected in (filters or {}).items():
        value = getattr(entity, field)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


def _page(rows, filters, limit, offset):
    matched = [row for row in rows if _matches(row, filters)]
    matched.sort(key=lambda row: (row.created_at, row.id), reverse=True)
    return [row.model_copy(deep=True) for row in matched[offset:offset + limit]]


class InMemoryTransactionRepository:

    def __init__(self):
        self._rows: dict[str, Transaction] = {}

    async def find_by_id(self, transaction_id):
        row = self._rows.get(transaction_id)
        return row.model_copy(deep=True) if row else None

    async def find_by_gateway_id(self, *, session_id=None, payment_intent_id=None):
        if not session_id and not payment_intent_id:
            return None
        for row in self._rows.values():
            if row.gateway is None:
                continue
            if session_id and row.gateway.session_id == session_id:
                return row.model_copy(deep=True)
            if payment_intent_id and row.gateway.payment_intent_id == payment_intent_id:
                return row.model_copy(deep=True)
        return None

    async def find_by_idempotency_key(self, key):
        for row in self._rows.values():
            if row.idempotency_key == key:
                return row.model_copy(deep=True)
        return None

    async def find_related(self, transaction_id):
        return [
            row.model_copy(deep=True)
            for row in self._rows.values()
            if row.related_transaction_id == transaction_id
        ]

    async def search(self, filters=None, *, limit=50, offset=0):
        return _page(self._rows.values(), filters, limit, offset)

    async def count(self, filters=None):
        return sum(1 for row in self._rows.values() if _matches(row, filters))

    async def create(self, transaction):
        existing = await self.find_by_idempotency_key(transaction.idempotency_key)
        if existing is not None:
            return existing
        stored = transaction.model_copy(deep=True)
        if stored.created_at is None:
            stored.created_at = datetime.now(timezone.utc)
        self._rows[stored.id] = stored
        return stored.model_copy(deep=True)

    async def conditional_update(
        self, transaction_id, changes, *, expected_status=None, expected_version=None
    ):
        row = self._rows.get(transaction_id)
        if row is None or not _guards_hold(row, expected_status, expected_version):
            return None
        updated = row.model_copy(
            update={**changes, "version": row.version + 1}, deep=True
        )
        self._rows[transaction_id] = updated
        return updated.model_copy(deep=True)

    def all(self) -> list[Transaction]:
        return [row.model_copy(deep=True) for row in self._rows.values()]


class InMemorySubscriptionRepository:

    def __init__(self):
        self._rows: dict[str, Subscription] = {}

    async def find_by_id(self, subscription_id):
        row = self._rows.get(subscription_id)
        return row.model_copy(deep=True) if row else None

    async def find_by_idempotency_key(self, key):
        for row in self._rows.values():
            if key and row.idempotency_key == key:
                return row.model_copy(deep=True)
        return None

    async def search(self, filters=None, *, limit=50, offset=0):
        return _page(self._rows.values(), filters, limit, offset)

    async def count(self, filters=None):
        return sum(1 for row in self._rows.values() if _matches(row, filters))

    async def create(self, subscription):
        existing = await self.find_by_idempotency_key(subscription.idempotency_key)
        if existing is not None:
            return existing
        stored = subscription.model_copy(deep=True)
        if stored.created_at is None:
            stored.created_at = datetime.now(timezone.utc)
        self._rows[stored.id] = stored
        return stored.model_copy(deep=True)

    async def conditional_update(
        self, subscription_id, changes, *, expected_status=None, expected_version=None
    ):
        row = self._rows.get(subscription_id)
        if row is None or not _guards_hold(row, expected_status, expected_version):
            return None
        updated = row.model_copy(
            update={**changes, "version": row.version + 1}, deep=True
        )
        self._rows[subscription_id] = updated
        return updated.model_copy(deep=True)

    def all(self) -> list[Subscription]:
        return [row.model_copy(deep=True) for row in self._rows.values()]
