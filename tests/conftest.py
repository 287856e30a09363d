"""
Shared test fixtures.

Service tests run against the in-memory repositories and a scriptable
fake gateway. Repository and API tests use an isolated SQLite
database that is created before and dropped after every test.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from revenue_ledger.config import RevenueConfig
from revenue_ledger.ledger import RevenueLedger
from revenue_ledger.main import app
from revenue_ledger.models.base import Base, get_db
from revenue_ledger.providers.base import (
    PaymentIntent,
    PaymentProvider,
    PaymentResult,
    ProviderCapabilities,
    RefundResult,
    WebhookEvent,
)
from revenue_ledger.providers.manual import ManualProvider
from revenue_ledger.repositories.memory import (
    InMemorySubscriptionRepository,
    InMemoryTransactionRepository,
)


# SQLite, so tests need no database server
TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)

TestSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)

AT = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeProvider(PaymentProvider):
    """
    Gateway double whose behaviour each test scripts.

    Intents get predictable ids: session cs_<n>, payment intent pi_<n>.
    """

    name = "fake"

    def __init__(self):
        self.intent_status = "pending"
        self.with_session = True
        self.intent_error: Exception | None = None
        self.verify_result: PaymentResult | None = None
        self.verify_error: Exception | None = None
        self.status_error: Exception | None = None
        self.refund_error: Exception | None = None
        self.webhook_error: Exception | None = None
        self.capabilities = ProviderCapabilities(
            supports_webhooks=True,
            supports_refunds=True,
            supports_partial_refunds=True,
            requires_manual_verification=False,
        )
        self.intents: dict[str, PaymentIntent] = {}
        self.refunds: list[tuple[str, int, str | None]] = []

    async def create_intent(self, amount, currency, metadata=None):
        if self.intent_error is not None:
            raise self.intent_error
        n = len(self.intents) + 1
        intent = PaymentIntent(
            id=f"pi_{n}",
            provider=self.name,
            status=self.intent_status,
            amount=amount,
            currency=currency,
            session_id=f"cs_{n}" if self.with_session else None,
            payment_intent_id=f"pi_{n}",
            metadata=metadata or {},
        )
        self.intents[intent.id] = intent
        return intent

    async def verify_payment(self, intent_id):
        if self.verify_error is not None:
            raise self.verify_error
        if self.verify_result is not None:
            return self.verify_result
        intent = self.intents[intent_id]
        return PaymentResult(
            id=intent_id,
            provider=self.name,
            status="succeeded",
            amount=intent.amount,
            currency=intent.currency,
        )

    async def get_status(self, intent_id):
        if self.status_error is not None:
            raise self.status_error
        return await self.verify_payment(intent_id)

    async def refund(self, payment_id, amount=None, reason=None):
        if self.refund_error is not None:
            raise self.refund_error
        self.refunds.append((payment_id, amount, reason))
        return RefundResult(
            id=f"re_{len(self.refunds)}",
            provider=self.name,
            status="succeeded",
            amount=amount,
        )

    async def handle_webhook(self, payload, headers=None):
        if self.webhook_error is not None:
            raise self.webhook_error
        return WebhookEvent.model_validate({**payload, "provider": self.name})

    def get_capabilities(self):
        return self.capabilities


class RecordingNotifier:
    """Keeps every emitted event for assertions."""

    def __init__(self):
        self.events = []

    def emit(self, event):
        self.events.append(event)

    def names(self) -> list[str]:
        return [event.name for event in self.events]


@pytest.fixture(autouse=True)
def setup_database():
    """Create all tables before each test, drop them after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Provide a database session for direct repository testing."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def at():
    return AT


@pytest.fixture
def revenue_config():
    return RevenueConfig(
        default_currency="USD",
        commission_rates={
            "purchase": Decimal("0.10"),
            "subscription": Decimal("0.10"),
        },
        gateway_fee_rates={"fake": Decimal("0.018")},
        category_mappings={"course": "course_enrollment"},
    )


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def manual_provider():
    return ManualProvider()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def transaction_repo():
    return InMemoryTransactionRepository()


@pytest.fixture
def subscription_repo():
    return InMemorySubscriptionRepository()


@pytest.fixture
def ledger(
    transaction_repo,
    subscription_repo,
    fake_provider,
    manual_provider,
    notifier,
    revenue_config,
):
    return RevenueLedger(
        transaction_repository=transaction_repo,
        subscription_repository=subscription_repo,
        providers={"fake": fake_provider, "manual": manual_provider},
        notifier=notifier,
        config=revenue_config,
    )


@pytest.fixture
def client(db_session, revenue_config):
    """
    Provide a test client with the test database.

    get_db is overridden so the app uses the test session, and every
    test starts with a fresh manual provider.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.state.providers = {"manual": ManualProvider()}
    app.state.revenue_config = revenue_config
    yield TestClient(app)
    app.dependency_overrides.clear()
