"""
Wiring for the ledger services.

RevenueLedger builds the four services around one set of
collaborators. Nothing is looked up at runtime: storage, providers,
notifier and configuration are all passed in.
"""

from revenue_ledger.config import RevenueConfig
from revenue_ledger.notifier import Notifier
from revenue_ledger.providers.base import PaymentProvider
from revenue_ledger.repositories.base import (
    SubscriptionRepository,
    TransactionRepository,
)
from revenue_ledger.services import (
    EscrowService,
    PaymentService,
    SubscriptionService,
    TransactionService,
)


class RevenueLedger:

    def __init__(
        self,
        *,
        transaction_repository: TransactionRepository,
        subscription_repository: SubscriptionRepository,
        providers: dict[str, PaymentProvider],
        notifier: Notifier | None = None,
        config: RevenueConfig | None = None,
    ):
        shared = dict(
            transactions=transaction_repository,
            providers=providers,
            notifier=notifier,
            config=config,
        )
        self.transactions = TransactionService(**shared)
        self.payments = PaymentService(**shared)
        self.escrow = EscrowService(**shared)
        self.subscriptions = SubscriptionService(
            subscription_repository,
            self.transactions,
            notifier=notifier,
        )
        self.providers = providers
        self.config = self.transactions.config
