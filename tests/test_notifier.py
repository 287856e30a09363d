"""
Tests for HookNotifier delivery.
"""

import asyncio
import logging

from revenue_ledger.events import EscrowHeld, PaymentFailed
from revenue_ledger.notifier import HookNotifier, NullNotifier
from revenue_ledger.schemas.transaction import Transaction


def make_event():
    transaction = Transaction(
        idempotency_key="txn_test",
        category="product_purchase",
        organization_id="org_1",
        amount=1000,
        currency="USD",
    )
    return EscrowHeld(transaction=transaction, held_amount=1000, reason="manual_review")


class TestHookNotifier:

    def test_sync_and_async_handlers_receive_event(self):
        notifier = HookNotifier()
        received = []

        def on_sync(event):
            received.append(("sync", event.name))

        async def on_async(event):
            await asyncio.sleep(0)
            received.append(("async", event.name))

        notifier.subscribe(EscrowHeld, on_sync)
        notifier.subscribe(EscrowHeld, on_async)

        async def scenario():
            notifier.emit(make_event())
            # Nothing runs until the caller yields
            assert received == []
            await notifier.drain()

        asyncio.run(scenario())

        assert sorted(received) == [("async", "escrow.held"), ("sync", "escrow.held")]

    def test_failing_handler_is_logged_not_raised(self, caplog):
        notifier = HookNotifier()
        received = []

        def broken(event):
            raise RuntimeError("handler bug")

        notifier.subscribe(EscrowHeld, broken)
        notifier.subscribe(EscrowHeld, received.append)

        async def scenario():
            notifier.emit(make_event())
            await notifier.drain()

        with caplog.at_level(logging.ERROR, logger="revenue_ledger.notifier"):
            asyncio.run(scenario())

        assert len(received) == 1
        assert "handler bug" in caplog.text

    def test_only_matching_event_type(self):
        notifier = HookNotifier()
        received = []
        notifier.subscribe(PaymentFailed, received.append)

        async def scenario():
            notifier.emit(make_event())
            await notifier.drain()

        asyncio.run(scenario())

        assert received == []

    def test_unsubscribe(self):
        notifier = HookNotifier()
        received = []
        notifier.subscribe(EscrowHeld, received.append)
        notifier.unsubscribe(EscrowHeld, received.append)

        async def scenario():
            notifier.emit(make_event())
            await notifier.drain()

        asyncio.run(scenario())

        assert received == []

    def test_no_running_loop_drops_event(self, caplog):
        notifier = HookNotifier()
        received = []
        notifier.subscribe(EscrowHeld, received.append)

        with caplog.at_level(logging.WARNING, logger="revenue_ledger.notifier"):
            notifier.emit(make_event())

        assert received == []
        assert "No running event loop" in caplog.text


class TestNullNotifier:

    def test_emit_does_nothing(self):
        assert NullNotifier().emit(make_event()) is None
