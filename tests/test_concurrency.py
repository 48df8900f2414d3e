"""
Concurrent access to balances and pending records.

Every balance change is a read-modify-write under the account lock, and every
pending -> terminal move is a check-and-set, so racing callers can neither
lose updates nor resolve a record twice.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from saxon_bank.context import RequestContext
from saxon_bank.errors import AlreadyProcessed, InsufficientFunds


def run_concurrently(calls):
    """Run zero-argument callables in parallel; returns (results, errors)"""
    barrier = threading.Barrier(len(calls))
    results, errors = [], []
    lock = threading.Lock()

    def wrapped(call):
        try:
            barrier.wait(timeout=5)
        except threading.BrokenBarrierError:
            pass
        try:
            value = call()
        except Exception as e:
            with lock:
                errors.append(e)
        else:
            with lock:
                results.append(value)

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        list(pool.map(wrapped, calls))
    return results, errors


class TestConcurrentBalances:

    def test_parallel_deposits_are_not_lost(self, system, register):
        account = register()
        ctx = RequestContext.for_account(account.id)

        results, errors = run_concurrently(
            [lambda: system.ledger.deposit(ctx, account.id, "1.00") for _ in range(80)]
        )

        assert errors == []
        assert len(results) == 80
        assert system.account_manager.get_account(account.id).balance == Decimal('80.00')

    def test_parallel_withdrawals_never_overdraw(self, system, funded):
        account = funded("50.00")
        ctx = RequestContext.for_account(account.id)

        results, errors = run_concurrently(
            [lambda: system.ledger.withdraw(ctx, account.id, "10.00") for _ in range(8)]
        )

        assert len(results) == 5
        assert len(errors) == 3
        assert all(isinstance(e, InsufficientFunds) for e in errors)
        assert system.account_manager.get_account(account.id).balance == Decimal('0.00')

    def test_opposing_transfers_do_not_deadlock(self, system, funded, admin_ctx):
        alice = funded("1000.00")
        bob = funded("1000.00")
        alice_ctx = RequestContext.for_account(alice.id)
        bob_ctx = RequestContext.for_account(bob.id)

        submitted, errors = run_concurrently(
            [lambda: system.ledger.submit_transfer(alice_ctx, bob.account_number, "5.00")
             for _ in range(10)] +
            [lambda: system.ledger.submit_transfer(bob_ctx, alice.account_number, "5.00")
             for _ in range(10)]
        )
        assert errors == []

        _, errors = run_concurrently(
            [lambda t=t: system.ledger.approve_transfer(admin_ctx, t.id) for t in submitted]
        )
        assert errors == []

        assert system.account_manager.get_account(alice.id).balance == Decimal('1000.00')
        assert system.account_manager.get_account(bob.id).balance == Decimal('1000.00')
        assert system.ledger.total_balance() == Decimal('2000.00')


class TestConcurrentDecisions:

    @pytest.fixture
    def pending_transfer(self, system, funded, register):
        sender = funded("100.00")
        recipient = register()
        transfer = system.ledger.submit_transfer(
            RequestContext.for_account(sender.id), recipient.account_number, "40.00"
        )
        return sender, recipient, transfer

    def test_approve_reject_race_resolves_once(self, system, admin_ctx, pending_transfer):
        sender, recipient, transfer = pending_transfer

        calls = []
        for _ in range(4):
            calls.append(lambda: system.ledger.approve_transfer(admin_ctx, transfer.id))
            calls.append(lambda: system.ledger.reject_transfer(admin_ctx, transfer.id))
        results, errors = run_concurrently(calls)

        assert len(results) == 1
        assert len(errors) == 7
        assert all(isinstance(e, AlreadyProcessed) for e in errors)

        sender_balance = system.account_manager.get_account(sender.id).balance
        recipient_balance = system.account_manager.get_account(recipient.id).balance
        assert sender_balance + recipient_balance == Decimal('100.00')
        assert (sender_balance, recipient_balance) in (
            (Decimal('60.00'), Decimal('40.00')),
            (Decimal('100.00'), Decimal('0.00')),
        )

    def test_card_decision_race(self, system, register, admin_ctx):
        account = register()
        request = system.cards.submit(RequestContext.for_account(account.id))

        results, errors = run_concurrently(
            [lambda: system.cards.approve(admin_ctx, request.id) for _ in range(6)]
        )

        assert len(results) == 1
        assert len(errors) == 5
        assert all(isinstance(e, AlreadyProcessed) for e in errors)
