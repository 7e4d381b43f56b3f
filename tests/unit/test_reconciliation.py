"""Unit tests for the idempotent payment reconciler."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from src.application.normalizer import NormalizedStatus, PaymentEvent, normalize
from src.application.ports.order_system import FinancialStatus, OrderSystemError
from src.application.reconciliation import (
    PaymentReconciler,
    ReconciliationOutcome,
    choose_amount,
    payment_key,
)
from src.application.resolver import DisplayNameResolver, Resolution, ResolutionStatus
from src.infrastructure.order_system.fake import FakeOrderSystem
from tests.factories import approved_payload, make_order


class _SetLedger:
    def __init__(self) -> None:
        self.keys: set[str] = set()
        self.released: list[str] = []

    def claim(self, key: str) -> bool:
        if key in self.keys:
            return False
        self.keys.add(key)
        return True

    def release(self, key: str) -> None:
        self.released.append(key)
        self.keys.discard(key)


def _reconciler(fake: FakeOrderSystem, **kwargs) -> PaymentReconciler:
    return PaymentReconciler(fake, DisplayNameResolver(fake), **kwargs)


def _found(order) -> MagicMock:
    resolver = MagicMock()
    resolver.resolve.return_value = Resolution(ResolutionStatus.FOUND, order, 1)
    return resolver


class TestSkips:
    @pytest.mark.parametrize("payload", [{"status": "rejected", "reference": "1007"}, {"reference": "1007"}])
    def test_not_approved_makes_no_order_calls(self, payload: dict) -> None:
        orders = MagicMock()
        resolver = MagicMock()
        report = PaymentReconciler(orders, resolver).reconcile(normalize(payload))
        assert report.outcome == ReconciliationOutcome.SKIPPED_NOT_APPROVED
        assert report.outcome.retryable is False
        resolver.resolve.assert_not_called()
        assert orders.method_calls == []

    def test_already_paid_order_is_left_alone(self) -> None:
        orders = MagicMock()
        order = make_order(status=FinancialStatus.PAID)
        report = PaymentReconciler(orders, _found(order)).reconcile(normalize(approved_payload()))
        assert report.outcome == ReconciliationOutcome.SKIPPED_ALREADY_PAID
        orders.create_sale_transaction.assert_not_called()
        orders.mark_as_paid.assert_not_called()


class TestUnresolvable:
    def test_approved_without_reference(self) -> None:
        resolver = MagicMock()
        report = PaymentReconciler(MagicMock(), resolver).reconcile(normalize({"status": "approved"}))
        assert report.outcome == ReconciliationOutcome.FAILED_UNRESOLVABLE
        assert report.outcome.retryable is False
        resolver.resolve.assert_not_called()

    @pytest.mark.parametrize("status", [ResolutionStatus.NOT_FOUND, ResolutionStatus.AMBIGUOUS])
    def test_reference_not_resolved(self, status: ResolutionStatus) -> None:
        resolver = MagicMock()
        resolver.resolve.return_value = Resolution(status, None, 0)
        orders = MagicMock()
        report = PaymentReconciler(orders, resolver).reconcile(normalize(approved_payload()))
        assert report.outcome == ReconciliationOutcome.FAILED_UNRESOLVABLE
        assert report.reference == "1007"
        orders.create_sale_transaction.assert_not_called()

    def test_no_usable_amount_never_posts_zero(self) -> None:
        orders = MagicMock()
        order = make_order(total=None)
        report = PaymentReconciler(orders, _found(order)).reconcile(normalize(approved_payload()))
        assert report.outcome == ReconciliationOutcome.FAILED_UNRESOLVABLE
        orders.create_sale_transaction.assert_not_called()


class TestApply:
    def test_sale_transaction_uses_gateway_amount(self) -> None:
        fake = FakeOrderSystem([make_order()])
        report = _reconciler(fake).reconcile(normalize(approved_payload(amount=150.0)))
        assert report.outcome == ReconciliationOutcome.APPLIED
        assert fake.transactions == [(5_550_001, Decimal("150.0"))]

    def test_amount_falls_back_to_order_total(self) -> None:
        fake = FakeOrderSystem([make_order(total="275.50")])
        report = _reconciler(fake).reconcile(normalize(approved_payload()))
        assert report.outcome == ReconciliationOutcome.APPLIED
        assert report.amount == Decimal("275.50")
        assert fake.transactions == [(5_550_001, Decimal("275.50"))]

    def test_mark_paid_style(self) -> None:
        fake = FakeOrderSystem([make_order()])
        report = _reconciler(fake, mutation_style="mark_paid").reconcile(normalize(approved_payload()))
        assert report.outcome == ReconciliationOutcome.APPLIED
        assert fake.marked_paid == [5_550_001]
        assert fake.transactions == []

    def test_redelivery_is_a_no_op(self) -> None:
        fake = FakeOrderSystem([make_order()])
        reconciler = _reconciler(fake)
        event = normalize(approved_payload())
        first = reconciler.reconcile(event)
        second = reconciler.reconcile(event)
        assert first.outcome == ReconciliationOutcome.APPLIED
        assert second.outcome == ReconciliationOutcome.SKIPPED_ALREADY_PAID
        assert len(fake.transactions) == 1


class TestDownstreamFailures:
    def test_lookup_failure_is_retryable(self) -> None:
        resolver = MagicMock()
        resolver.resolve.side_effect = OrderSystemError("find_orders_by_name", "ReadTimeout: timed out")
        report = PaymentReconciler(MagicMock(), resolver).reconcile(normalize(approved_payload()))
        assert report.outcome == ReconciliationOutcome.FAILED_DOWNSTREAM
        assert report.outcome.retryable is True

    def test_mutation_failure_releases_ledger_claim(self) -> None:
        orders = MagicMock()
        orders.create_sale_transaction.side_effect = OrderSystemError("create_sale_transaction", "HTTP 503")
        ledger = _SetLedger()
        event = normalize(approved_payload(), malformed=False)
        report = PaymentReconciler(orders, _found(make_order()), ledger=ledger).reconcile(event)
        assert report.outcome == ReconciliationOutcome.FAILED_DOWNSTREAM
        assert ledger.released == [payment_key(event)]
        assert ledger.keys == set()

    def test_unexpected_error_releases_ledger_claim(self) -> None:
        orders = MagicMock()
        orders.create_sale_transaction.side_effect = [RuntimeError("boom"), None]
        ledger = _SetLedger()
        reconciler = PaymentReconciler(orders, _found(make_order()), ledger=ledger)
        event = normalize(approved_payload())

        with pytest.raises(RuntimeError):
            reconciler.reconcile(event)

        assert ledger.released == [payment_key(event)]
        assert reconciler.reconcile(event).outcome == ReconciliationOutcome.APPLIED
        assert orders.create_sale_transaction.call_count == 2


class TestConcurrentRedelivery:
    """Two deliveries that both read the order before either one writes."""

    def test_without_ledger_stale_reads_apply_twice(self) -> None:
        # Known gap: the already-paid check is read-then-write, not atomic.
        orders = MagicMock()
        resolver = _found(make_order(status=FinancialStatus.PENDING))
        reconciler = PaymentReconciler(orders, resolver)
        event = normalize(approved_payload())
        assert reconciler.reconcile(event).outcome == ReconciliationOutcome.APPLIED
        assert reconciler.reconcile(event).outcome == ReconciliationOutcome.APPLIED
        assert orders.create_sale_transaction.call_count == 2

    def test_ledger_closes_the_window(self) -> None:
        orders = MagicMock()
        resolver = _found(make_order(status=FinancialStatus.PENDING))
        reconciler = PaymentReconciler(orders, resolver, ledger=_SetLedger())
        event = normalize({"payment_id": "pay_1", **approved_payload()})
        assert reconciler.reconcile(event).outcome == ReconciliationOutcome.APPLIED
        assert reconciler.reconcile(event).outcome == ReconciliationOutcome.SKIPPED_DUPLICATE
        assert orders.create_sale_transaction.call_count == 1


def test_payment_key_prefers_gateway_id() -> None:
    assert payment_key(normalize({"payment_id": "abc"})) == "id:abc"


def test_payment_key_hash_ignores_key_order() -> None:
    a = PaymentEvent(NormalizedStatus.APPROVED, raw_payload={"x": 1, "y": {"z": 2}})
    b = PaymentEvent(NormalizedStatus.APPROVED, raw_payload={"y": {"z": 2}, "x": 1})
    assert payment_key(a) == payment_key(b)
    assert payment_key(a).startswith("sha256:")


def test_choose_amount() -> None:
    order = make_order(total="10.00")
    event = PaymentEvent(NormalizedStatus.APPROVED, amount=Decimal("12.00"))
    assert choose_amount(event, order) == (Decimal("12.00"), "gateway")
    assert choose_amount(PaymentEvent(NormalizedStatus.APPROVED), order) == (Decimal("10.00"), "order")
    assert choose_amount(PaymentEvent(NormalizedStatus.APPROVED), make_order(total="0")) == (None, "")
