from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Protocol

from src.application.normalizer import PaymentEvent
from src.application.ports.order_system import Order, OrderSystemError, OrderSystemPort
from src.application.resolver import Resolution, ResolutionStatus
from src.shared.logging import get_logger, log_extra
from src.shared.metrics import WEBHOOK_RECONCILIATIONS_TOTAL

log = get_logger(__name__)


class ReconciliationOutcome(str, Enum):
    SKIPPED_NOT_APPROVED = "skipped_not_approved"
    SKIPPED_ALREADY_PAID = "skipped_already_paid"
    SKIPPED_DUPLICATE = "skipped_duplicate"
    APPLIED = "applied"
    FAILED_UNRESOLVABLE = "failed_unresolvable"
    FAILED_DOWNSTREAM = "failed_downstream"

    @property
    def retryable(self) -> bool:
        return self is ReconciliationOutcome.FAILED_DOWNSTREAM


@dataclass(frozen=True)
class ReconciliationReport:
    outcome: ReconciliationOutcome
    reference: Optional[str] = None
    order_id: Optional[int] = None
    order_name: Optional[str] = None
    amount: Optional[Decimal] = None
    detail: str = ""


class Resolver(Protocol):
    def resolve(self, reference: str) -> Resolution: ...


class Ledger(Protocol):
    def claim(self, key: str) -> bool: ...

    def release(self, key: str) -> None: ...


def payment_key(event: PaymentEvent) -> str:
    if event.payment_id:
        return f"id:{event.payment_id}"
    canonical = json.dumps(event.raw_payload, sort_keys=True, ensure_ascii=False, default=str)
    return "sha256:" + hashlib.sha256(canonical.encode()).hexdigest()


class PaymentReconciler:
    def __init__(
        self,
        orders: OrderSystemPort,
        resolver: Resolver,
        mutation_style: str = "transaction",
        ledger: Ledger | None = None,
    ) -> None:
        self._orders = orders
        self._resolver = resolver
        self._mutation_style = mutation_style
        self._ledger = ledger

    def reconcile(self, event: PaymentEvent) -> ReconciliationReport:
        report = self._reconcile(event)
        WEBHOOK_RECONCILIATIONS_TOTAL.labels(report.outcome.value).inc()
        fields = log_extra(
            outcome=report.outcome.value,
            raw_status=event.raw_status,
            reference=report.reference,
            reference_source=event.reference_source,
            order_id=report.order_id,
            order_name=report.order_name,
            amount=str(report.amount) if report.amount is not None else None,
            detail=report.detail,
            malformed=event.malformed,
        )
        if report.outcome in (ReconciliationOutcome.FAILED_UNRESOLVABLE, ReconciliationOutcome.FAILED_DOWNSTREAM):
            log.error("payment webhook not reconciled", extra=fields)
        else:
            log.info("payment webhook reconciled", extra=fields)
        return report

    def _reconcile(self, event: PaymentEvent) -> ReconciliationReport:
        if not event.is_approved:
            return ReconciliationReport(
                ReconciliationOutcome.SKIPPED_NOT_APPROVED,
                reference=event.order_reference,
                detail=f"status {event.status.value}",
            )

        reference = event.order_reference
        if not reference:
            return ReconciliationReport(
                ReconciliationOutcome.FAILED_UNRESOLVABLE,
                detail="approved payment carries no order reference",
            )

        try:
            resolution = self._resolver.resolve(reference)
        except OrderSystemError as exc:
            return ReconciliationReport(
                ReconciliationOutcome.FAILED_DOWNSTREAM, reference=reference, detail=str(exc)
            )

        if resolution.status != ResolutionStatus.FOUND or resolution.order is None:
            return ReconciliationReport(
                ReconciliationOutcome.FAILED_UNRESOLVABLE,
                reference=reference,
                detail=f"order lookup {resolution.status.value} ({resolution.candidates} candidates)",
            )

        order = resolution.order
        if order.is_paid:
            return self._report(ReconciliationOutcome.SKIPPED_ALREADY_PAID, reference, order)

        key = payment_key(event)
        if self._ledger is not None and not self._ledger.claim(key):
            return self._report(
                ReconciliationOutcome.SKIPPED_DUPLICATE, reference, order, detail="payment already claimed"
            )

        try:
            return self._apply(event, reference, order)
        except OrderSystemError as exc:
            if self._ledger is not None:
                self._ledger.release(key)
            return self._report(ReconciliationOutcome.FAILED_DOWNSTREAM, reference, order, detail=str(exc))
        except Exception:
            # The payment was not applied; a retried delivery must be able to claim it again.
            if self._ledger is not None:
                self._ledger.release(key)
            raise

    def _apply(self, event: PaymentEvent, reference: str, order: Order) -> ReconciliationReport:
        if self._mutation_style == "mark_paid":
            self._orders.mark_as_paid(order.id)
            return self._report(ReconciliationOutcome.APPLIED, reference, order, detail="marked as paid")

        amount, source = choose_amount(event, order)
        if amount is None:
            # Nothing trustworthy to record; never post a zero transaction.
            if self._ledger is not None:
                self._ledger.release(payment_key(event))
            return self._report(
                ReconciliationOutcome.FAILED_UNRESOLVABLE, reference, order, detail="no usable amount"
            )
        self._orders.create_sale_transaction(order.id, amount)
        return self._report(
            ReconciliationOutcome.APPLIED, reference, order, amount=amount, detail=f"sale transaction ({source} amount)"
        )

    @staticmethod
    def _report(
        outcome: ReconciliationOutcome,
        reference: str,
        order: Order,
        amount: Decimal | None = None,
        detail: str = "",
    ) -> ReconciliationReport:
        return ReconciliationReport(
            outcome, reference=reference, order_id=order.id, order_name=order.name, amount=amount, detail=detail
        )


def choose_amount(event: PaymentEvent, order: Order) -> tuple[Optional[Decimal], str]:
    if event.amount is not None and event.amount > 0:
        return event.amount, "gateway"
    if order.total_price is not None and order.total_price > 0:
        return order.total_price, "order"
    return None, ""
