from __future__ import annotations

import dataclasses
import threading
from collections.abc import Iterable
from decimal import Decimal

from src.application.ports.order_system import FinancialStatus, Order, OrderSystemError
from src.shared.logging import get_logger, log_extra

log = get_logger(__name__)


class FakeOrderSystem:
    """In-memory order system for local development and testing.

    Orders are kept in creation order; ``list_recent_orders`` returns them
    newest first like the real API.
    """

    def __init__(self, orders: Iterable[Order] = ()) -> None:
        self._lock = threading.Lock()
        self._orders: list[Order] = list(orders)
        self.transactions: list[tuple[int, Decimal]] = []
        self.marked_paid: list[int] = []
        self.calls: list[str] = []

    @classmethod
    def with_demo_orders(cls, count: int = 10, first_number: int = 1001) -> "FakeOrderSystem":
        orders = [
            Order(
                id=5_000_000 + i,
                name=f"#{first_number + i}",
                order_number=first_number + i,
                financial_status=FinancialStatus.PENDING,
                total_price=Decimal("100.00") + i,
            )
            for i in range(count)
        ]
        return cls(orders)

    def add_order(self, order: Order) -> None:
        with self._lock:
            self._orders.append(order)

    def get(self, order_id: int) -> Order:
        with self._lock:
            for order in self._orders:
                if order.id == order_id:
                    return order
        raise OrderSystemError("get", f"order {order_id} not found", status_code=404, is_retryable=False)

    def find_orders_by_name(self, name: str) -> list[Order]:
        with self._lock:
            self.calls.append("find_orders_by_name")
            return [o for o in self._orders if o.name == name]

    def list_recent_orders(self, limit: int) -> list[Order]:
        with self._lock:
            self.calls.append("list_recent_orders")
            return list(reversed(self._orders))[:limit]

    def create_sale_transaction(self, order_id: int, amount: Decimal) -> None:
        self._record("create_sale_transaction")
        order = self.get(order_id)
        with self._lock:
            self.transactions.append((order_id, amount))
        paid = order.total_price is None or amount >= order.total_price
        status = FinancialStatus.PAID if paid else FinancialStatus.PARTIALLY_PAID
        self._replace(dataclasses.replace(order, financial_status=status))
        log.info("fake sale transaction", extra=log_extra(order_id=order_id, amount=str(amount)))

    def mark_as_paid(self, order_id: int) -> None:
        self._record("mark_as_paid")
        order = self.get(order_id)
        with self._lock:
            self.marked_paid.append(order_id)
        self._replace(dataclasses.replace(order, financial_status=FinancialStatus.PAID))
        log.info("fake mark as paid", extra=log_extra(order_id=order_id))

    def _record(self, call: str) -> None:
        with self._lock:
            self.calls.append(call)

    def _replace(self, updated: Order) -> None:
        with self._lock:
            self._orders = [updated if o.id == updated.id else o for o in self._orders]
