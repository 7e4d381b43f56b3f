from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Protocol


class FinancialStatus(str, Enum):
    PENDING = "pending"
    AUTHORIZED = "authorized"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    PARTIALLY_REFUNDED = "partially_refunded"
    REFUNDED = "refunded"
    VOIDED = "voided"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: object) -> "FinancialStatus":
        if not isinstance(value, str):
            return cls.UNKNOWN
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class Order:
    id: int
    name: str
    order_number: Optional[int]
    financial_status: FinancialStatus
    total_price: Optional[Decimal] = None

    @property
    def is_paid(self) -> bool:
        return self.financial_status == FinancialStatus.PAID


class OrderSystemError(Exception):
    """A call to the order system failed or could not be made.

    Always treated as a transient, retry-worthy condition by the reconciler.
    """

    def __init__(
        self,
        operation: str,
        message: str,
        status_code: int | None = None,
        is_retryable: bool = True,
    ) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation
        self.message = message
        self.status_code = status_code
        self.is_retryable = is_retryable


class OrderSystemPort(Protocol):
    def find_orders_by_name(self, name: str) -> list[Order]: ...

    def list_recent_orders(self, limit: int) -> list[Order]: ...

    def create_sale_transaction(self, order_id: int, amount: Decimal) -> None: ...

    def mark_as_paid(self, order_id: int) -> None: ...
