from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from src.application.ports.order_system import Order, OrderSystemPort
from src.shared.config import Settings
from src.shared.logging import get_logger, log_extra

log = get_logger(__name__)


class ResolutionStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class Resolution:
    status: ResolutionStatus
    order: Optional[Order] = None
    candidates: int = 0


def to_display_name(reference: str) -> str:
    name = reference.strip()
    if not name.startswith("#"):
        name = f"#{name}"
    return name


def to_order_number(reference: str) -> Optional[int]:
    text = reference.strip().removeprefix("#").strip()
    if not text.isascii() or not text.isdigit():
        return None
    return int(text)


class DisplayNameResolver:
    """Looks the order up by its human order name (``#1007``).

    The order system may return several orders for one name; ``tie_break``
    decides which one wins: ``first`` keeps the API ordering, ``most_recent``
    takes the highest order id and ``reject`` refuses to pick.
    """

    def __init__(self, orders: OrderSystemPort, tie_break: str = "first") -> None:
        self._orders = orders
        self._tie_break = tie_break

    def resolve(self, reference: str) -> Resolution:
        name = to_display_name(reference)
        matches = self._orders.find_orders_by_name(name)
        if not matches:
            return Resolution(ResolutionStatus.NOT_FOUND)
        if len(matches) == 1:
            return Resolution(ResolutionStatus.FOUND, matches[0], 1)

        log.warning(
            "several orders share one name",
            extra=log_extra(order_name=name, candidates=len(matches), tie_break=self._tie_break),
        )
        if self._tie_break == "reject":
            return Resolution(ResolutionStatus.AMBIGUOUS, None, len(matches))
        if self._tie_break == "most_recent":
            return Resolution(ResolutionStatus.FOUND, max(matches, key=lambda o: o.id), len(matches))
        return Resolution(ResolutionStatus.FOUND, matches[0], len(matches))


class OrderNumberResolver:
    """Scans a bounded window of recent orders for an exact order number.

    Orders older than the window are reported as not found rather than
    paginating through the whole order history on every webhook.
    """

    def __init__(self, orders: OrderSystemPort, window: int = 50) -> None:
        self._orders = orders
        self._window = window

    def resolve(self, reference: str) -> Resolution:
        number = to_order_number(reference)
        if number is None:
            return Resolution(ResolutionStatus.NOT_FOUND)
        recent = self._orders.list_recent_orders(self._window)
        for order in recent[: self._window]:
            if order.order_number == number:
                return Resolution(ResolutionStatus.FOUND, order, 1)
        return Resolution(ResolutionStatus.NOT_FOUND)


def create_resolver(settings: Settings, orders: OrderSystemPort) -> DisplayNameResolver | OrderNumberResolver:
    if settings.order_lookup_strategy == "order_number":
        return OrderNumberResolver(orders, window=settings.order_lookup_window)
    return DisplayNameResolver(orders, tie_break=settings.order_name_tie_break)
