from __future__ import annotations

from decimal import Decimal
from typing import NoReturn

from src.application.ports.order_system import Order, OrderSystemError, OrderSystemPort
from src.infrastructure.order_system.fake import FakeOrderSystem
from src.shared.config import Settings
from src.shared.logging import get_logger

log = get_logger(__name__)


class UnconfiguredOrderSystem:
    """Stands in when Shopify credentials are missing.

    Every call fails as a downstream error so the gateway keeps retrying
    until the deployment is fixed instead of the payment being dropped.
    """

    def _fail(self, operation: str) -> NoReturn:
        raise OrderSystemError(operation, "SHOPIFY_STORE_DOMAIN or SHOPIFY_ADMIN_API_TOKEN not set")

    def find_orders_by_name(self, name: str) -> list[Order]:
        self._fail("find_orders_by_name")

    def list_recent_orders(self, limit: int) -> list[Order]:
        self._fail("list_recent_orders")

    def create_sale_transaction(self, order_id: int, amount: Decimal) -> None:
        self._fail("create_sale_transaction")

    def mark_as_paid(self, order_id: int) -> None:
        self._fail("mark_as_paid")


def create_order_system(settings: Settings) -> OrderSystemPort:
    """Factory that returns the order system adapter selected by settings."""
    if settings.order_system_provider == "fake":
        log.info("using fake order system with demo orders")
        return FakeOrderSystem.with_demo_orders()

    if not settings.shopify_store_domain or not settings.shopify_admin_api_token:
        log.error("shopify credentials not set; webhooks will fail until configured")
        return UnconfiguredOrderSystem()

    from src.infrastructure.order_system.shopify import ShopifyOrderSystem

    return ShopifyOrderSystem(
        store_domain=settings.shopify_store_domain,
        access_token=settings.shopify_admin_api_token,
        api_version=settings.shopify_admin_api_version,
        timeout=settings.order_system_timeout_seconds,
        max_retries=settings.order_system_max_retries,
        base_delay=settings.order_system_retry_base_delay,
    )
