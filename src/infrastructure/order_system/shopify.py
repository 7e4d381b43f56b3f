from __future__ import annotations

import random
import time
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from src.application.ports.order_system import FinancialStatus, Order, OrderSystemError
from src.shared.logging import get_logger, log_extra
from src.shared.metrics import ORDER_SYSTEM_REQUESTS_TOTAL

log = get_logger(__name__)

ORDER_FIELDS = "id,name,order_number,financial_status,total_price"
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

_MARK_AS_PAID_MUTATION = """
mutation orderMarkAsPaid($input: OrderMarkAsPaidInput!) {
  orderMarkAsPaid(input: $input) {
    order { id displayFinancialStatus }
    userErrors { field message }
  }
}
"""


def _to_order(data: dict[str, Any]) -> Order:
    try:
        order_number = data.get("order_number")
        total = data.get("total_price")
        return Order(
            id=int(data["id"]),
            name=str(data.get("name") or ""),
            order_number=int(order_number) if order_number is not None else None,
            financial_status=FinancialStatus.parse(data.get("financial_status")),
            total_price=Decimal(str(total)) if total not in (None, "") else None,
        )
    except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
        raise OrderSystemError("parse_order", f"unexpected order shape: {exc}", is_retryable=False) from exc


class ShopifyOrderSystem:
    """Shopify Admin API adapter.

    Lookups are retried with exponential backoff on transport errors and
    throttling/5xx answers. Mutations are sent once: a retried sale
    transaction could credit the order twice.
    """

    def __init__(
        self,
        store_domain: str,
        access_token: str,
        api_version: str = "2024-01",
        timeout: float = 10.0,
        max_retries: int = 2,
        base_delay: float = 0.5,
        max_delay: float = 8.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._client = client or httpx.Client(
            base_url=f"https://{store_domain}/admin/api/{api_version}",
            headers={
                "X-Shopify-Access-Token": access_token,
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    def close(self) -> None:
        self._client.close()

    def _sleep_before_retry(self, operation: str, attempt: int) -> None:
        delay = min(self._base_delay * (2 ** attempt), self._max_delay)
        log.warning("order system retry", extra=log_extra(operation=operation, attempt=attempt + 1, delay=delay))
        if delay > 0:
            time.sleep(delay + random.uniform(0, delay / 2))

    def _request(self, operation: str, method: str, url: str, retry: bool = False, **kwargs: Any) -> Any:
        attempts = self._max_retries + 1 if retry else 1
        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1
            try:
                resp = self._client.request(method, url, **kwargs)
            except httpx.TransportError as exc:
                ORDER_SYSTEM_REQUESTS_TOTAL.labels(operation, "transport_error").inc()
                if not last_attempt:
                    self._sleep_before_retry(operation, attempt)
                    continue
                raise OrderSystemError(operation, f"{type(exc).__name__}: {exc}") from exc

            if resp.status_code in RETRYABLE_STATUS_CODES and not last_attempt:
                ORDER_SYSTEM_REQUESTS_TOTAL.labels(operation, str(resp.status_code)).inc()
                self._sleep_before_retry(operation, attempt)
                continue
            if not resp.is_success:
                ORDER_SYSTEM_REQUESTS_TOTAL.labels(operation, str(resp.status_code)).inc()
                log.error(
                    "order system call failed",
                    extra=log_extra(operation=operation, status_code=resp.status_code, body=resp.text[:500]),
                )
                raise OrderSystemError(
                    operation,
                    f"HTTP {resp.status_code}",
                    status_code=resp.status_code,
                    is_retryable=resp.status_code in RETRYABLE_STATUS_CODES,
                )
            try:
                data = resp.json()
            except ValueError as exc:
                ORDER_SYSTEM_REQUESTS_TOTAL.labels(operation, "invalid_json").inc()
                raise OrderSystemError(operation, "invalid JSON in response", status_code=resp.status_code) from exc
            ORDER_SYSTEM_REQUESTS_TOTAL.labels(operation, "ok").inc()
            return data
        raise OrderSystemError(operation, "max retries exceeded")

    def find_orders_by_name(self, name: str) -> list[Order]:
        data = self._request(
            "find_orders_by_name",
            "GET",
            "/orders.json",
            retry=True,
            params={"name": name, "status": "any", "fields": ORDER_FIELDS},
        )
        return [_to_order(o) for o in (data or {}).get("orders") or []]

    def list_recent_orders(self, limit: int) -> list[Order]:
        data = self._request(
            "list_recent_orders",
            "GET",
            "/orders.json",
            retry=True,
            params={"status": "any", "limit": limit, "order": "created_at desc", "fields": ORDER_FIELDS},
        )
        return [_to_order(o) for o in (data or {}).get("orders") or []]

    def create_sale_transaction(self, order_id: int, amount: Decimal) -> None:
        payload = {"transaction": {"kind": "sale", "status": "success", "amount": str(amount)}}
        self._request("create_sale_transaction", "POST", f"/orders/{order_id}/transactions.json", json=payload)
        log.info("sale transaction created", extra=log_extra(order_id=order_id, amount=str(amount)))

    def mark_as_paid(self, order_id: int) -> None:
        data = self._request(
            "mark_as_paid",
            "POST",
            "/graphql.json",
            json={
                "query": _MARK_AS_PAID_MUTATION,
                "variables": {"input": {"id": f"gid://shopify/Order/{order_id}"}},
            },
        )
        if (data or {}).get("errors"):
            raise OrderSystemError("mark_as_paid", f"graphql errors: {data['errors']}")
        result = ((data or {}).get("data") or {}).get("orderMarkAsPaid") or {}
        user_errors = result.get("userErrors") or []
        if user_errors:
            messages = "; ".join(str(e.get("message")) for e in user_errors)
            raise OrderSystemError("mark_as_paid", messages, is_retryable=False)
        log.info("order marked as paid", extra=log_extra(order_id=order_id))
