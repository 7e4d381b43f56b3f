from __future__ import annotations

import contextvars
import uuid

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)
order_reference_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "order_reference", default=""
)


def new_correlation_id() -> str:
    return uuid.uuid4().hex


def set_correlation_id(value: str) -> None:
    correlation_id_var.set(value)


def get_correlation_id() -> str:
    v = correlation_id_var.get()
    return v or ""


def set_order_reference(value: str) -> None:
    order_reference_var.set(value)


def get_order_reference() -> str:
    v = order_reference_var.get()
    return v or ""
