from __future__ import annotations

import os
from dataclasses import dataclass

ORDER_SYSTEM_PROVIDERS = ("shopify", "fake")
LOOKUP_STRATEGIES = ("name", "order_number")
TIE_BREAK_POLICIES = ("first", "most_recent", "reject")
MUTATION_STYLES = ("transaction", "mark_paid")

MAX_LOOKUP_WINDOW = 250


def _getenv(name: str, default: str | None = None) -> str:
    val = os.getenv(name)
    if val is None:
        if default is None:
            raise RuntimeError(f"Missing env var: {name}")
        return default
    return val


def _choice(name: str, default: str, allowed: tuple[str, ...]) -> str:
    val = _getenv(name, default).strip().lower()
    if val not in allowed:
        raise RuntimeError(f"Invalid value for {name}: {val!r} (expected one of {', '.join(allowed)})")
    return val


def _csv(name: str, default: str) -> list[str]:
    return [v.strip() for v in _getenv(name, default).split(",") if v.strip()]


@dataclass(frozen=True)
class Settings:
    app_env: str
    app_name: str
    log_level: str
    http_host: str
    http_port: int

    order_system_provider: str
    shopify_store_domain: str
    shopify_admin_api_token: str
    shopify_admin_api_version: str
    order_system_timeout_seconds: float
    order_system_max_retries: int
    order_system_retry_base_delay: float

    order_lookup_strategy: str
    order_lookup_window: int
    order_name_tie_break: str
    order_mutation_style: str

    approved_statuses: list[str]
    reference_keywords: list[str]

    webhook_dedup_enabled: bool
    webhook_dedup_ttl_seconds: int
    redis_url: str

    cors_origins: list[str]


def load_settings() -> Settings:
    window = int(_getenv("ORDER_LOOKUP_WINDOW", "50"))
    return Settings(
        app_env=_getenv("APP_ENV", "local"),
        app_name=_getenv("APP_NAME", "py-payments-reconciler"),
        log_level=_getenv("LOG_LEVEL", "INFO"),
        http_host=_getenv("HTTP_HOST", "0.0.0.0"),
        http_port=int(_getenv("HTTP_PORT", "8000")),
        order_system_provider=_choice("ORDER_SYSTEM_PROVIDER", "shopify", ORDER_SYSTEM_PROVIDERS),
        shopify_store_domain=_getenv("SHOPIFY_STORE_DOMAIN", "").strip(),
        shopify_admin_api_token=_getenv("SHOPIFY_ADMIN_API_TOKEN", "").strip(),
        shopify_admin_api_version=_getenv("SHOPIFY_ADMIN_API_VERSION", "2024-01"),
        order_system_timeout_seconds=float(_getenv("ORDER_SYSTEM_TIMEOUT_SECONDS", "10")),
        order_system_max_retries=int(_getenv("ORDER_SYSTEM_MAX_RETRIES", "2")),
        order_system_retry_base_delay=float(_getenv("ORDER_SYSTEM_RETRY_BASE_DELAY", "0.5")),
        order_lookup_strategy=_choice("ORDER_LOOKUP_STRATEGY", "name", LOOKUP_STRATEGIES),
        order_lookup_window=max(1, min(window, MAX_LOOKUP_WINDOW)),
        order_name_tie_break=_choice("ORDER_NAME_TIE_BREAK", "first", TIE_BREAK_POLICIES),
        order_mutation_style=_choice("ORDER_MUTATION_STYLE", "transaction", MUTATION_STYLES),
        approved_statuses=[
            s.lower()
            for s in _csv("APPROVED_STATUSES", "approved,aprobado,paid,pagado,success,succeeded")
        ],
        reference_keywords=[k.lower() for k in _csv("REFERENCE_KEYWORDS", "pedido")],
        webhook_dedup_enabled=_getenv("WEBHOOK_DEDUP_ENABLED", "false").lower() == "true",
        webhook_dedup_ttl_seconds=int(_getenv("WEBHOOK_DEDUP_TTL_SECONDS", "604800")),
        redis_url=_getenv("REDIS_URL", "redis://localhost:6379/0"),
        cors_origins=_csv("CORS_ORIGINS", ""),
    )
