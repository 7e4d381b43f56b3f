from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.middlewares import CorrelationIdMiddleware
from src.api.routers import health, metrics, webhooks
from src.application.normalizer import ExtractionRules
from src.application.ports.order_system import OrderSystemPort
from src.application.reconciliation import Ledger, PaymentReconciler
from src.application.resolver import create_resolver
from src.infrastructure.order_system.factory import create_order_system
from src.shared.config import Settings, load_settings
from src.shared.logging import configure_logging, get_logger, log_extra

log = get_logger(__name__)


def _create_ledger(settings: Settings) -> Ledger | None:
    if not settings.webhook_dedup_enabled:
        return None
    from src.infrastructure.redis.client import get_redis, init_redis
    from src.infrastructure.redis.idempotency import PaymentLedger

    init_redis(settings)
    return PaymentLedger(get_redis(), ttl_seconds=settings.webhook_dedup_ttl_seconds)


def create_app(
    settings: Settings | None = None,
    order_system: OrderSystemPort | None = None,
    ledger: Ledger | None = None,
) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    orders = order_system or create_order_system(settings)
    if ledger is None:
        ledger = _create_ledger(settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        log.info(
            "startup complete",
            extra=log_extra(
                order_system=settings.order_system_provider,
                lookup_strategy=settings.order_lookup_strategy,
                mutation_style=settings.order_mutation_style,
                dedup_enabled=ledger is not None,
            ),
        )
        yield
        close = getattr(orders, "close", None)
        if callable(close):
            close()
        if settings.webhook_dedup_enabled:
            from src.infrastructure.redis.client import close_redis

            close_redis()

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        openapi_url="/openapi.json",
        docs_url="/docs",
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.order_system = orders
    app.state.ledger = ledger
    app.state.extraction_rules = ExtractionRules.from_settings(settings)
    app.state.reconciler = PaymentReconciler(
        orders,
        create_resolver(settings, orders),
        mutation_style=settings.order_mutation_style,
        ledger=ledger,
    )

    app.add_middleware(CorrelationIdMiddleware)

    cors_origins = settings.cors_origins
    if not cors_origins and settings.app_env == "local":
        cors_origins = ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.include_router(webhooks.router)
    app.include_router(health.router)
    app.include_router(metrics.router)

    return app


app = create_app()
