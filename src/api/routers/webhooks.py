from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from src.api.deps.reconciler import get_extraction_rules, get_reconciler
from src.application.normalizer import ExtractionRules, decode_payload, normalize
from src.application.reconciliation import PaymentReconciler
from src.shared.correlation import set_order_reference
from src.shared.logging import get_logger, log_extra

log = get_logger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post("/api/efipay-webhook")
@router.post("/v1/webhooks/payments")
async def receive_payment_webhook(
    request: Request,
    reconciler: PaymentReconciler = Depends(get_reconciler),
    rules: ExtractionRules = Depends(get_extraction_rules),
) -> JSONResponse:
    # The gateway only needs to know whether to retry.
    body = await request.body()
    try:
        payload, malformed = decode_payload(body)
        event = normalize(payload, rules, malformed=malformed)
        if event.order_reference:
            set_order_reference(event.order_reference)
        log.debug("payment webhook payload", extra=log_extra(payload=payload))
        log.info(
            "payment webhook received",
            extra=log_extra(
                status=event.status.value,
                raw_status=event.raw_status,
                amount=str(event.amount) if event.amount is not None else None,
                reference=event.order_reference,
                reference_source=event.reference_source,
                payment_id=event.payment_id,
            ),
        )
        report = await run_in_threadpool(reconciler.reconcile, event)
    except Exception:
        log.exception("unexpected error while handling payment webhook")
        return JSONResponse({"ok": False}, status_code=500)

    if report.outcome.retryable:
        return JSONResponse({"ok": False}, status_code=500)
    return JSONResponse({"ok": True}, status_code=200)
