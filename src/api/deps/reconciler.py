from __future__ import annotations

from fastapi import Request

from src.application.normalizer import ExtractionRules
from src.application.reconciliation import PaymentReconciler


def get_reconciler(request: Request) -> PaymentReconciler:
    return request.app.state.reconciler


def get_extraction_rules(request: Request) -> ExtractionRules:
    return request.app.state.extraction_rules
