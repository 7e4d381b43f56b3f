from __future__ import annotations

import json
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from src.application.extraction import (
    DigitsOnly,
    ExtractionRule,
    FirstIdentifierUnderKeys,
    FirstPositiveNumber,
    FirstStringUnderKey,
    KeywordDigits,
    StructuredReference,
    first_match,
)
from src.shared.config import Settings
from src.shared.logging import get_logger, log_extra
from src.shared.metrics import WEBHOOK_MALFORMED_PAYLOADS_TOTAL

log = get_logger(__name__)

DEFAULT_APPROVED_STATUSES = ("approved", "aprobado", "paid", "pagado", "success", "succeeded")
DEFAULT_AMOUNT_KEYS = ("total", "amount", "value")
DEFAULT_REFERENCE_KEYWORDS = ("pedido",)
DEFAULT_REFERENCE_PATHS: tuple[tuple[Any, ...], ...] = (
    ("advanced_options", "references", 0),
    ("references", 0),
    ("payment", "references", 0),
    ("reference",),
)
PAYMENT_ID_KEYS = ("payment_id", "paymentId", "transaction_id", "transactionId")


class NormalizedStatus(str, Enum):
    APPROVED = "approved"
    NOT_APPROVED = "not_approved"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ExtractionRules:
    approved_statuses: frozenset[str] = frozenset(DEFAULT_APPROVED_STATUSES)
    amount_keys: frozenset[str] = frozenset(DEFAULT_AMOUNT_KEYS)
    reference_keywords: tuple[str, ...] = DEFAULT_REFERENCE_KEYWORDS
    reference_paths: tuple[tuple[Any, ...], ...] = DEFAULT_REFERENCE_PATHS

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExtractionRules":
        return cls(
            approved_statuses=frozenset(s.lower() for s in settings.approved_statuses),
            reference_keywords=tuple(k.lower() for k in settings.reference_keywords),
        )

    def status_rules(self) -> tuple[ExtractionRule, ...]:
        return (FirstStringUnderKey("status"),)

    def amount_rules(self) -> tuple[ExtractionRule, ...]:
        return (FirstPositiveNumber(self.amount_keys),)

    def reference_rules(self) -> tuple[ExtractionRule, ...]:
        return (
            StructuredReference(self.reference_paths),
            KeywordDigits(self.reference_keywords),
            DigitsOnly(),
        )

    def payment_id_rules(self) -> tuple[ExtractionRule, ...]:
        return (FirstIdentifierUnderKeys(PAYMENT_ID_KEYS),)

    def classify_status(self, raw_status: Optional[str]) -> NormalizedStatus:
        if raw_status is None:
            return NormalizedStatus.UNKNOWN
        if raw_status.strip().lower() in self.approved_statuses:
            return NormalizedStatus.APPROVED
        return NormalizedStatus.NOT_APPROVED


@dataclass(frozen=True)
class PaymentEvent:
    status: NormalizedStatus
    raw_status: Optional[str] = None
    amount: Optional[Decimal] = None
    order_reference: Optional[str] = None
    reference_source: Optional[str] = None
    payment_id: Optional[str] = None
    raw_payload: Any = field(default_factory=dict, repr=False, compare=False)
    malformed: bool = False

    @property
    def is_approved(self) -> bool:
        return self.status == NormalizedStatus.APPROVED


def decode_payload(body: bytes | str | None) -> tuple[Any, bool]:
    """Parse a webhook body, tolerating double-encoded JSON.

    Returns ``(payload, malformed)``. Anything that is not a JSON object or
    array ends up as an empty dict flagged as malformed.
    """
    if body is None:
        return {}, True
    data: Any = body
    # A JSON string wrapping the real document is unwrapped once more.
    for _ in range(2):
        if not isinstance(data, (bytes, str)):
            break
        try:
            data = json.loads(data, parse_float=Decimal)
        except (ValueError, UnicodeDecodeError, RecursionError):
            log.warning("webhook body is not valid JSON; using empty payload")
            WEBHOOK_MALFORMED_PAYLOADS_TOTAL.inc()
            return {}, True
    if not isinstance(data, (dict, list)):
        log.warning(
            "webhook body is not a JSON object; using empty payload",
            extra=log_extra(body_type=type(data).__name__),
        )
        WEBHOOK_MALFORMED_PAYLOADS_TOTAL.inc()
        return {}, True
    return data, False


def normalize(payload: Any, rules: ExtractionRules | None = None, malformed: bool = False) -> PaymentEvent:
    rules = rules or ExtractionRules()

    raw_status, _ = first_match(rules.status_rules(), payload)
    amount, _ = first_match(rules.amount_rules(), payload)
    reference, reference_source = first_match(rules.reference_rules(), payload)
    payment_id, _ = first_match(rules.payment_id_rules(), payload)

    return PaymentEvent(
        status=rules.classify_status(raw_status),
        raw_status=raw_status,
        amount=amount,
        order_reference=reference,
        reference_source=reference_source,
        payment_id=payment_id,
        raw_payload=payload,
        malformed=malformed,
    )
