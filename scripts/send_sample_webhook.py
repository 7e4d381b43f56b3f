#!/usr/bin/env python3
"""POST a sample gateway webhook to a running instance (for smoke tests)."""

from __future__ import annotations

import json
import os
import sys
import uuid

import httpx

URL = os.getenv("WEBHOOK_URL", "http://localhost:8000/api/efipay-webhook")


def main() -> int:
    order_number = sys.argv[1] if len(sys.argv) > 1 else "1001"
    status = sys.argv[2] if len(sys.argv) > 2 else "Aprobado"
    amount = float(sys.argv[3]) if len(sys.argv) > 3 else 100.00

    payload = {
        "payment_id": uuid.uuid4().hex,
        "payment": {
            "status": status,
            "amount": amount,
            "description": f"Pedido {order_number} - Sample Store",
        },
    }

    resp = httpx.post(
        URL,
        content=json.dumps(payload),
        headers={"Content-Type": "application/json", "X-Correlation-Id": uuid.uuid4().hex},
        timeout=30.0,
    )
    print(json.dumps({"status_code": resp.status_code, "body": resp.text, "payload": payload}))
    return 0 if resp.is_success else 1


if __name__ == "__main__":
    sys.exit(main())
