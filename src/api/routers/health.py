from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    return {"status": "ok"}


@router.get("/readyz")
def readyz(request: Request):
    ledger = getattr(request.app.state, "ledger", None)
    if ledger is not None:
        try:
            ledger.ping()
        except Exception as e:
            return {"status": "fail", "component": "redis", "error": str(e)}
    return {"status": "ok"}
