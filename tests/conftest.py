"""Pytest configuration and fixtures."""

from __future__ import annotations

import os

import pytest


@pytest.fixture(autouse=True)
def _env_local() -> None:
    os.environ.setdefault("APP_ENV", "local")
    os.environ.setdefault("ORDER_SYSTEM_PROVIDER", "fake")
    os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
