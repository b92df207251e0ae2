

# app/providers/mock.py
from __future__ import annotations

import uuid
from typing import Any

from app.providers.base import PayoutResult


class MockAdapter:
    """
    Test/dev adapter.

    Records every call in .calls; succeed=False returns a failed result, and
    raise_error makes process() raise so batch isolation can be exercised.
    """

    def __init__(
        self,
        *,
        succeed: bool = True,
        error: str = "Gateway timeout",
        raise_error: Exception | None = None,
    ):
        self.succeed = succeed
        self.error = error
        self.raise_error = raise_error
        self.calls: list[dict[str, Any]] = []

    def process(self, details: dict[str, Any], amount_minor: int, currency: str, *, reference: str) -> PayoutResult:
        self.calls.append(
            {"details": details, "amount_minor": amount_minor, "currency": currency, "reference": reference}
        )
        if self.raise_error is not None:
            raise self.raise_error
        if self.succeed:
            return PayoutResult.ok(f"mock-{uuid.uuid4().hex[:12]}")
        return PayoutResult.failed(self.error)
