

# app/providers/base.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Protocol


@dataclass(frozen=True)
class PayoutResult:
    success: bool
    transaction_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, transaction_id: str) -> "PayoutResult":
        return cls(success=True, transaction_id=transaction_id)

    @classmethod
    def failed(cls, error: str) -> "PayoutResult":
        return cls(success=False, error=error)


class PayoutAdapter(Protocol):
    """
    One disbursement rail.

    process() must never raise: validation problems and I/O errors come back
    as PayoutResult(success=False, error=...).
    """

    def process(
        self,
        details: dict[str, Any],
        amount_minor: int,
        currency: str,
        *,
        reference: str,
    ) -> PayoutResult: ...


def minor_to_decimal(amount_minor: int) -> str:
    # 1000 -> "10.00"
    return str((Decimal(int(amount_minor)) / 100).quantize(Decimal("0.01")))
