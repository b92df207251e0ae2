from __future__ import annotations

import csv
import io
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional
from uuid import UUID

from app.payouts.model import PayoutExportRow
from app.referrals.model import Referral, ReferralStatus
from app.referrals.state_machine import InvalidTransition, assert_transition
from services.observability import log_event

logger = logging.getLogger("memories.admin")


EXPORT_HEADERS = [
    "Payout ID",
    "User Email",
    "User Name",
    "Amount (cents)",
    "Currency",
    "Status",
    "Referee Email",
    "Provider Transaction ID",
    "Created At",
]


class ReferralNotFound(Exception):
    pass


def _iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _export_cells(row: PayoutExportRow) -> list[Any]:
    return [
        row.id,
        row.user_email,
        row.user_name or "",
        row.amount,
        row.currency,
        row.status,
        row.referee_email or "",
        row.provider_payout_id or "",
        _iso(row.created_at),
    ]


def export_payouts_csv(rows: Iterable[PayoutExportRow]) -> str:
    """
    Header line unquoted, every data cell double-quoted, lines joined by "\\n"
    with no trailing newline.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for row in rows:
        writer.writerow(_export_cells(row))

    body = buffer.getvalue().rstrip("\n")
    header = ",".join(EXPORT_HEADERS)
    return header + ("\n" + body if body else "")


class PayoutAdminService:
    def __init__(self, store, scheduler, *, now: Callable[[], datetime]):
        self.store = store
        self.scheduler = scheduler
        self.now = now

    def _get(self, referral_id: UUID) -> Referral:
        referral = self.store.get_referral(referral_id)
        if referral is None:
            raise ReferralNotFound(str(referral_id))
        return referral

    def list_referrals(self, status: Optional[ReferralStatus] = None) -> list[Referral]:
        return self.store.list_referrals(status=status)

    def payout_queue(self) -> list[Referral]:
        """QUALIFIED referrals that have not been paid yet, due or not."""
        return self.store.list_referrals(status=ReferralStatus.QUALIFIED)

    def stats(self) -> dict[str, Any]:
        payouts = self.store.payout_stats()
        return {
            "payouts": {
                "total": payouts.total,
                "completed": payouts.completed,
                "failed": payouts.failed,
                "total_amount": payouts.total_amount,
            },
            "referrals": self.store.count_referrals_by_status(),
        }

    def export_csv(self) -> str:
        return export_payouts_csv(self.store.list_payout_export_rows())

    def approve(self, referral_id: UUID) -> dict[str, Any]:
        """Force the referral due now (resetting its retry budget) and run the scheduler."""
        referral = self._get(referral_id)
        if referral.status != ReferralStatus.QUALIFIED:
            raise InvalidTransition(f"Referral is {referral.status.value}, only QUALIFIED can be approved")

        if not self.store.force_schedule_referral(referral_id, self.now()):
            raise InvalidTransition("Referral is no longer QUALIFIED")

        log_event(logger, "admin.referral_approved", outcome="scheduled", referral_id=str(referral_id))
        run = self.scheduler.run()
        return {"referral": self._get(referral_id), "run": run}

    def cancel(self, referral_id: UUID) -> Referral:
        referral = self._get(referral_id)
        assert_transition(referral.status, ReferralStatus.CANCELED)

        if not self.store.cancel_referral(referral_id):
            raise InvalidTransition("Referral changed status while canceling")

        log_event(
            logger,
            "admin.referral_canceled",
            outcome="canceled",
            referral_id=str(referral_id),
            previous_status=referral.status.value,
        )
        return self._get(referral_id)
