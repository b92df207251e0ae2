# app/store.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, ContextManager, Iterable, Optional, Protocol
from uuid import UUID

from db import get_conn
from app.payouts import repository as payouts_repo
from app.payouts.model import (
    NewPayout,
    Payout,
    PayoutExportRow,
    PayoutMethod,
    PayoutMethodType,
    PayoutStats,
)
from app.referrals import repository as referrals_repo
from app.referrals.model import Referral, ReferralStatus
from app.subscriptions import repository as subscriptions_repo
from app.subscriptions.model import (
    Subscription,
    SubscriptionFields,
    SubscriptionStatus,
    User,
    UserMode,
)


class Store(Protocol):
    """Persistence seam shared by the webhook processor, the scheduler and the admin surface."""

    # users
    def get_user(self, user_id: UUID) -> Optional[User]: ...
    def get_user_by_customer_id(self, customer_id: str) -> Optional[User]: ...
    def set_user_mode(self, user_id: UUID, mode: UserMode) -> None: ...

    # subscriptions
    def get_subscription(self, user_id: UUID) -> Optional[Subscription]: ...
    def upsert_subscription(self, user_id: UUID, fields: SubscriptionFields) -> Subscription: ...
    def mark_subscription_active(self, user_id: UUID) -> Optional[Subscription]: ...
    def mark_subscription_past_due(self, user_id: UUID, grace_period_ends_at: datetime) -> Optional[Subscription]: ...
    def mark_subscription_canceled(
        self, user_id: UUID, provider_subscription_id: str, canceled_at: datetime
    ) -> Optional[Subscription]: ...
    def clear_grace_period(self, user_id: UUID) -> None: ...
    def list_expired_grace_periods(self, now: datetime) -> list[Subscription]: ...
    def list_subscriptions_by_status(self, statuses: Iterable[SubscriptionStatus]) -> list[Subscription]: ...

    # referrals
    def get_referral(self, referral_id: UUID) -> Optional[Referral]: ...
    def get_or_create_referral(self, referrer_id: UUID, referee_id: UUID) -> Referral: ...
    def qualify_referral(self, referral_id: UUID, qualified_at: datetime, scheduled_payout_at: datetime) -> bool: ...
    def list_referrals(
        self, *, status: ReferralStatus | None = None, referrer_id: UUID | None = None
    ) -> list[Referral]: ...
    def list_due_referrals(self, now: datetime, max_attempts: int) -> list[Referral]: ...
    def count_referrals_by_status(self) -> dict[str, int]: ...
    def claim_referral(self, referral_id: UUID, now: datetime, lease_until: datetime) -> bool: ...
    def force_schedule_referral(self, referral_id: UUID, scheduled_payout_at: datetime) -> bool: ...
    def cancel_referral(self, referral_id: UUID) -> bool: ...

    # payout methods
    def list_payout_methods(self, user_id: UUID, *, active_only: bool = True) -> list[PayoutMethod]: ...
    def get_payout_method(self, method_id: UUID) -> Optional[PayoutMethod]: ...
    def create_payout_method(
        self, user_id: UUID, method_type: PayoutMethodType, details: dict[str, Any], is_default: bool
    ) -> PayoutMethod: ...
    def update_payout_method(
        self,
        method_id: UUID,
        *,
        details: dict[str, Any] | None = None,
        is_default: bool | None = None,
        is_active: bool | None = None,
    ) -> Optional[PayoutMethod]: ...

    # payouts
    def record_payout_success(self, referral_id: UUID, payout: NewPayout) -> tuple[Payout, bool]: ...
    def record_payout_failure(self, referral_id: UUID, payout: NewPayout, next_attempt_at: datetime) -> Payout: ...
    def record_attempt_error(self, referral_id: UUID, next_attempt_at: datetime) -> None: ...
    def list_payouts(self, *, user_id: UUID | None = None, referral_id: UUID | None = None) -> list[Payout]: ...
    def list_payout_export_rows(self) -> list[PayoutExportRow]: ...
    def payout_stats(self) -> PayoutStats: ...


class PgStore:
    """
    PostgreSQL-backed Store.

    Every method runs in its own transaction from db.get_conn(); the two
    record_payout_* methods bundle the Payout insert with the referral update.
    """

    def __init__(self, conn_factory: Callable[[], ContextManager[Any]] = get_conn):
        self._conn = conn_factory

    # ---- users ----

    def get_user(self, user_id):
        with self._conn() as conn:
            return subscriptions_repo.get_user(conn, user_id)

    def get_user_by_customer_id(self, customer_id):
        with self._conn() as conn:
            return subscriptions_repo.get_user_by_customer_id(conn, customer_id)

    def set_user_mode(self, user_id, mode):
        with self._conn() as conn:
            subscriptions_repo.set_user_mode(conn, user_id, mode)

    # ---- subscriptions ----

    def get_subscription(self, user_id):
        with self._conn() as conn:
            return subscriptions_repo.get_subscription(conn, user_id)

    def upsert_subscription(self, user_id, fields):
        with self._conn() as conn:
            return subscriptions_repo.upsert_subscription(conn, user_id, fields)

    def mark_subscription_active(self, user_id):
        with self._conn() as conn:
            return subscriptions_repo.mark_subscription_active(conn, user_id)

    def mark_subscription_past_due(self, user_id, grace_period_ends_at):
        with self._conn() as conn:
            return subscriptions_repo.mark_subscription_past_due(conn, user_id, grace_period_ends_at)

    def mark_subscription_canceled(self, user_id, provider_subscription_id, canceled_at):
        with self._conn() as conn:
            return subscriptions_repo.mark_subscription_canceled(conn, user_id, provider_subscription_id, canceled_at)

    def clear_grace_period(self, user_id):
        with self._conn() as conn:
            subscriptions_repo.clear_grace_period(conn, user_id)

    def list_expired_grace_periods(self, now):
        with self._conn() as conn:
            return subscriptions_repo.list_expired_grace_periods(conn, now)

    def list_subscriptions_by_status(self, statuses):
        with self._conn() as conn:
            return subscriptions_repo.list_subscriptions_by_status(conn, statuses)

    # ---- referrals ----

    def get_referral(self, referral_id):
        with self._conn() as conn:
            return referrals_repo.get_referral(conn, referral_id)

    def get_or_create_referral(self, referrer_id, referee_id):
        with self._conn() as conn:
            return referrals_repo.get_or_create_referral(conn, referrer_id=referrer_id, referee_id=referee_id)

    def qualify_referral(self, referral_id, qualified_at, scheduled_payout_at):
        with self._conn() as conn:
            return referrals_repo.qualify_referral(
                conn, referral_id, qualified_at=qualified_at, scheduled_payout_at=scheduled_payout_at
            )

    def list_referrals(self, *, status=None, referrer_id=None):
        with self._conn() as conn:
            return referrals_repo.list_referrals(conn, status=status, referrer_id=referrer_id)

    def list_due_referrals(self, now, max_attempts):
        with self._conn() as conn:
            return referrals_repo.list_due_referrals(conn, now=now, max_attempts=max_attempts)

    def count_referrals_by_status(self):
        with self._conn() as conn:
            return referrals_repo.count_referrals_by_status(conn)

    def claim_referral(self, referral_id, now, lease_until):
        with self._conn() as conn:
            return referrals_repo.claim_referral(conn, referral_id, now=now, lease_until=lease_until)

    def force_schedule_referral(self, referral_id, scheduled_payout_at):
        with self._conn() as conn:
            return referrals_repo.force_schedule_referral(conn, referral_id, scheduled_payout_at=scheduled_payout_at)

    def cancel_referral(self, referral_id):
        with self._conn() as conn:
            return referrals_repo.cancel_referral(conn, referral_id)

    # ---- payout methods ----

    def list_payout_methods(self, user_id, *, active_only=True):
        with self._conn() as conn:
            return payouts_repo.list_payout_methods(conn, user_id, active_only=active_only)

    def get_payout_method(self, method_id):
        with self._conn() as conn:
            return payouts_repo.get_payout_method(conn, method_id)

    def create_payout_method(self, user_id, method_type, details, is_default):
        with self._conn() as conn:
            return payouts_repo.create_payout_method(
                conn, user_id=user_id, method_type=method_type, details=details, is_default=is_default
            )

    def update_payout_method(self, method_id, *, details=None, is_default=None, is_active=None):
        with self._conn() as conn:
            return payouts_repo.update_payout_method(
                conn, method_id, details=details, is_default=is_default, is_active=is_active
            )

    # ---- payouts ----

    def record_payout_success(self, referral_id, payout):
        # audit row is written even when the QUALIFIED -> PAID swap loses
        with self._conn() as conn:
            advanced = referrals_repo.mark_referral_paid(conn, referral_id)
            row = payouts_repo.insert_payout(conn, payout)
            return row, advanced

    def record_payout_failure(self, referral_id, payout, next_attempt_at):
        with self._conn() as conn:
            row = payouts_repo.insert_payout(conn, payout)
            referrals_repo.record_failed_attempt(conn, referral_id, next_attempt_at=next_attempt_at)
            return row

    def record_attempt_error(self, referral_id, next_attempt_at):
        # no audit row: the attempt crashed before an outcome was known
        with self._conn() as conn:
            referrals_repo.record_failed_attempt(conn, referral_id, next_attempt_at=next_attempt_at)

    def list_payouts(self, *, user_id=None, referral_id=None):
        with self._conn() as conn:
            return payouts_repo.list_payouts(conn, user_id=user_id, referral_id=referral_id)

    def list_payout_export_rows(self):
        with self._conn() as conn:
            return payouts_repo.list_payout_export_rows(conn)

    def payout_stats(self):
        with self._conn() as conn:
            return payouts_repo.payout_stats(conn)
