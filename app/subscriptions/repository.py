# app/subscriptions/repository.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional
from uuid import UUID

from db import dict_cursor

from app.subscriptions.model import (
    Subscription,
    SubscriptionFields,
    SubscriptionStatus,
    User,
    UserMode,
)


_USER_COLUMNS = "id, email, name, mode, payment_customer_id, referred_by"

_SUBSCRIPTION_COLUMNS = """
  id, user_id, provider_subscription_id, provider_customer_id, status, plan,
  current_period_start, current_period_end, trial_start, trial_end,
  cancel_at_period_end, canceled_at, grace_period_ends_at
"""


def _to_user(row: dict[str, Any] | None) -> Optional[User]:
    if not row:
        return None
    return User(
        id=row["id"],
        email=row["email"],
        name=row.get("name"),
        mode=UserMode(row["mode"]),
        payment_customer_id=row.get("payment_customer_id"),
        referred_by=row.get("referred_by"),
    )


def _to_subscription(row: dict[str, Any] | None) -> Optional[Subscription]:
    if not row:
        return None
    return Subscription(
        id=row["id"],
        user_id=row["user_id"],
        provider_subscription_id=row["provider_subscription_id"],
        provider_customer_id=row["provider_customer_id"],
        status=SubscriptionStatus(row["status"]),
        plan=row["plan"],
        current_period_start=row.get("current_period_start"),
        current_period_end=row.get("current_period_end"),
        trial_start=row.get("trial_start"),
        trial_end=row.get("trial_end"),
        cancel_at_period_end=bool(row.get("cancel_at_period_end")),
        canceled_at=row.get("canceled_at"),
        grace_period_ends_at=row.get("grace_period_ends_at"),
    )


# ==========================================================
# Users
# ==========================================================

def get_user(conn, user_id: UUID) -> Optional[User]:
    with dict_cursor(conn) as cur:
        cur.execute(f"SELECT {_USER_COLUMNS} FROM app.users WHERE id = %s", (user_id,))
        return _to_user(cur.fetchone())


def get_user_by_customer_id(conn, customer_id: str) -> Optional[User]:
    with dict_cursor(conn) as cur:
        cur.execute(
            f"SELECT {_USER_COLUMNS} FROM app.users WHERE payment_customer_id = %s",
            (customer_id,),
        )
        return _to_user(cur.fetchone())


def set_user_mode(conn, user_id: UUID, mode: UserMode) -> None:
    with conn.cursor() as cur:
        cur.execute(
            "UPDATE app.users SET mode = %s WHERE id = %s AND mode IS DISTINCT FROM %s",
            (mode.value, user_id, mode.value),
        )


# ==========================================================
# Subscriptions
# ==========================================================

def get_subscription(conn, user_id: UUID) -> Optional[Subscription]:
    with dict_cursor(conn) as cur:
        cur.execute(
            f"SELECT {_SUBSCRIPTION_COLUMNS} FROM app.subscriptions WHERE user_id = %s",
            (user_id,),
        )
        return _to_subscription(cur.fetchone())


def upsert_subscription(conn, user_id: UUID, fields: SubscriptionFields) -> Subscription:
    """
    Full overwrite of the provider snapshot keyed by user_id.
    grace_period_ends_at is local state and is left untouched.
    """
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            INSERT INTO app.subscriptions (
              user_id, provider_subscription_id, provider_customer_id, status, plan,
              current_period_start, current_period_end, trial_start, trial_end,
              cancel_at_period_end, canceled_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (user_id) DO UPDATE SET
              provider_subscription_id = EXCLUDED.provider_subscription_id,
              provider_customer_id = EXCLUDED.provider_customer_id,
              status = EXCLUDED.status,
              plan = EXCLUDED.plan,
              current_period_start = EXCLUDED.current_period_start,
              current_period_end = EXCLUDED.current_period_end,
              trial_start = EXCLUDED.trial_start,
              trial_end = EXCLUDED.trial_end,
              cancel_at_period_end = EXCLUDED.cancel_at_period_end,
              canceled_at = EXCLUDED.canceled_at
            RETURNING {_SUBSCRIPTION_COLUMNS}
            """,
            (
                user_id,
                fields.provider_subscription_id,
                fields.provider_customer_id,
                fields.status.value,
                fields.plan,
                fields.current_period_start,
                fields.current_period_end,
                fields.trial_start,
                fields.trial_end,
                fields.cancel_at_period_end,
                fields.canceled_at,
            ),
        )
        return _to_subscription(cur.fetchone())


def mark_subscription_active(conn, user_id: UUID) -> Optional[Subscription]:
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            UPDATE app.subscriptions
            SET status = 'ACTIVE', grace_period_ends_at = NULL
            WHERE user_id = %s
            RETURNING {_SUBSCRIPTION_COLUMNS}
            """,
            (user_id,),
        )
        return _to_subscription(cur.fetchone())


def mark_subscription_past_due(conn, user_id: UUID, grace_period_ends_at: datetime) -> Optional[Subscription]:
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            UPDATE app.subscriptions
            SET status = 'PAST_DUE', grace_period_ends_at = %s
            WHERE user_id = %s
            RETURNING {_SUBSCRIPTION_COLUMNS}
            """,
            (grace_period_ends_at, user_id),
        )
        return _to_subscription(cur.fetchone())


def mark_subscription_canceled(
    conn,
    user_id: UUID,
    provider_subscription_id: str,
    canceled_at: datetime,
) -> Optional[Subscription]:
    # redelivery keeps the first cancellation stamp
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            UPDATE app.subscriptions
            SET
              canceled_at = CASE
                WHEN status = 'CANCELED' AND canceled_at IS NOT NULL THEN canceled_at
                ELSE %s
              END,
              status = 'CANCELED'
            WHERE user_id = %s
              AND provider_subscription_id = %s
            RETURNING {_SUBSCRIPTION_COLUMNS}
            """,
            (canceled_at, user_id, provider_subscription_id),
        )
        return _to_subscription(cur.fetchone())


def clear_grace_period(conn, user_id: UUID) -> None:
    with conn.cursor() as cur:
        cur.execute(
            "UPDATE app.subscriptions SET grace_period_ends_at = NULL WHERE user_id = %s",
            (user_id,),
        )


def list_expired_grace_periods(conn, now: datetime) -> list[Subscription]:
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            SELECT {_SUBSCRIPTION_COLUMNS}
            FROM app.subscriptions
            WHERE status = 'PAST_DUE'
              AND grace_period_ends_at IS NOT NULL
              AND grace_period_ends_at <= %s
            ORDER BY grace_period_ends_at ASC
            """,
            (now,),
        )
        return [_to_subscription(r) for r in cur.fetchall()]


def list_subscriptions_by_status(conn, statuses: Iterable[SubscriptionStatus]) -> list[Subscription]:
    values = [s.value for s in statuses]
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            SELECT {_SUBSCRIPTION_COLUMNS}
            FROM app.subscriptions
            WHERE status = ANY(%s)
            ORDER BY user_id
            """,
            (values,),
        )
        return [_to_subscription(r) for r in cur.fetchall()]
