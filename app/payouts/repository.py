# app/payouts/repository.py
from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from psycopg2.extras import Json

from db import dict_cursor

from app.payouts.model import (
    NewPayout,
    Payout,
    PayoutExportRow,
    PayoutMethod,
    PayoutMethodType,
    PayoutStats,
    PAYOUT_COMPLETED,
    PAYOUT_FAILED,
)


_METHOD_COLUMNS = "id, user_id, type, details, is_active, is_default, created_at"

_PAYOUT_COLUMNS = """
  id, user_id, amount, currency, status, referral_id, payout_method_id,
  provider_payout_id, failure_reason, created_at
"""


def _to_method(row: dict[str, Any] | None) -> Optional[PayoutMethod]:
    if not row:
        return None
    return PayoutMethod(
        id=row["id"],
        user_id=row["user_id"],
        type=PayoutMethodType(row["type"]),
        details=dict(row.get("details") or {}),
        is_active=bool(row["is_active"]),
        is_default=bool(row["is_default"]),
        created_at=row["created_at"],
    )


def _to_payout(row: dict[str, Any] | None) -> Optional[Payout]:
    if not row:
        return None
    return Payout(
        id=row["id"],
        user_id=row["user_id"],
        amount=int(row["amount"]),
        currency=row["currency"],
        status=row["status"],
        referral_id=row.get("referral_id"),
        payout_method_id=row.get("payout_method_id"),
        provider_payout_id=row.get("provider_payout_id"),
        failure_reason=row.get("failure_reason"),
        created_at=row["created_at"],
    )


# ==========================================================
# Payout methods
# ==========================================================

def list_payout_methods(conn, user_id: UUID, *, active_only: bool = True) -> list[PayoutMethod]:
    active_sql = "AND is_active = TRUE" if active_only else ""
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            SELECT {_METHOD_COLUMNS}
            FROM app.payout_methods
            WHERE user_id = %s
            {active_sql}
            ORDER BY is_default DESC, created_at DESC
            """,
            (user_id,),
        )
        return [_to_method(r) for r in cur.fetchall()]


def get_payout_method(conn, method_id: UUID) -> Optional[PayoutMethod]:
    with dict_cursor(conn) as cur:
        cur.execute(f"SELECT {_METHOD_COLUMNS} FROM app.payout_methods WHERE id = %s", (method_id,))
        return _to_method(cur.fetchone())


def _unset_defaults(cur, user_id: UUID, *, except_id: UUID | None = None) -> None:
    cur.execute(
        """
        UPDATE app.payout_methods
        SET is_default = FALSE, updated_at = now()
        WHERE user_id = %s AND is_default = TRUE AND id IS DISTINCT FROM %s
        """,
        (user_id, except_id),
    )


def create_payout_method(
    conn,
    *,
    user_id: UUID,
    method_type: PayoutMethodType,
    details: dict[str, Any],
    is_default: bool,
) -> PayoutMethod:
    with dict_cursor(conn) as cur:
        if is_default:
            _unset_defaults(cur, user_id)
        cur.execute(
            f"""
            INSERT INTO app.payout_methods (user_id, type, details, is_active, is_default)
            VALUES (%s, %s, %s::jsonb, TRUE, %s)
            RETURNING {_METHOD_COLUMNS}
            """,
            (user_id, method_type.value, Json(details), is_default),
        )
        return _to_method(cur.fetchone())


def update_payout_method(
    conn,
    method_id: UUID,
    *,
    details: dict[str, Any] | None = None,
    is_default: bool | None = None,
    is_active: bool | None = None,
) -> Optional[PayoutMethod]:
    with dict_cursor(conn) as cur:
        if is_default:
            cur.execute("SELECT user_id FROM app.payout_methods WHERE id = %s", (method_id,))
            row = cur.fetchone()
            if not row:
                return None
            _unset_defaults(cur, row["user_id"], except_id=method_id)

        cur.execute(
            f"""
            UPDATE app.payout_methods
            SET
              details = COALESCE(%s::jsonb, details),
              is_default = COALESCE(%s, is_default),
              is_active = COALESCE(%s, is_active),
              updated_at = now()
            WHERE id = %s
            RETURNING {_METHOD_COLUMNS}
            """,
            (
                Json(details) if details is not None else None,
                is_default,
                is_active,
                method_id,
            ),
        )
        return _to_method(cur.fetchone())


# ==========================================================
# Payouts (insert-only audit rows)
# ==========================================================

def insert_payout(conn, payout: NewPayout) -> Payout:
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            INSERT INTO app.payouts (
              user_id, amount, currency, status, referral_id, payout_method_id,
              provider_payout_id, failure_reason
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_PAYOUT_COLUMNS}
            """,
            (
                payout.user_id,
                payout.amount,
                payout.currency,
                payout.status,
                payout.referral_id,
                payout.payout_method_id,
                payout.provider_payout_id,
                payout.failure_reason,
            ),
        )
        return _to_payout(cur.fetchone())


def list_payouts(conn, *, user_id: UUID | None = None, referral_id: UUID | None = None) -> list[Payout]:
    where = []
    params: list[Any] = []
    if user_id is not None:
        where.append("user_id = %s")
        params.append(user_id)
    if referral_id is not None:
        where.append("referral_id = %s")
        params.append(referral_id)
    where_sql = ("WHERE " + " AND ".join(where)) if where else ""

    with dict_cursor(conn) as cur:
        cur.execute(
            f"SELECT {_PAYOUT_COLUMNS} FROM app.payouts {where_sql} ORDER BY created_at DESC",
            tuple(params),
        )
        return [_to_payout(r) for r in cur.fetchall()]


def list_payout_export_rows(conn) -> list[PayoutExportRow]:
    with dict_cursor(conn) as cur:
        cur.execute(
            """
            SELECT
              p.id,
              u.email AS user_email,
              u.name AS user_name,
              p.amount,
              p.currency,
              p.status,
              referee.email AS referee_email,
              p.provider_payout_id,
              p.created_at
            FROM app.payouts p
            JOIN app.users u ON u.id = p.user_id
            LEFT JOIN app.referrals r ON r.id = p.referral_id
            LEFT JOIN app.users referee ON referee.id = r.referee_id
            ORDER BY p.created_at DESC
            """
        )
        return [PayoutExportRow(**row) for row in cur.fetchall()]


def payout_stats(conn) -> PayoutStats:
    with conn.cursor() as cur:
        cur.execute(
            """
            SELECT
              COUNT(*),
              COUNT(*) FILTER (WHERE status = %s),
              COUNT(*) FILTER (WHERE status = %s),
              COALESCE(SUM(amount) FILTER (WHERE status = %s), 0)
            FROM app.payouts
            """,
            (PAYOUT_COMPLETED, PAYOUT_FAILED, PAYOUT_COMPLETED),
        )
        total, completed, failed, total_amount = cur.fetchone()
    return PayoutStats(
        total=int(total),
        completed=int(completed),
        failed=int(failed),
        total_amount=int(total_amount),
    )
