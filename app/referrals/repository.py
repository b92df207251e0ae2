# app/referrals/repository.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from db import dict_cursor

from app.referrals.model import Referral, ReferralStatus


_REFERRAL_COLUMNS = """
  id, referrer_id, referee_id, status, qualified_at, scheduled_payout_at,
  payout_attempts, next_attempt_at, created_at
"""


def _to_referral(row: dict[str, Any] | None) -> Optional[Referral]:
    if not row:
        return None
    return Referral(
        id=row["id"],
        referrer_id=row["referrer_id"],
        referee_id=row["referee_id"],
        status=ReferralStatus(row["status"]),
        qualified_at=row.get("qualified_at"),
        scheduled_payout_at=row.get("scheduled_payout_at"),
        payout_attempts=int(row.get("payout_attempts") or 0),
        next_attempt_at=row.get("next_attempt_at"),
        created_at=row["created_at"],
    )


# ==========================================================
# Reads
# ==========================================================

def get_referral(conn, referral_id: UUID) -> Optional[Referral]:
    with dict_cursor(conn) as cur:
        cur.execute(f"SELECT {_REFERRAL_COLUMNS} FROM app.referrals WHERE id = %s", (referral_id,))
        return _to_referral(cur.fetchone())


def get_referral_by_referee(conn, referee_id: UUID) -> Optional[Referral]:
    with dict_cursor(conn) as cur:
        cur.execute(f"SELECT {_REFERRAL_COLUMNS} FROM app.referrals WHERE referee_id = %s", (referee_id,))
        return _to_referral(cur.fetchone())


def list_referrals(
    conn,
    *,
    status: ReferralStatus | None = None,
    referrer_id: UUID | None = None,
) -> list[Referral]:
    where = []
    params: list[Any] = []
    if status is not None:
        where.append("status = %s")
        params.append(status.value)
    if referrer_id is not None:
        where.append("referrer_id = %s")
        params.append(referrer_id)
    where_sql = ("WHERE " + " AND ".join(where)) if where else ""

    with dict_cursor(conn) as cur:
        cur.execute(
            f"SELECT {_REFERRAL_COLUMNS} FROM app.referrals {where_sql} ORDER BY created_at DESC",
            tuple(params),
        )
        return [_to_referral(r) for r in cur.fetchall()]


def list_due_referrals(conn, *, now: datetime, max_attempts: int) -> list[Referral]:
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            SELECT {_REFERRAL_COLUMNS}
            FROM app.referrals
            WHERE status = 'QUALIFIED'
              AND scheduled_payout_at <= %s
              AND payout_attempts < %s
              AND (next_attempt_at IS NULL OR next_attempt_at <= %s)
            ORDER BY scheduled_payout_at ASC
            """,
            (now, max_attempts, now),
        )
        return [_to_referral(r) for r in cur.fetchall()]


def count_referrals_by_status(conn) -> dict[str, int]:
    with conn.cursor() as cur:
        cur.execute("SELECT status, COUNT(*) FROM app.referrals GROUP BY status")
        counts = {s.value: 0 for s in ReferralStatus}
        for status, count in cur.fetchall():
            counts[status] = int(count)
        return counts


# ==========================================================
# Writes
# ==========================================================

def get_or_create_referral(conn, *, referrer_id: UUID, referee_id: UUID) -> Referral:
    # unique(referee_id) makes concurrent deliveries converge on one row
    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO app.referrals (referrer_id, referee_id, status)
            VALUES (%s, %s, 'PENDING')
            ON CONFLICT (referee_id) DO NOTHING
            """,
            (referrer_id, referee_id),
        )
    return get_referral_by_referee(conn, referee_id)


def qualify_referral(conn, referral_id: UUID, *, qualified_at: datetime, scheduled_payout_at: datetime) -> bool:
    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE app.referrals
            SET status = 'QUALIFIED', qualified_at = %s, scheduled_payout_at = %s, updated_at = now()
            WHERE id = %s AND status = 'PENDING'
            """,
            (qualified_at, scheduled_payout_at, referral_id),
        )
        return cur.rowcount == 1


def claim_referral(conn, referral_id: UUID, *, now: datetime, lease_until: datetime) -> bool:
    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE app.referrals
            SET next_attempt_at = %s, updated_at = now()
            WHERE id = %s
              AND status = 'QUALIFIED'
              AND (next_attempt_at IS NULL OR next_attempt_at <= %s)
            """,
            (lease_until, referral_id, now),
        )
        return cur.rowcount == 1


def mark_referral_paid(conn, referral_id: UUID) -> bool:
    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE app.referrals
            SET status = 'PAID', next_attempt_at = NULL, updated_at = now()
            WHERE id = %s AND status = 'QUALIFIED'
            """,
            (referral_id,),
        )
        return cur.rowcount == 1


def record_failed_attempt(conn, referral_id: UUID, *, next_attempt_at: datetime) -> None:
    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE app.referrals
            SET payout_attempts = payout_attempts + 1, next_attempt_at = %s, updated_at = now()
            WHERE id = %s AND status = 'QUALIFIED'
            """,
            (next_attempt_at, referral_id),
        )


def force_schedule_referral(conn, referral_id: UUID, *, scheduled_payout_at: datetime) -> bool:
    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE app.referrals
            SET scheduled_payout_at = %s, payout_attempts = 0, next_attempt_at = NULL, updated_at = now()
            WHERE id = %s AND status = 'QUALIFIED'
            """,
            (scheduled_payout_at, referral_id),
        )
        return cur.rowcount == 1


def cancel_referral(conn, referral_id: UUID) -> bool:
    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE app.referrals
            SET status = 'CANCELED', next_attempt_at = NULL, updated_at = now()
            WHERE id = %s AND status IN ('PENDING', 'QUALIFIED')
            """,
            (referral_id,),
        )
        return cur.rowcount == 1
