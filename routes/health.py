from __future__ import annotations

import os

from fastapi import APIRouter
from fastapi.responses import Response

from db import get_conn
from app.providers.config import payout_mode
from services.metrics import render_prometheus

router = APIRouter(tags=["health"])

MIGRATION_REVISION = "0001_baseline_schema"


def _check_db() -> tuple[bool, str | None]:
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True, None
    except Exception as exc:
        return False, f"{type(exc).__name__}: {exc}"


def _check_migrations() -> bool:
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT version_num FROM alembic_version LIMIT 1;")
                row = cur.fetchone()
                return bool(row and row[0])
    except Exception:
        return False


def _resolve_git_sha() -> str | None:
    return (os.getenv("GIT_SHA") or "").strip() or None


@router.get("/health")
def health():
    return {
        "ok": True,
        "env": (os.getenv("ENVIRONMENT") or "").strip(),
        "payout_mode": payout_mode(),
        "git_sha": _resolve_git_sha(),
    }


@router.get("/readyz")
def readyz():
    db_ok, db_error = _check_db()
    migrations_ok = _check_migrations() if db_ok else False
    return {
        "ready": bool(db_ok and migrations_ok),
        "version": os.getenv("APP_VERSION", "1.0.0"),
        "db_ok": db_ok,
        "db_error": db_error,
        "migrations_ok": migrations_ok,
        "migration_revision": MIGRATION_REVISION,
    }


@router.get("/metrics")
def metrics():
    return Response(content=render_prometheus(), media_type="text/plain; version=0.0.4")
