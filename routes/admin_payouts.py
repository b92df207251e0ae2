# routes/admin_payouts.py
from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response

from app.referrals.model import ReferralStatus
from app.referrals.state_machine import InvalidTransition
from app.workers.payout_worker import PayoutScheduler
from deps.admin import require_admin
from deps.auth import CurrentUser
from deps.services import get_payout_admin, get_payout_scheduler, get_reconciler
from schemas import referral_to_dict
from services.payout_admin import PayoutAdminService, ReferralNotFound
from services.reconcile import SubscriptionReconciler

router = APIRouter(prefix="/v1/admin", tags=["admin-payouts"])


@router.get("/referrals")
def list_referrals(
    status: Optional[ReferralStatus] = Query(default=None),
    admin: CurrentUser = Depends(require_admin),
    service: PayoutAdminService = Depends(get_payout_admin),
):
    rows = [referral_to_dict(r) for r in service.list_referrals(status)]
    return {"referrals": rows, "count": len(rows)}


@router.get("/payouts/queue")
def payout_queue(
    admin: CurrentUser = Depends(require_admin),
    service: PayoutAdminService = Depends(get_payout_admin),
):
    rows = [referral_to_dict(r) for r in service.payout_queue()]
    return {"referrals": rows, "count": len(rows)}


@router.get("/payouts/stats")
def payout_stats(
    admin: CurrentUser = Depends(require_admin),
    service: PayoutAdminService = Depends(get_payout_admin),
):
    return service.stats()


@router.get("/payouts/export")
def export_payouts(
    admin: CurrentUser = Depends(require_admin),
    service: PayoutAdminService = Depends(get_payout_admin),
):
    return Response(
        content=service.export_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="payouts.csv"'},
    )


@router.post("/payouts/run")
def run_payouts(
    admin: CurrentUser = Depends(require_admin),
    scheduler: PayoutScheduler = Depends(get_payout_scheduler),
):
    return scheduler.run()


@router.post("/payouts/{referral_id}/approve")
def approve_payout(
    referral_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    service: PayoutAdminService = Depends(get_payout_admin),
):
    try:
        result = service.approve(referral_id)
    except ReferralNotFound:
        raise HTTPException(status_code=404, detail="REFERRAL_NOT_FOUND")
    except InvalidTransition as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"referral": referral_to_dict(result["referral"]), "run": result["run"]}


@router.post("/referrals/{referral_id}/cancel")
def cancel_referral(
    referral_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    service: PayoutAdminService = Depends(get_payout_admin),
):
    try:
        referral = service.cancel(referral_id)
    except ReferralNotFound:
        raise HTTPException(status_code=404, detail="REFERRAL_NOT_FOUND")
    except InvalidTransition as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"referral": referral_to_dict(referral)}


@router.post("/subscriptions/reconcile")
def reconcile_subscriptions(
    sync: bool = Query(default=True),
    admin: CurrentUser = Depends(require_admin),
    reconciler: SubscriptionReconciler = Depends(get_reconciler),
):
    return reconciler.run(sync_provider=sync)
