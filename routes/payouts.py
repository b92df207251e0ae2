# routes/payouts.py
from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from app.payouts.model import PAYOUT_COMPLETED
from app.referrals.model import ReferralStatus
from deps.auth import CurrentUser, get_current_user
from deps.services import get_store
from schemas import (
    PayoutMethodCreate,
    PayoutMethodUpdate,
    missing_detail_key,
    payout_method_to_dict,
    payout_to_dict,
    referral_to_dict,
)
from services.observability import log_event

router = APIRouter(prefix="/v1/payouts", tags=["payouts"])
logger = logging.getLogger("memories.payout_methods")


def _owned_method(store, method_id: UUID, user: CurrentUser):
    method = store.get_payout_method(method_id)
    if method is None or method.user_id != user.user_id:
        raise HTTPException(status_code=404, detail="PAYOUT_METHOD_NOT_FOUND")
    return method


@router.get("/methods")
def list_methods(user: CurrentUser = Depends(get_current_user), store=Depends(get_store)):
    methods = store.list_payout_methods(user.user_id, active_only=True)
    return {"methods": [payout_method_to_dict(m) for m in methods]}


@router.post("/methods", status_code=201)
def create_method(
    body: PayoutMethodCreate,
    user: CurrentUser = Depends(get_current_user),
    store=Depends(get_store),
):
    missing = missing_detail_key(body.type, body.details)
    if missing:
        raise HTTPException(status_code=400, detail=f"DETAILS_{missing.upper()}_REQUIRED")

    method = store.create_payout_method(user.user_id, body.type, body.details, body.is_default)
    log_event(
        logger,
        "payout_method.created",
        outcome="created",
        user_id=str(user.user_id),
        method_id=str(method.id),
        method=method.type.value,
    )
    return {"method": payout_method_to_dict(method)}


@router.put("/methods/{method_id}")
def update_method(
    method_id: UUID,
    body: PayoutMethodUpdate,
    user: CurrentUser = Depends(get_current_user),
    store=Depends(get_store),
):
    method = _owned_method(store, method_id, user)

    if body.details is not None:
        missing = missing_detail_key(method.type, body.details)
        if missing:
            raise HTTPException(status_code=400, detail=f"DETAILS_{missing.upper()}_REQUIRED")

    updated = store.update_payout_method(
        method_id,
        details=body.details,
        is_default=body.is_default,
        is_active=body.is_active,
    )
    if updated is None:
        raise HTTPException(status_code=404, detail="PAYOUT_METHOD_NOT_FOUND")
    return {"method": payout_method_to_dict(updated)}


@router.delete("/methods/{method_id}")
def delete_method(
    method_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    store=Depends(get_store),
):
    # soft delete: failed Payout rows keep pointing at the method
    _owned_method(store, method_id, user)
    store.update_payout_method(method_id, is_active=False, is_default=False)
    log_event(logger, "payout_method.deactivated", outcome="deactivated", method_id=str(method_id))
    return {"message": "Payout method deleted"}


@router.get("/referrals")
def my_referrals(user: CurrentUser = Depends(get_current_user), store=Depends(get_store)):
    referrals = store.list_referrals(referrer_id=user.user_id)
    payouts = store.list_payouts(user_id=user.user_id)

    stats = {
        "total": len(referrals),
        "pending": sum(1 for r in referrals if r.status == ReferralStatus.PENDING),
        "qualified": sum(1 for r in referrals if r.status == ReferralStatus.QUALIFIED),
        "paid": sum(1 for r in referrals if r.status == ReferralStatus.PAID),
        "total_earned": sum(
            p.amount for p in payouts if p.status == PAYOUT_COMPLETED and p.referral_id is not None
        ),
    }
    return {"referrals": [referral_to_dict(r) for r in referrals], "stats": stats}


@router.get("/history")
def payout_history(user: CurrentUser = Depends(get_current_user), store=Depends(get_store)):
    payouts = store.list_payouts(user_id=user.user_id)
    return {"payouts": [payout_to_dict(p) for p in payouts]}
