"""
Admin / test-only API: coin grants, user reset, stats, purchase reconciliation.
Protected by X-Admin-Key when admin_api_key is configured.
"""
from fastapi import APIRouter, Depends

from storygate.api.deps import require_admin, services
from storygate.schemas.monetization import AddCoinsIn, ResetUserIn
from storygate.services.container import Services


router = APIRouter(prefix="/api/monetization/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.post("/add-coins")
def add_coins(payload: AddCoinsIn, svc: Services = Depends(services)) -> dict:
    balance = svc.coordinator.add_coins(payload.user_id, payload.amount)
    return {"success": True, "newBalance": balance}


@router.post("/reset")
def reset_user(payload: ResetUserIn, svc: Services = Depends(services)) -> dict:
    svc.coordinator.reset_user(payload.user_id)
    return {"success": True}


@router.get("/ad-stats")
def ad_stats(svc: Services = Depends(services)) -> dict:
    return svc.ad_verification.get_ad_stats()


@router.get("/payment-stats")
def payment_stats(svc: Services = Depends(services)) -> dict:
    return svc.ledger.stats()


@router.post("/reconcile")
def reconcile(svc: Services = Depends(services)) -> dict:
    return svc.coordinator.reconcile_pending()
