"""
Monetization API used by the player and the editor preview:
user info, node access checks, coin/ad unlocks, ad configs, coin packages, purchases.
"""
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from storygate.api.deps import services
from storygate.api.errors import error_response
from storygate.schemas.monetization import (
    DEFAULT_USER,
    AdOut,
    CheckNodeIn,
    CheckNodeOut,
    CoinPackageOut,
    ErrorOut,
    MonetizationOut,
    PurchaseCoinsIn,
    PurchaseOut,
    RequestAdIn,
    UnlockCoinsIn,
    UnlockOut,
    UserInfoOut,
    VerifyAdIn,
)
from storygate.services.container import Services


router = APIRouter(prefix="/api/monetization", tags=["monetization"])

ERROR_RESPONSES = {code: {"model": ErrorOut} for code in (400, 402, 404, 409, 503, 504)}


@router.get("/user-info", response_model=UserInfoOut)
def user_info(user_id: str = Query(DEFAULT_USER, alias="userId"), svc: Services = Depends(services)):
    info = svc.coordinator.get_user_info(user_id)
    return UserInfoOut(
        user_id=info["user_id"],
        coins=info["coins"],
        unlocked_content_ids=info["unlocked_content_ids"],
    )


@router.post("/check-node", response_model=CheckNodeOut)
def check_node(payload: CheckNodeIn, svc: Services = Depends(services)):
    decision = svc.coordinator.check_access(payload.user_id, payload.content_id)
    monetization = None
    if decision.monetization is not None:
        monetization = MonetizationOut(
            type=decision.monetization.type.value,
            price=decision.monetization.price,
            ad_description=decision.monetization.ad_description,
        )
    return CheckNodeOut(can_access=decision.allowed, reason=decision.reason, monetization=monetization)


@router.post("/unlock-coins", response_model=UnlockOut, responses=ERROR_RESPONSES)
def unlock_coins(payload: UnlockCoinsIn, svc: Services = Depends(services)):
    result = svc.coordinator.unlock_with_coins(payload.user_id, payload.content_id)
    if not result.success:
        return error_response(result.error, result.message, balance=result.balance)
    return UnlockOut(new_balance=result.balance, already_unlocked=result.already_unlocked, message=result.message)


@router.post("/get-ad", response_model=AdOut, responses=ERROR_RESPONSES)
def get_ad(payload: RequestAdIn, svc: Services = Depends(services)):
    offer = svc.ad_verification.request_ad(
        payload.content_id,
        payload.user_id,
        payload.platform,
        payload.ad_type,
    )
    if offer is None:
        return JSONResponse(status_code=404, content={"success": False, "message": "no ad available"})
    return AdOut(**offer.model_dump())


@router.post("/verify-ad", response_model=UnlockOut, responses=ERROR_RESPONSES)
def verify_ad(payload: VerifyAdIn, svc: Services = Depends(services)):
    result = svc.coordinator.unlock_with_ad(
        payload.user_id,
        payload.content_id,
        payload.tracking_id,
        payload.completed,
    )
    if not result.success:
        return error_response(result.error, result.message)
    return UnlockOut(new_balance=result.balance, already_unlocked=result.already_unlocked, message=result.message)


@router.get("/coin-packages", response_model=list[CoinPackageOut])
def coin_packages(svc: Services = Depends(services)):
    return [CoinPackageOut(**p.model_dump()) for p in svc.payments.list_packages()]


@router.post("/purchase-coins", response_model=PurchaseOut, responses=ERROR_RESPONSES)
def purchase_coins(payload: PurchaseCoinsIn, svc: Services = Depends(services)):
    result = svc.coordinator.credit_from_purchase(
        payload.user_id,
        payload.platform,
        payload.receipt,
        payload.package_id,
    )
    if not result.success:
        return error_response(result.error, result.message, transactionId=result.transaction_id)
    return PurchaseOut(
        new_balance=result.new_balance,
        transaction_id=result.transaction_id,
        package_name=result.package_name,
    )
