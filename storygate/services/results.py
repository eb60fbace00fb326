"""
Result DTOs of the monetization core. Every domain outcome, failure included, is one of these.
"""
from __future__ import annotations

from pydantic import BaseModel, Field

from storygate.catalog.models import ContentMonetization
from storygate.services.errors import ErrorCode


class UnlockResult(BaseModel):
    success: bool
    error: ErrorCode | None = None
    message: str = ""
    balance: int | None = Field(None, description="Coin balance after the operation")
    already_unlocked: bool = False

    model_config = {"frozen": True}


class AccessDecision(BaseModel):
    allowed: bool
    reason: str = Field(..., description="free / unlocked / ad / paid")
    monetization: ContentMonetization | None = None

    model_config = {"frozen": True}


class AdOffer(BaseModel):
    """Ad config handed to the client along with its one-time tracking token."""

    tracking_id: str
    ad_unit_id: str
    ad_type: str
    provider: str
    duration: int
    reward_type: str

    model_config = {"frozen": True}


class AdVerificationResult(BaseModel):
    success: bool
    error: ErrorCode | None = None
    message: str = ""
    content_id: str | None = None
    elapsed_ms: int | None = None

    model_config = {"frozen": True}


class PaymentVerificationResult(BaseModel):
    success: bool
    error: ErrorCode | None = None
    message: str = ""
    transaction_id: str | None = None
    coins: int = 0
    package_name: str | None = None

    model_config = {"frozen": True}


class PurchaseResult(BaseModel):
    success: bool
    error: ErrorCode | None = None
    message: str = ""
    new_balance: int | None = None
    transaction_id: str | None = None
    package_name: str | None = None

    model_config = {"frozen": True}


def failure(model: type[BaseModel], error: ErrorCode, message: str, **fields):
    return model(success=False, error=error, message=message, **fields)
