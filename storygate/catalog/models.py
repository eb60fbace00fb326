"""
Catalog DTOs: ContentMonetization (per story node), CoinPackage, AdPlacement.
"""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class MonetizationType(str, Enum):
    FREE = "free"
    AD = "ad"
    PAID = "paid"


class ContentMonetization(BaseModel):
    """Monetization settings of a story node as exported by the editor."""

    type: MonetizationType = MonetizationType.FREE
    price: int | None = Field(None, description="Coin price, only for type=paid")
    ad_description: str | None = Field(None, alias="adDescription")

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class CoinPackage(BaseModel):
    package_id: str
    name: str
    coins: int = Field(..., gt=0)
    price: float
    currency: str = "USD"
    store_product_id: str

    model_config = {"frozen": True}


class AdPlacement(BaseModel):
    """Ad unit for one (platform, ad_type). duration is the minimum watch time in seconds."""

    ad_unit_id: str
    provider: str
    duration: int = Field(..., ge=0)
    reward_type: str = "unlock"

    model_config = {"frozen": True}
