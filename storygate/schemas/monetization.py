"""
HTTP request/response bodies. Wire names are camelCase (the player and editor are JS clients);
Python attributes stay snake_case.
"""
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


DEFAULT_USER = "defaultUser"


# ---------- Requests ----------

class CheckNodeIn(CamelModel):
    # older editor builds send nodeId
    content_id: str = Field(..., validation_alias=AliasChoices("contentId", "nodeId", "content_id"))
    user_id: str = DEFAULT_USER


class UnlockCoinsIn(CheckNodeIn):
    pass


class RequestAdIn(CheckNodeIn):
    platform: str = "windows"
    ad_type: str = "rewarded"


class VerifyAdIn(CheckNodeIn):
    tracking_id: str
    completed: bool = Field(False, validation_alias=AliasChoices("completed", "adCompleted"))


class PurchaseCoinsIn(CamelModel):
    user_id: str = DEFAULT_USER
    platform: str = "windows"
    receipt: str
    package_id: str


class AddCoinsIn(CamelModel):
    user_id: str = DEFAULT_USER
    amount: int = Field(..., gt=0)


class ResetUserIn(CamelModel):
    user_id: str = DEFAULT_USER


# ---------- Responses ----------

class UserInfoOut(CamelModel):
    user_id: str
    coins: int
    unlocked_content_ids: list[str]


class MonetizationOut(CamelModel):
    type: str
    price: int | None = None
    ad_description: str | None = None


class CheckNodeOut(CamelModel):
    can_access: bool
    reason: str
    monetization: MonetizationOut | None = None


class UnlockOut(CamelModel):
    success: bool = True
    new_balance: int | None = None
    already_unlocked: bool = False
    message: str = ""


class AdOut(CamelModel):
    tracking_id: str
    ad_unit_id: str
    ad_type: str
    provider: str
    duration: int
    reward_type: str


class CoinPackageOut(CamelModel):
    package_id: str
    name: str
    coins: int
    price: float
    currency: str
    store_product_id: str


class PurchaseOut(CamelModel):
    success: bool = True
    new_balance: int
    transaction_id: str
    package_name: str | None = None


class ErrorOut(CamelModel):
    success: bool = False
    error: str
    message: str
