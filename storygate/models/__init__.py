from storygate.models.ad_completion import AdCompletion
from storygate.models.entitlement import UnlockedContent, UserEntitlement
from storygate.models.purchase import PurchaseRecord

__all__ = ["AdCompletion", "PurchaseRecord", "UnlockedContent", "UserEntitlement"]
