"""
Read-only configuration supplied by the surrounding application:
story script (per-node monetization), coin packages, ad placements.
"""
from storygate.catalog.config import get_ad_placement, get_coin_package, get_coin_packages
from storygate.catalog.models import AdPlacement, CoinPackage, ContentMonetization, MonetizationType
from storygate.catalog.story import ContentCatalog, StoryNode, StoryOption

__all__ = [
    "AdPlacement",
    "CoinPackage",
    "ContentCatalog",
    "ContentMonetization",
    "MonetizationType",
    "StoryNode",
    "StoryOption",
    "get_ad_placement",
    "get_coin_package",
    "get_coin_packages",
]
