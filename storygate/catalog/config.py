"""
Catalog config: typed wrappers over storygate.core.config.settings.
"""
from __future__ import annotations

import json

from storygate.catalog.models import AdPlacement, CoinPackage
from storygate.core.config import settings


def get_coin_packages() -> list[CoinPackage]:
    raw = json.loads(settings.coin_packages)
    return [CoinPackage(**item) for item in raw]


def get_coin_package(package_id: str) -> CoinPackage | None:
    for package in get_coin_packages():
        if package.package_id == package_id:
            return package
    return None


def get_ad_placements() -> dict[str, dict[str, AdPlacement]]:
    raw = json.loads(settings.ad_placements)
    return {
        platform: {ad_type: AdPlacement(**cfg) for ad_type, cfg in by_type.items()}
        for platform, by_type in raw.items()
    }


def get_ad_placement(platform: str, ad_type: str) -> AdPlacement | None:
    return get_ad_placements().get(platform, {}).get(ad_type)
