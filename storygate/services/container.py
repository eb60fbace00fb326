"""
Process-wide wiring of the monetization core. API routes, Celery tasks and the
in-process playback gate all resolve their services here.
"""
from dataclasses import dataclass
from typing import Callable

from sqlalchemy.orm import Session

from storygate.catalog.story import ContentCatalog, get_content_catalog
from storygate.core.config import settings
from storygate.db.session import SessionLocal
from storygate.services.ad_sessions.service import AdSessionTracker, build_tracker
from storygate.services.ad_verification.service import AdVerificationService
from storygate.services.entitlements.service import EntitlementStore
from storygate.services.payments.service import PaymentVerificationService
from storygate.services.providers.base import AdProvider, StoreProvider
from storygate.services.providers.factory import ProviderFactory
from storygate.services.purchases.ledger import PurchaseLedger
from storygate.services.unlock.service import UnlockCoordinator


@dataclass
class Services:
    tracker: AdSessionTracker
    ledger: PurchaseLedger
    store: EntitlementStore
    ad_verification: AdVerificationService
    payments: PaymentVerificationService
    coordinator: UnlockCoordinator


def build_services(
    session_factory: Callable[[], Session] = SessionLocal,
    catalog: ContentCatalog | None = None,
    tracker: AdSessionTracker | None = None,
    ad_provider: AdProvider | None = None,
    store_provider: StoreProvider | None = None,
) -> Services:
    if tracker is None:
        tracker = build_tracker()
    if ad_provider is None:
        ad_provider = ProviderFactory.create_ad_provider(settings.ad_provider)
    if store_provider is None:
        store_provider = ProviderFactory.create_store_provider(settings.store_provider)
    if catalog is None:
        catalog = get_content_catalog()
    ledger = PurchaseLedger(session_factory)
    store = EntitlementStore(session_factory)
    ad_verification = AdVerificationService(tracker, ad_provider, session_factory)
    payments = PaymentVerificationService(store_provider, ledger)
    coordinator = UnlockCoordinator(
        store=store,
        catalog=catalog,
        ad_verification=ad_verification,
        payments=payments,
        ledger=ledger,
    )
    return Services(
        tracker=tracker,
        ledger=ledger,
        store=store,
        ad_verification=ad_verification,
        payments=payments,
        coordinator=coordinator,
    )


_services: Services | None = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services()
    return _services


def set_services(services: Services | None) -> None:
    """Swap the process-wide services (tests, embedding applications)."""
    global _services
    _services = services
