import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from loyalty_wallet.core.settings import Settings  # noqa: E402
from loyalty_wallet.domain.catalog import CouponCatalog  # noqa: E402
from loyalty_wallet.observability.wallet import WalletObservabilityStore  # noqa: E402
from loyalty_wallet.services.coupons import EntitlementStore  # noqa: E402
from loyalty_wallet.services.points import InMemoryMemberAccount  # noqa: E402
from loyalty_wallet.services.storage import InMemoryBlobStore  # noqa: E402


NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)
VALID_TO = "2027-06-30T00:00:00Z"

TEST_COUPONS = (
    {"id": "c1", "tier": "silver", "validTo": VALID_TO, "repeatable": False},
    {"id": "c2", "tier": "silver", "validTo": VALID_TO},
    {"id": "c3", "tier": "gold", "validTo": VALID_TO, "repeatable": False},
    {"id": "c4", "tier": "diamond", "validTo": VALID_TO, "repeatable": False},
    {"id": "c5", "tier": "platinum", "validTo": VALID_TO, "repeatable": False},
    {"id": "c6", "tier": "blackGold", "validTo": VALID_TO, "repeatable": False},
    {"id": "c9", "tier": "gold", "validTo": VALID_TO, "repeatable": True, "costPoints": 50},
    {"id": "c10", "tier": "silver", "validTo": "2026-10-19T12:00:00Z"},
    {"id": "c11", "tier": "silver", "validTo": "2026-10-01"},
    {"id": "c12", "tier": "silver", "validTo": VALID_TO, "repeatable": False, "costPoints": 10},
)


class FrozenClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current = self.current + timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def catalog() -> CouponCatalog:
    return CouponCatalog.from_payloads(TEST_COUPONS)


@pytest.fixture
def observability() -> WalletObservabilityStore:
    return WalletObservabilityStore()


@pytest.fixture
def wallet_settings() -> Settings:
    return Settings(_env_file=None, coupon_catalog_path=None, welcome_coupon_id="c1", coupon_expiring_soon_days=3)


@pytest.fixture
def account(clock) -> InMemoryMemberAccount:
    return InMemoryMemberAccount(id="member-1", balance=120, points=0, clock=clock)


@pytest.fixture
def make_store(catalog, blob_store, clock, wallet_settings, observability):
    def factory(**overrides) -> EntitlementStore:
        return EntitlementStore(
            overrides.pop("catalog", catalog),
            overrides.pop("blob_store", blob_store),
            clock=overrides.pop("clock", clock),
            app_settings=overrides.pop("app_settings", wallet_settings),
            observability=overrides.pop("observability", observability),
            **overrides,
        )

    return factory


@pytest.fixture
def now() -> datetime:
    return NOW
