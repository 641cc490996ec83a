"""Per-session coupon wallet wiring entitlements, favorites and the member account."""

from __future__ import annotations

from datetime import timedelta

from loguru import logger

from loyalty_wallet.core.clock import Clock, utc_now
from loyalty_wallet.core.settings import Settings, settings
from loyalty_wallet.domain.catalog import CouponCatalog, default_catalog
from loyalty_wallet.domain.coupons import ClaimedCoupon, CouponDetail, CouponLookup, CouponOffer, ExpiringCoupon
from loyalty_wallet.domain.tiers import BASE_TIER, Tier, tier_from_balance
from loyalty_wallet.observability.wallet import WalletObservabilityStore
from loyalty_wallet.services.coupons import (
    ClaimResult,
    EntitlementStore,
    FavoritesLedger,
    RedeemResult,
    TierGiftPolicy,
    default_gift_policy,
)
from loyalty_wallet.services.points import MemberAccount
from loyalty_wallet.services.storage import BlobStore, RedisBlobStore, StorageKeys


class CouponWallet:
    """UI-facing coupon surface for one authenticated (or guest) session."""

    def __init__(
        self,
        account: MemberAccount | None,
        entitlements: EntitlementStore,
        favorites: FavoritesLedger,
    ) -> None:
        self._account = account
        self._entitlements = entitlements
        self._favorites = favorites

    @property
    def account(self) -> MemberAccount | None:
        return self._account

    @property
    def entitlements(self) -> EntitlementStore:
        return self._entitlements

    @property
    def tier(self) -> Tier:
        if self._account is None:
            return BASE_TIER
        return tier_from_balance(self._account.balance)

    async def open(self) -> "CouponWallet":
        account = self._account
        await self._entitlements.hydrate(
            account.id if account is not None else None,
            self.tier,
            ledger=account,
        )
        await self._favorites.load()
        logger.debug(
            "Opened coupon wallet",
            user_id=account.id if account is not None else None,
            tier=self.tier.value,
        )
        return self

    async def refresh(self) -> None:
        """Re-hydrate at the account's current tier (after a top-up, for example)."""

        if self._account is None:
            return
        await self._entitlements.refresh(self.tier)

    async def close(self) -> None:
        await self._entitlements.teardown()

    async def claim(self, coupon_id: str) -> ClaimResult:
        return await self._entitlements.claim(coupon_id)

    async def redeem(self, instance_id: str) -> RedeemResult:
        return await self._entitlements.redeem(instance_id)

    def get_coupon(self, coupon_id: str, instance_id: str | None = None) -> CouponLookup:
        return self._entitlements.get_coupon(coupon_id, instance_id)

    def coupon_detail(self, coupon_id: str, instance_id: str | None = None) -> CouponDetail | None:
        points = self._account.points if self._account is not None else 0
        return self._entitlements.coupon_detail(coupon_id, instance_id, points_available=points)

    @property
    def claimed_coupons(self) -> list[ClaimedCoupon]:
        return self._entitlements.claimed_coupons

    @property
    def offers(self) -> list[CouponOffer]:
        return self._entitlements.offers

    def expiring_soon(self, within: timedelta | None = None) -> list[ExpiringCoupon]:
        return self._entitlements.expiring_soon(within)

    @property
    def favorite_ids(self) -> frozenset[str]:
        return self._favorites.favorite_ids

    def is_favorite(self, coupon_id: str) -> bool:
        return self._favorites.is_favorite(coupon_id)

    async def toggle_favorite(self, coupon_id: str) -> bool:
        return await self._favorites.toggle_favorite(coupon_id)


def build_wallet(
    account: MemberAccount | None,
    *,
    blob_store: BlobStore | None = None,
    catalog: CouponCatalog | None = None,
    gift_policy: TierGiftPolicy | None = None,
    clock: Clock | None = None,
    wallet_settings: Settings | None = None,
    observability: WalletObservabilityStore | None = None,
) -> CouponWallet:
    """Wire a wallet with production defaults for anything not supplied."""

    resolved = wallet_settings or settings
    store = blob_store or RedisBlobStore(redis_url=resolved.redis_url)
    entitlements = EntitlementStore(
        catalog or default_catalog(resolved),
        store,
        gift_policy=gift_policy or default_gift_policy(resolved),
        clock=clock or utc_now,
        app_settings=resolved,
        observability=observability,
    )
    favorites = FavoritesLedger(
        store,
        key=StorageKeys.from_settings(resolved).favorites,
        observability=observability,
    )
    return CouponWallet(account, entitlements, favorites)


__all__ = ["CouponWallet", "build_wallet"]
