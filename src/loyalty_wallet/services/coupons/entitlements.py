"""Service layer for the coupons a member holds."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable

from loguru import logger

from loyalty_wallet.core.clock import Clock, to_utc_millis, utc_now
from loyalty_wallet.core.settings import Settings, settings
from loyalty_wallet.domain.catalog import CouponCatalog
from loyalty_wallet.domain.coupons import (
    ClaimedCoupon,
    CouponDefinition,
    CouponDetail,
    CouponInstance,
    CouponLookup,
    CouponOffer,
    CouponStatus,
    ExpiringCoupon,
    days_until,
    make_instance_id,
)
from loyalty_wallet.domain.tiers import BASE_TIER, Tier, coerce_tier, is_tier_at_least, tier_rank
from loyalty_wallet.observability.wallet import WalletObservabilityStore, get_wallet_store
from loyalty_wallet.schemas.coupons import decode_instances, encode_instances
from loyalty_wallet.services.coupons.gifting import TierGiftPolicy
from loyalty_wallet.services.points import PointsLedger
from loyalty_wallet.services.storage import BlobStore, StorageKeys


class ClaimOutcome(str, Enum):
    CLAIMED = "claimed"
    NO_SESSION = "no_session"
    UNKNOWN_COUPON = "unknown_coupon"
    TIER_LOCKED = "tier_locked"
    ALREADY_CLAIMED = "already_claimed"
    INSUFFICIENT_POINTS = "insufficient_points"


class RedeemOutcome(str, Enum):
    REDEEMED = "redeemed"
    NO_SESSION = "no_session"
    NOT_FOUND = "not_found"
    NOT_AVAILABLE = "not_available"
    EXPIRED = "expired"


@dataclass(frozen=True, slots=True)
class ClaimResult:
    outcome: ClaimOutcome
    instance: CouponInstance | None = None

    @property
    def claimed(self) -> bool:
        return self.outcome == ClaimOutcome.CLAIMED


@dataclass(frozen=True, slots=True)
class RedeemResult:
    outcome: RedeemOutcome
    instance: CouponInstance | None = None

    @property
    def redeemed(self) -> bool:
        return self.outcome == RedeemOutcome.REDEEMED


def _parse_tier(raw: str | None) -> Tier | None:
    if not raw:
        return None
    try:
        return Tier(raw.strip().strip('"'))
    except ValueError:
        return None


class EntitlementStore:
    """Owns one member's coupon instances and the claim/redeem workflows.

    Ineligible operations are reported through ``ClaimResult``/``RedeemResult``
    outcomes rather than exceptions. Storage failures are logged, counted and
    otherwise ignored so the in-memory state stays usable offline.
    """

    def __init__(
        self,
        catalog: CouponCatalog,
        blob_store: BlobStore,
        *,
        gift_policy: TierGiftPolicy | None = None,
        clock: Clock | None = None,
        app_settings: Settings | None = None,
        observability: WalletObservabilityStore | None = None,
    ) -> None:
        resolved = app_settings or settings
        self._catalog = catalog
        self._store = blob_store
        self._gifts = gift_policy or TierGiftPolicy()
        self._clock = clock or utc_now
        self._keys = StorageKeys.from_settings(resolved)
        self._welcome_coupon_id = resolved.welcome_coupon_id
        self._expiring_window = timedelta(days=resolved.coupon_expiring_soon_days)
        self._observability = observability or get_wallet_store()
        # The store holds a single member's state, so one lock serializes that member.
        self._lock = asyncio.Lock()

        self._user_id: str | None = None
        self._tier: Tier = BASE_TIER
        self._ledger: PointsLedger | None = None
        self._instances: list[CouponInstance] = []
        self._hydrated = False
        # False while the stored instance list could not be read; writes would clobber it.
        self._synced = False

    @property
    def catalog(self) -> CouponCatalog:
        return self._catalog

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def current_tier(self) -> Tier:
        return self._tier

    @property
    def is_hydrated(self) -> bool:
        return self._hydrated

    @property
    def is_synced(self) -> bool:
        return self._synced

    @property
    def instances(self) -> tuple[CouponInstance, ...]:
        return tuple(self._instances)

    def _now(self) -> datetime:
        return to_utc_millis(self._clock())

    # ------------------------------------------------------------------
    # Lifecycle

    async def hydrate(
        self,
        user_id: str | None,
        current_tier: Tier | str = BASE_TIER,
        *,
        ledger: PointsLedger | None = None,
    ) -> None:
        """Load, seed and reconcile the member's coupons."""

        if user_id is None:
            async with self._lock:
                self._clear()
                self._hydrated = True
            return

        tier = coerce_tier(current_tier)
        async with self._lock:
            now = self._now()
            key = self._keys.coupons(user_id)
            read_ok, raw = await self._read(key, operation="read_instances", user_id=user_id)
            loaded = decode_instances(raw)
            if raw and loaded is None:
                logger.warning("Discarded malformed coupon cache", user_id=user_id, key=key)

            if loaded is None:
                instances = self._seed(tier, now)
                self._observability.record_seed()
                logger.info(
                    "Seeded default coupons",
                    user_id=user_id,
                    tier=tier.value,
                    coupon_ids=[item.coupon_id for item in instances],
                )
            else:
                instances = loaded

            instances = await self._reconcile_tier(user_id, tier, instances, now, persist=read_ok)

            self._user_id = user_id
            self._tier = tier
            self._ledger = ledger
            self._instances = instances
            self._hydrated = True
            self._synced = read_ok

            encoded = encode_instances(instances)
            if not read_ok:
                logger.warning("Keeping coupons in memory until storage is readable", user_id=user_id, key=key)
            elif encoded != raw:
                await self._write(key, encoded, operation="write_instances", user_id=user_id)
            logger.debug("Hydrated coupon wallet", user_id=user_id, count=len(instances))

    async def refresh(self, current_tier: Tier | str | None = None) -> None:
        """Re-hydrate the current member, optionally at a new tier."""

        if self._user_id is None:
            return
        await self.hydrate(
            self._user_id,
            self._tier if current_tier is None else current_tier,
            ledger=self._ledger,
        )

    async def teardown(self) -> None:
        async with self._lock:
            self._clear()
            self._hydrated = False

    def _clear(self) -> None:
        self._user_id = None
        self._tier = BASE_TIER
        self._ledger = None
        self._instances = []
        self._synced = False

    def _seed(self, tier: Tier, now: datetime) -> list[CouponInstance]:
        return self._grant(
            self._gifts.seed_coupon_ids(tier, self._welcome_coupon_id),
            existing=[],
            now=now,
        )

    def _grant(
        self,
        coupon_ids: Iterable[str],
        *,
        existing: list[CouponInstance],
        now: datetime,
    ) -> list[CouponInstance]:
        """Build one new instance per coupon id not already held and known to the catalog."""

        held = {item.coupon_id for item in existing}
        taken = {item.id for item in existing}
        granted: list[CouponInstance] = []
        for coupon_id in coupon_ids:
            if coupon_id in held or coupon_id not in self._catalog:
                continue
            instance_id = make_instance_id(coupon_id, now, taken)
            taken.add(instance_id)
            held.add(coupon_id)
            granted.append(
                CouponInstance(
                    id=instance_id,
                    coupon_id=coupon_id,
                    status=CouponStatus.AVAILABLE,
                    claimed_at=now,
                )
            )
        return granted

    async def _reconcile_tier(
        self,
        user_id: str,
        tier: Tier,
        instances: list[CouponInstance],
        now: datetime,
        *,
        persist: bool = True,
    ) -> list[CouponInstance]:
        """Grant gifts for tiers crossed since the last observed tier.

        The baseline only moves when both the tier and the instance list were read,
        so a failed read never records an upgrade whose gifts were not stored.
        """

        tier_key = self._keys.previous_tier(user_id)
        tier_ok, raw_previous = await self._read(tier_key, operation="read_tier", user_id=user_id)
        previous = _parse_tier(raw_previous)

        if previous is not None and tier_rank(tier) > tier_rank(previous):
            gift_ids = self._gifts.gifts_for_upgrade(previous, tier)
            granted = self._grant(gift_ids, existing=instances, now=now)
            for instance in granted:
                self._observability.record_gift(instance.coupon_id)
            if granted:
                logger.info(
                    "Granted tier upgrade gifts",
                    user_id=user_id,
                    previous_tier=previous.value,
                    tier=tier.value,
                    coupon_ids=[item.coupon_id for item in granted],
                )
                instances = [*granted, *instances]

        if persist and tier_ok and raw_previous != tier.value:
            await self._write(tier_key, tier.value, operation="write_tier", user_id=user_id)
        return instances

    # ------------------------------------------------------------------
    # Mutations

    async def claim(self, coupon_id: str) -> ClaimResult:
        """Acquire a new instance of a coupon the member is eligible for."""

        result = await self._claim(coupon_id)
        self._observability.record_claim(result.outcome.value)
        return result

    async def _claim(self, coupon_id: str) -> ClaimResult:
        user_id = self._user_id
        if user_id is None:
            return ClaimResult(ClaimOutcome.NO_SESSION)
        definition = self._catalog.get(coupon_id)
        if definition is None:
            return ClaimResult(ClaimOutcome.UNKNOWN_COUPON)

        rejection = self._claim_rejection(definition, self._now())
        if rejection is not None:
            return ClaimResult(rejection)

        async with self._lock:
            if self._user_id != user_id:
                return ClaimResult(ClaimOutcome.NO_SESSION)

            # Re-check against the latest snapshot; an earlier claim may have landed.
            now = self._now()
            rejection = self._claim_rejection(definition, now)
            if rejection is not None:
                logger.debug("Rejected coupon claim", user_id=user_id, coupon_id=coupon_id, outcome=rejection.value)
                return ClaimResult(rejection)

            if definition.cost_points > 0 and not await self._spend_points(user_id, definition):
                return ClaimResult(ClaimOutcome.INSUFFICIENT_POINTS)

            instance = CouponInstance(
                id=make_instance_id(coupon_id, now, (item.id for item in self._instances)),
                coupon_id=coupon_id,
                status=CouponStatus.AVAILABLE,
                claimed_at=now,
            )
            self._instances = [instance, *self._instances]
            logger.info(
                "Claimed coupon",
                user_id=user_id,
                coupon_id=coupon_id,
                instance_id=instance.id,
                cost_points=definition.cost_points,
            )
            await self._persist_instances(user_id)
            return ClaimResult(ClaimOutcome.CLAIMED, instance)

    def _claim_rejection(self, definition: CouponDefinition, now: datetime) -> ClaimOutcome | None:
        if not is_tier_at_least(self._tier, definition.tier):
            return ClaimOutcome.TIER_LOCKED
        if self._holds(definition, now):
            return ClaimOutcome.ALREADY_CLAIMED
        return None

    def _holds(self, definition: CouponDefinition, now: datetime) -> bool:
        """Non-repeatable coupons count once held; repeatable ones while usable."""

        held = [item for item in self._instances if item.coupon_id == definition.id]
        if not definition.repeatable:
            return bool(held)
        return any(item.is_usable(definition, now) for item in held)

    async def _spend_points(self, user_id: str, definition: CouponDefinition) -> bool:
        if self._ledger is None:
            logger.warning("No points ledger attached", user_id=user_id, coupon_id=definition.id)
            return False
        try:
            spent = await self._ledger.spend_points(definition.cost_points, {"couponId": definition.id})
        except Exception as exc:
            logger.warning(
                "Points spend failed",
                user_id=user_id,
                coupon_id=definition.id,
                error=str(exc),
            )
            return False
        if not spent:
            logger.info(
                "Insufficient points for coupon",
                user_id=user_id,
                coupon_id=definition.id,
                cost_points=definition.cost_points,
            )
        return bool(spent)

    async def redeem(self, instance_id: str) -> RedeemResult:
        """Mark an available instance as used at the point of sale."""

        result = await self._redeem(instance_id)
        self._observability.record_redemption(result.outcome.value)
        return result

    async def _redeem(self, instance_id: str) -> RedeemResult:
        user_id = self._user_id
        if user_id is None:
            return RedeemResult(RedeemOutcome.NO_SESSION)

        async with self._lock:
            if self._user_id != user_id:
                return RedeemResult(RedeemOutcome.NO_SESSION)

            index = next((i for i, item in enumerate(self._instances) if item.id == instance_id), None)
            if index is None:
                return RedeemResult(RedeemOutcome.NOT_FOUND)
            instance = self._instances[index]
            definition = self._catalog.get(instance.coupon_id)
            if definition is None:
                return RedeemResult(RedeemOutcome.NOT_FOUND)
            if instance.status != CouponStatus.AVAILABLE:
                return RedeemResult(RedeemOutcome.NOT_AVAILABLE, instance)

            now = self._now()
            if definition.is_expired(now):
                return RedeemResult(RedeemOutcome.EXPIRED, instance)

            updated = instance.mark_used(now)
            self._instances = [*self._instances[:index], updated, *self._instances[index + 1 :]]
            logger.info(
                "Redeemed coupon",
                user_id=user_id,
                coupon_id=updated.coupon_id,
                instance_id=updated.id,
            )
            await self._persist_instances(user_id)
            return RedeemResult(RedeemOutcome.REDEEMED, updated)

    # ------------------------------------------------------------------
    # Derived views

    def _claimed(self, now: datetime) -> list[ClaimedCoupon]:
        claimed: list[ClaimedCoupon] = []
        for instance in self._instances:
            definition = self._catalog.get(instance.coupon_id)
            if definition is None:
                continue
            claimed.append(
                ClaimedCoupon(definition=definition, instance=instance, is_expired=definition.is_expired(now))
            )
        return claimed

    @property
    def claimed_coupons(self) -> list[ClaimedCoupon]:
        return self._claimed(self._now())

    @property
    def offers(self) -> list[CouponOffer]:
        if self._user_id is None:
            return [CouponOffer(definition=definition, is_unlocked=False) for definition in self._catalog]
        now = self._now()
        return [
            CouponOffer(definition=definition, is_unlocked=is_tier_at_least(self._tier, definition.tier))
            for definition in self._catalog
            if not self._holds(definition, now)
        ]

    def get_coupon(self, coupon_id: str, instance_id: str | None = None) -> CouponLookup:
        definition = self._catalog.get(coupon_id)
        if definition is None:
            return CouponLookup(definition=None, instance=None)

        if instance_id is not None:
            match = next(
                (item for item in self._instances if item.id == instance_id and item.coupon_id == coupon_id),
                None,
            )
            return CouponLookup(definition=definition, instance=match)

        held = [item for item in self._instances if item.coupon_id == coupon_id]
        if not held:
            return CouponLookup(definition=definition, instance=None)
        now = self._now()
        usable = next((item for item in held if item.is_usable(definition, now)), None)
        if usable is not None:
            return CouponLookup(definition=definition, instance=usable)
        return CouponLookup(definition=definition, instance=max(held, key=lambda item: item.claimed_at))

    def expiring_soon(self, within: timedelta | None = None) -> list[ExpiringCoupon]:
        """Usable coupons whose window closes within ``within`` (default from settings)."""

        now = self._now()
        horizon = now + (self._expiring_window if within is None else within)
        expiring: list[ExpiringCoupon] = []
        for coupon in self._claimed(now):
            valid_to = coupon.definition.valid_to
            if valid_to is None or coupon.effective_status != CouponStatus.AVAILABLE:
                continue
            if now < valid_to <= horizon:
                expiring.append(ExpiringCoupon(coupon=coupon, days_until_expiry=days_until(valid_to, now)))
        expiring.sort(key=lambda item: item.coupon.definition.valid_to or now)
        return expiring

    def coupon_detail(
        self,
        coupon_id: str,
        instance_id: str | None = None,
        *,
        points_available: int | None = None,
    ) -> CouponDetail | None:
        lookup = self.get_coupon(coupon_id, instance_id)
        definition = lookup.definition
        if definition is None:
            return None
        instance = lookup.instance
        now = self._now()

        if instance is not None and instance.status == CouponStatus.USED:
            status = "used"
        elif definition.is_expired(now):
            status = "expired"
        elif instance is not None:
            status = "available"
        else:
            status = "unclaimed"

        is_unlocked = self._user_id is not None and is_tier_at_least(self._tier, definition.tier)
        cost = definition.cost_points
        missing = max(cost - max(points_available or 0, 0), 0)
        can_afford = cost == 0 or missing == 0
        redeem_code = instance.id if instance is not None and instance.is_usable(definition, now) else None

        return CouponDetail(
            definition=definition,
            instance=instance,
            status=status,
            is_unlocked=is_unlocked,
            is_claimable=is_unlocked and can_afford and not self._holds(definition, now),
            cost_points=cost,
            missing_points=missing,
            can_afford=can_afford,
            redeem_code=redeem_code,
        )

    # ------------------------------------------------------------------
    # Persistence

    async def _persist_instances(self, user_id: str) -> None:
        if not self._synced:
            logger.warning("Skipped coupon write while storage is unreadable", user_id=user_id)
            return
        await self._write(
            self._keys.coupons(user_id),
            encode_instances(self._instances),
            operation="write_instances",
            user_id=user_id,
        )

    async def _read(self, key: str, *, operation: str, user_id: str) -> tuple[bool, str | None]:
        """Return ``(ok, value)`` so a failed read is not mistaken for a missing key."""

        try:
            return True, await self._store.get(key)
        except Exception as exc:
            logger.warning("Wallet storage read failed", user_id=user_id, key=key, operation=operation, error=str(exc))
            self._observability.record_storage_failure(operation)
            return False, None

    async def _write(self, key: str, value: str, *, operation: str, user_id: str) -> bool:
        try:
            await self._store.set(key, value)
        except Exception as exc:
            logger.warning("Wallet storage write failed", user_id=user_id, key=key, operation=operation, error=str(exc))
            self._observability.record_storage_failure(operation)
            return False
        return True


__all__ = [
    "ClaimOutcome",
    "ClaimResult",
    "EntitlementStore",
    "RedeemOutcome",
    "RedeemResult",
]
