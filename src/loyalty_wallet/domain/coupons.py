"""Coupon definitions, instances and the read models derived from them."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Iterable, Literal, Mapping

from loyalty_wallet.core.clock import to_utc_millis
from loyalty_wallet.domain.tiers import Tier


class CouponStatus(str, Enum):
    """Lifecycle status of a coupon instance.

    Only ``AVAILABLE`` and ``USED`` are ever stored. ``EXPIRED`` is reported for
    available instances whose definition window has closed.
    """

    AVAILABLE = "available"
    USED = "used"
    EXPIRED = "expired"


DisplayStatus = Literal["unclaimed", "available", "used", "expired"]


@dataclass(frozen=True, slots=True)
class CouponDefinition:
    """Catalog entry describing the rules of a coupon."""

    id: str
    tier: Tier
    valid_to: datetime | None = None
    valid_from: datetime | None = None
    repeatable: bool = True
    cost_points: int = 0
    title: Mapping[str, str] = field(default_factory=dict)
    description: Mapping[str, str] = field(default_factory=dict)
    code: str | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.valid_to is not None and now > self.valid_to


@dataclass(frozen=True, slots=True)
class CouponInstance:
    """A user's copy of a coupon definition."""

    id: str
    coupon_id: str
    status: CouponStatus
    claimed_at: datetime
    used_at: datetime | None = None

    def effective_status(self, definition: CouponDefinition, now: datetime) -> CouponStatus:
        if self.status == CouponStatus.AVAILABLE and definition.is_expired(now):
            return CouponStatus.EXPIRED
        return self.status

    def is_usable(self, definition: CouponDefinition, now: datetime) -> bool:
        return self.effective_status(definition, now) == CouponStatus.AVAILABLE

    def mark_used(self, used_at: datetime) -> "CouponInstance":
        return replace(self, status=CouponStatus.USED, used_at=to_utc_millis(used_at))


def make_instance_id(coupon_id: str, claimed_at: datetime, taken_ids: Iterable[str] = ()) -> str:
    """Derive an instance id from the coupon id and claim time.

    Grants within the same millisecond get a numeric suffix starting at 2.
    """

    millis = int(to_utc_millis(claimed_at).timestamp() * 1000)
    base = f"{coupon_id}_{millis}"
    taken = set(taken_ids)
    if base not in taken:
        return base
    suffix = 2
    while f"{base}_{suffix}" in taken:
        suffix += 1
    return f"{base}_{suffix}"


@dataclass(frozen=True, slots=True)
class ClaimedCoupon:
    """A held instance joined with its definition."""

    definition: CouponDefinition
    instance: CouponInstance
    is_expired: bool

    @property
    def effective_status(self) -> CouponStatus:
        if self.instance.status == CouponStatus.AVAILABLE and self.is_expired:
            return CouponStatus.EXPIRED
        return self.instance.status


@dataclass(frozen=True, slots=True)
class CouponOffer:
    definition: CouponDefinition
    is_unlocked: bool


@dataclass(frozen=True, slots=True)
class CouponLookup:
    definition: CouponDefinition | None
    instance: CouponInstance | None


@dataclass(frozen=True, slots=True)
class ExpiringCoupon:
    coupon: ClaimedCoupon
    days_until_expiry: int


@dataclass(frozen=True, slots=True)
class CouponDetail:
    """Everything the coupon detail screen needs to render one coupon."""

    definition: CouponDefinition
    instance: CouponInstance | None
    status: DisplayStatus
    is_unlocked: bool
    is_claimable: bool
    cost_points: int
    missing_points: int
    can_afford: bool
    redeem_code: str | None

    @property
    def can_redeem(self) -> bool:
        return self.redeem_code is not None


def days_until(valid_to: datetime, now: datetime) -> int:
    remaining = (valid_to - now).total_seconds()
    return max(math.ceil(remaining / 86_400), 0)


__all__ = [
    "ClaimedCoupon",
    "CouponDefinition",
    "CouponDetail",
    "CouponInstance",
    "CouponLookup",
    "CouponOffer",
    "CouponStatus",
    "DisplayStatus",
    "ExpiringCoupon",
    "days_until",
    "make_instance_id",
]
