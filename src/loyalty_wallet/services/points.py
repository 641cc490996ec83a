"""Points ledger collaborator contract and an in-memory member account."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Protocol
from uuid import uuid4

from loguru import logger

from loyalty_wallet.core.clock import Clock, utc_now
from loyalty_wallet.domain.tiers import Tier, calculate_points_earned, tier_from_balance


class PointsLedger(Protocol):
    """Spends points on behalf of the entitlement engine."""

    async def spend_points(self, amount: int, metadata: Mapping[str, str]) -> bool:
        ...


class MemberAccount(PointsLedger, Protocol):
    """Authenticated member as seen by the coupon wallet."""

    id: str
    balance: float
    points: int


@dataclass(slots=True)
class PointsRecord:
    """Single entry in a member's points history."""

    id: str
    delta: int
    balance: int
    date: datetime
    coupon_id: str | None = None
    description: str | None = None


@dataclass(slots=True)
class TopUpResult:
    points_earned: int
    balance: float
    tier: Tier


def _floor_points(value: Any) -> int:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(amount):
        return 0
    return max(math.floor(amount), 0)


def _finite(value: Any) -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    return amount if math.isfinite(amount) else 0.0


@dataclass
class InMemoryMemberAccount:
    """Member account holding balance and points in memory."""

    id: str
    balance: float = 0.0
    points: int = 0
    history: list[PointsRecord] = field(default_factory=list)
    clock: Clock = utc_now

    @property
    def tier(self) -> Tier:
        return tier_from_balance(self.balance)

    async def spend_points(self, amount: int, metadata: Mapping[str, str] | None = None) -> bool:
        """Deduct points, returning ``False`` when the balance is insufficient."""

        cost = _floor_points(amount)
        if cost <= 0:
            return True
        if self.points < cost:
            logger.info("Declined points spend", member_id=self.id, cost=cost, points=self.points)
            return False

        self.points -= cost
        meta = dict(metadata or {})
        self.history.insert(
            0,
            PointsRecord(
                id=f"pt_{uuid4().hex[:12]}",
                delta=-cost,
                balance=self.points,
                date=self.clock(),
                coupon_id=meta.get("couponId"),
                description=meta.get("description"),
            ),
        )
        logger.info("Spent member points", member_id=self.id, cost=cost, points=self.points)
        return True

    async def apply_top_up(self, amount: float, bonus: float = 0) -> TopUpResult:
        """Credit a top-up, re-resolve the tier and earn points at the new tier's rate."""

        paid = _finite(amount)
        self.balance = self.balance + paid + _finite(bonus)
        tier = tier_from_balance(self.balance)
        earned = calculate_points_earned(paid, tier)
        if earned > 0:
            self.points += earned
            self.history.insert(
                0,
                PointsRecord(
                    id=f"pt_{uuid4().hex[:12]}",
                    delta=earned,
                    balance=self.points,
                    date=self.clock(),
                    description="points.record.topUpBonus",
                ),
            )
        return TopUpResult(points_earned=earned, balance=self.balance, tier=tier)


__all__ = [
    "InMemoryMemberAccount",
    "MemberAccount",
    "PointsLedger",
    "PointsRecord",
    "TopUpResult",
]
