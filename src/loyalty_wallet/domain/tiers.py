"""VIP tier resolution and per-tier earning rates."""

from __future__ import annotations

import math
from enum import Enum
from typing import Any


class Tier(str, Enum):
    """Loyalty tiers in ascending order."""

    SILVER = "silver"
    GOLD = "gold"
    DIAMOND = "diamond"
    PLATINUM = "platinum"
    BLACK_GOLD = "blackGold"


TIER_ORDER: tuple[Tier, ...] = (
    Tier.SILVER,
    Tier.GOLD,
    Tier.DIAMOND,
    Tier.PLATINUM,
    Tier.BLACK_GOLD,
)

TIER_MIN_BALANCE: dict[Tier, float] = {
    Tier.SILVER: 100,
    Tier.GOLD: 200,
    Tier.DIAMOND: 300,
    Tier.PLATINUM: 500,
    Tier.BLACK_GOLD: 1000,
}

POINTS_PER_DOLLAR: dict[Tier, float] = {
    Tier.SILVER: 0.5,
    Tier.GOLD: 0.75,
    Tier.DIAMOND: 1.0,
    Tier.PLATINUM: 1.25,
    Tier.BLACK_GOLD: 1.5,
}

BASE_TIER = TIER_ORDER[0]


def _finite_amount(value: Any) -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(amount):
        return 0.0
    return amount


def coerce_tier(value: Tier | str) -> Tier:
    """Return the enum member for a tier or its raw value."""

    if isinstance(value, Tier):
        return value
    return Tier(value)


def tier_rank(value: Tier | str) -> int:
    return TIER_ORDER.index(coerce_tier(value))


def tier_from_balance(balance: Any) -> Tier:
    """Return the highest tier whose minimum balance is met."""

    amount = max(_finite_amount(balance), 0.0)
    current = BASE_TIER
    for tier in TIER_ORDER:
        if amount >= TIER_MIN_BALANCE[tier]:
            current = tier
    return current


def is_tier_at_least(user_tier: Tier | str, required_tier: Tier | str) -> bool:
    return tier_rank(user_tier) >= tier_rank(required_tier)


def tiers_between(lower: Tier | str | None, upper: Tier | str) -> list[Tier]:
    """Tiers strictly above ``lower`` up to and including ``upper``.

    ``lower=None`` means no tier has been observed yet, so every tier up to ``upper``
    is included.
    """

    start = -1 if lower is None else tier_rank(lower)
    end = tier_rank(upper)
    return [tier for index, tier in enumerate(TIER_ORDER) if start < index <= end]


def points_per_dollar(tier: Tier | str) -> float:
    try:
        return POINTS_PER_DOLLAR[coerce_tier(tier)]
    except ValueError:
        return POINTS_PER_DOLLAR[BASE_TIER]


def calculate_points_earned(amount: Any, tier: Tier | str) -> int:
    paid = _finite_amount(amount)
    if paid <= 0:
        return 0
    return math.floor(paid * points_per_dollar(tier))


__all__ = [
    "BASE_TIER",
    "POINTS_PER_DOLLAR",
    "TIER_MIN_BALANCE",
    "TIER_ORDER",
    "Tier",
    "calculate_points_earned",
    "coerce_tier",
    "is_tier_at_least",
    "points_per_dollar",
    "tier_from_balance",
    "tier_rank",
    "tiers_between",
]
