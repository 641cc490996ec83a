"""Gift coupons granted when a member reaches a tier."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Mapping

import tomllib

from loyalty_wallet.domain.tiers import TIER_ORDER, Tier, coerce_tier, is_tier_at_least, tiers_between

if TYPE_CHECKING:  # pragma: no cover
    from loyalty_wallet.core.settings import Settings


DEFAULT_TIER_GIFTS: dict[Tier, tuple[str, ...]] = {
    Tier.GOLD: ("c3",),
    Tier.DIAMOND: ("c4",),
    Tier.PLATINUM: ("c5",),
    Tier.BLACK_GOLD: ("c6",),
}


def _dedupe(ids: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for coupon_id in ids:
        if coupon_id in seen:
            continue
        seen.add(coupon_id)
        ordered.append(coupon_id)
    return ordered


class TierGiftPolicy:
    """Static mapping from tier to the gift coupons granted on reaching it."""

    def __init__(self, gifts: Mapping[Tier | str, Iterable[str]] | None = None) -> None:
        source = DEFAULT_TIER_GIFTS if gifts is None else gifts
        self._gifts: dict[Tier, tuple[str, ...]] = {
            coerce_tier(tier): tuple(_dedupe(ids)) for tier, ids in source.items()
        }

    def gifts_for(self, tier: Tier | str) -> tuple[str, ...]:
        return self._gifts.get(coerce_tier(tier), ())

    def seed_coupon_ids(self, tier: Tier | str, welcome_coupon_id: str | None) -> list[str]:
        """Default grant for a member seen for the first time."""

        ids: list[str] = [welcome_coupon_id] if welcome_coupon_id else []
        for candidate in TIER_ORDER:
            if is_tier_at_least(tier, candidate):
                ids.extend(self.gifts_for(candidate))
        return _dedupe(ids)

    def gifts_for_upgrade(self, previous: Tier | str, current: Tier | str) -> list[str]:
        """Gift ids for every tier crossed moving from ``previous`` to ``current``."""

        ids: list[str] = []
        for crossed in tiers_between(previous, current):
            ids.extend(self.gifts_for(crossed))
        return _dedupe(ids)

    def as_dict(self) -> dict[str, list[str]]:
        return {tier.value: list(ids) for tier, ids in self._gifts.items()}


def load_tier_gifts(config_path: Path) -> TierGiftPolicy:
    """Load the ``[tier_gifts]`` table from a TOML file.

    A file without the table keeps the built-in gifts.
    """

    if not config_path.exists():
        raise FileNotFoundError(f"Tier gift config not found: {config_path}")

    data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    if "tier_gifts" not in data:
        return TierGiftPolicy()
    table = data["tier_gifts"]
    if not isinstance(table, dict):
        raise ValueError("'tier_gifts' must be a table of tier = [coupon ids]")

    gifts: dict[Tier, list[str]] = {}
    for tier_key, payload in table.items():
        if isinstance(payload, str):
            payload = [payload]
        if not isinstance(payload, list):
            continue
        gifts[coerce_tier(tier_key)] = [str(item) for item in payload if isinstance(item, str) and item]
    return TierGiftPolicy(gifts)


def default_gift_policy(app_settings: "Settings | None" = None) -> TierGiftPolicy:
    if app_settings is not None and app_settings.coupon_catalog_path:
        return load_tier_gifts(Path(app_settings.coupon_catalog_path))
    return TierGiftPolicy()


__all__ = ["DEFAULT_TIER_GIFTS", "TierGiftPolicy", "default_gift_policy", "load_tier_gifts"]
