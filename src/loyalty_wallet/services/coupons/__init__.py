"""Coupon wallet service exports."""

from .entitlements import (  # noqa: F401
    ClaimOutcome,
    ClaimResult,
    EntitlementStore,
    RedeemOutcome,
    RedeemResult,
)
from .favorites import FavoritesLedger  # noqa: F401
from .gifting import DEFAULT_TIER_GIFTS, TierGiftPolicy, default_gift_policy, load_tier_gifts  # noqa: F401
