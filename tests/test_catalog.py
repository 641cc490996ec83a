from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from loyalty_wallet.core.settings import Settings
from loyalty_wallet.domain.catalog import CouponCatalog, default_catalog, load_catalog
from loyalty_wallet.domain.tiers import Tier
from loyalty_wallet.services.coupons import DEFAULT_TIER_GIFTS, load_tier_gifts


SHIPPED_CATALOG = Path(__file__).resolve().parents[1] / "config" / "coupon_catalog.toml"


def test_default_catalog_contents() -> None:
    catalog = default_catalog()

    assert catalog.ids() == ("c1", "c2", "c3", "c4", "c5", "c6", "c7", "c8")
    welcome = catalog.get("c1")
    assert welcome is not None
    assert welcome.repeatable is False
    assert welcome.cost_points == 0
    assert catalog.get("c2").cost_points == 100
    assert catalog.get("c6").tier is Tier.BLACK_GOLD
    assert "c9" not in catalog
    assert catalog.get("c9") is None


def test_catalog_rejects_duplicate_ids() -> None:
    with pytest.raises(ValueError):
        CouponCatalog.from_payloads([{"id": "c1", "tier": "silver"}, {"id": "c1", "tier": "gold"}])


def test_load_catalog_from_toml(tmp_path) -> None:
    path = tmp_path / "catalog.toml"
    path.write_text(
        """
[[coupons]]
id = "spring"
tier = "gold"
validTo = "2027-04-01"
costPoints = 25

[[coupons]]
id = "anniversary"
tier = "silver"
repeatable = false
""",
        encoding="utf-8",
    )

    catalog = load_catalog(path)

    assert catalog.ids() == ("spring", "anniversary")
    spring = catalog.get("spring")
    assert spring.valid_to == datetime(2027, 4, 1, tzinfo=timezone.utc)
    assert spring.cost_points == 25
    assert catalog.get("anniversary").repeatable is False


def test_load_catalog_missing_file(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_catalog(tmp_path / "missing.toml")


def test_shipped_catalog_matches_builtin_definitions() -> None:
    shipped = load_catalog(SHIPPED_CATALOG)
    builtin = default_catalog()

    assert shipped.ids() == builtin.ids()
    for definition in shipped:
        assert definition == builtin.get(definition.id)
    assert load_tier_gifts(SHIPPED_CATALOG).as_dict() == {
        tier.value: list(ids) for tier, ids in DEFAULT_TIER_GIFTS.items()
    }


def test_default_catalog_honours_configured_path(tmp_path) -> None:
    path = tmp_path / "catalog.toml"
    path.write_text('[[coupons]]\nid = "only"\ntier = "silver"\n', encoding="utf-8")

    catalog = default_catalog(Settings(_env_file=None, coupon_catalog_path=str(path)))

    assert catalog.ids() == ("only",)
