"""Static coupon catalog and its TOML loader."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Iterator, Mapping

import tomllib
from loguru import logger

from loyalty_wallet.domain.coupons import CouponDefinition
from loyalty_wallet.schemas.coupons import CouponDefinitionSchema

if TYPE_CHECKING:  # pragma: no cover
    from loyalty_wallet.core.settings import Settings


_CATALOG_VALID_TO = "2027-12-31T23:59:59Z"

DEFAULT_COUPON_DEFINITIONS: tuple[dict[str, Any], ...] = (
    {
        "id": "c1",
        "tier": "silver",
        "validFrom": "2026-01-01",
        "validTo": _CATALOG_VALID_TO,
        "repeatable": False,
        "title": {"en": "Welcome drink", "zh": "迎新饮品", "es": "Bebida de bienvenida"},
        "code": "WELCOME",
    },
    {
        "id": "c2",
        "tier": "silver",
        "validFrom": "2026-01-01",
        "validTo": _CATALOG_VALID_TO,
        "costPoints": 100,
        "title": {"en": "$5 off any order", "zh": "任意订单立减5元", "es": "$5 de descuento"},
        "code": "FIVEOFF",
    },
    {
        "id": "c3",
        "tier": "gold",
        "validFrom": "2026-01-01",
        "validTo": _CATALOG_VALID_TO,
        "repeatable": False,
        "title": {"en": "Gold welcome dessert", "zh": "金卡甜品礼", "es": "Postre de bienvenida Oro"},
        "code": "GOLDGIFT",
    },
    {
        "id": "c4",
        "tier": "diamond",
        "validFrom": "2026-01-01",
        "validTo": _CATALOG_VALID_TO,
        "repeatable": False,
        "title": {"en": "Diamond tasting menu", "zh": "钻石卡品鉴套餐", "es": "Menú degustación Diamante"},
        "code": "DIAMONDGIFT",
    },
    {
        "id": "c5",
        "tier": "platinum",
        "validFrom": "2026-01-01",
        "validTo": _CATALOG_VALID_TO,
        "repeatable": False,
        "title": {"en": "Platinum chef's table", "zh": "白金主厨餐桌", "es": "Mesa del chef Platino"},
        "code": "PLATGIFT",
    },
    {
        "id": "c6",
        "tier": "blackGold",
        "validFrom": "2026-01-01",
        "validTo": _CATALOG_VALID_TO,
        "repeatable": False,
        "title": {"en": "Black Gold private dining", "zh": "黑金私宴", "es": "Cena privada Black Gold"},
        "code": "BLACKGIFT",
    },
    {
        "id": "c7",
        "tier": "gold",
        "validFrom": "2026-01-01",
        "validTo": _CATALOG_VALID_TO,
        "costPoints": 50,
        "title": {"en": "Free dessert", "zh": "免费甜品", "es": "Postre gratis"},
        "code": "DESSERT",
    },
    {
        "id": "c8",
        "tier": "diamond",
        "validFrom": "2026-01-01",
        "validTo": _CATALOG_VALID_TO,
        "title": {"en": "Priority seating", "zh": "优先入座", "es": "Asiento prioritario"},
        "code": "PRIORITY",
    },
)


class CouponCatalog:
    """Immutable, ordered set of coupon definitions keyed by id."""

    __slots__ = ("_definitions", "_by_id")

    def __init__(self, definitions: Iterable[CouponDefinition]) -> None:
        ordered = tuple(definitions)
        by_id: dict[str, CouponDefinition] = {}
        for definition in ordered:
            if definition.id in by_id:
                raise ValueError(f"Duplicate coupon definition id: {definition.id}")
            by_id[definition.id] = definition
        self._definitions = ordered
        self._by_id = by_id

    @classmethod
    def from_payloads(cls, payloads: Iterable[Mapping[str, Any]]) -> "CouponCatalog":
        return cls(CouponDefinitionSchema.model_validate(dict(item)).to_domain() for item in payloads)

    def get(self, coupon_id: str) -> CouponDefinition | None:
        return self._by_id.get(coupon_id)

    def ids(self) -> tuple[str, ...]:
        return tuple(definition.id for definition in self._definitions)

    def __contains__(self, coupon_id: object) -> bool:
        return coupon_id in self._by_id

    def __iter__(self) -> Iterator[CouponDefinition]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)


def load_catalog(config_path: Path) -> CouponCatalog:
    """Load coupon definitions from the ``[[coupons]]`` tables of a TOML file."""

    if not config_path.exists():
        raise FileNotFoundError(f"Coupon catalog not found: {config_path}")

    data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    entries = data.get("coupons", [])
    if not isinstance(entries, list):
        raise ValueError("Coupon catalog 'coupons' must be an array of tables")
    catalog = CouponCatalog.from_payloads(entry for entry in entries if isinstance(entry, dict))
    logger.debug("Loaded coupon catalog", path=str(config_path), count=len(catalog))
    return catalog


def default_catalog(app_settings: "Settings | None" = None) -> CouponCatalog:
    if app_settings is not None and app_settings.coupon_catalog_path:
        return load_catalog(Path(app_settings.coupon_catalog_path))
    return CouponCatalog.from_payloads(DEFAULT_COUPON_DEFINITIONS)


__all__ = ["CouponCatalog", "DEFAULT_COUPON_DEFINITIONS", "default_catalog", "load_catalog"]
