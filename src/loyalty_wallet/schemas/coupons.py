"""Persisted shapes for coupon catalogs and wallet blobs."""

from __future__ import annotations

import json
import math
import re
from datetime import datetime, timezone
from typing import Any, Literal, Sequence

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator, model_validator

from loyalty_wallet.core.clock import format_timestamp, to_utc_millis
from loyalty_wallet.domain.coupons import CouponDefinition, CouponInstance, CouponStatus, make_instance_id
from loyalty_wallet.domain.tiers import Tier

# meta: schema: coupon-wallet

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _coerce_timestamp(value: Any) -> Any:
    if isinstance(value, str) and _DATE_ONLY.match(value.strip()):
        return f"{value.strip()}T00:00:00+00:00"
    return value


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CouponDefinitionSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(..., min_length=1)
    tier: Tier
    valid_from: datetime | None = Field(None, alias="validFrom")
    valid_to: datetime | None = Field(None, alias="validTo")
    repeatable: bool = True
    cost_points: int = Field(0, alias="costPoints")
    title: dict[str, str] = Field(default_factory=dict)
    description: dict[str, str] = Field(default_factory=dict)
    code: str | None = None

    @field_validator("valid_from", "valid_to", mode="before")
    @classmethod
    def _date_only_is_midnight_utc(cls, value: Any) -> Any:
        return _coerce_timestamp(value)

    @field_validator("valid_from", "valid_to")
    @classmethod
    def _normalize_timezone(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @field_validator("cost_points", mode="before")
    @classmethod
    def _floor_cost(cls, value: Any) -> int:
        if value is None:
            return 0
        try:
            amount = float(value)
        except (TypeError, ValueError):
            return 0
        if not math.isfinite(amount):
            return 0
        return max(math.floor(amount), 0)

    def to_domain(self) -> CouponDefinition:
        return CouponDefinition(
            id=self.id,
            tier=self.tier,
            valid_from=self.valid_from,
            valid_to=self.valid_to,
            repeatable=self.repeatable,
            cost_points=self.cost_points,
            title=dict(self.title),
            description=dict(self.description),
            code=self.code,
        )


class StoredCouponInstance(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str | None = Field(None, min_length=1)
    coupon_id: str = Field(..., alias="couponId", min_length=1)
    status: Literal["available", "used", "expired"]
    claimed_at: datetime = Field(..., alias="claimedAt")
    used_at: datetime | None = Field(None, alias="usedAt")

    @field_validator("claimed_at", "used_at")
    @classmethod
    def _normalize_timezone(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @model_validator(mode="after")
    def _used_at_matches_status(self) -> "StoredCouponInstance":
        if (self.status == "used") != (self.used_at is not None):
            raise ValueError("usedAt must be set exactly when status is 'used'")
        return self

    @classmethod
    def from_domain(cls, instance: CouponInstance) -> "StoredCouponInstance":
        return cls(
            id=instance.id,
            coupon_id=instance.coupon_id,
            status=instance.status.value,
            claimed_at=instance.claimed_at,
            used_at=instance.used_at,
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "couponId": self.coupon_id,
            "status": self.status,
            "claimedAt": format_timestamp(self.claimed_at),
        }
        if self.used_at is not None:
            payload["usedAt"] = format_timestamp(self.used_at)
        return payload


_STORED_LIST = TypeAdapter(list[StoredCouponInstance])


def decode_instances(raw: str | None) -> list[CouponInstance] | None:
    """Parse a persisted instance list.

    Any invalid entry rejects the whole list so callers fall back to seeding.
    """

    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(parsed, list):
        return None
    try:
        stored = _STORED_LIST.validate_python(parsed)
    except ValidationError:
        return None

    instances: list[CouponInstance] = []
    taken: set[str] = {entry.id for entry in stored if entry.id}
    seen: set[str] = set()
    for entry in stored:
        instance_id = entry.id
        if instance_id is None:
            instance_id = make_instance_id(entry.coupon_id, entry.claimed_at, taken)
            taken.add(instance_id)
        if instance_id in seen:
            return None
        seen.add(instance_id)
        # Expiry is derived at read time, so a legacy stored "expired" is just "available".
        status = CouponStatus.USED if entry.status == "used" else CouponStatus.AVAILABLE
        instances.append(
            CouponInstance(
                id=instance_id,
                coupon_id=entry.coupon_id,
                status=status,
                claimed_at=to_utc_millis(entry.claimed_at),
                used_at=to_utc_millis(entry.used_at) if entry.used_at else None,
            )
        )
    return instances


def encode_instances(instances: Sequence[CouponInstance]) -> str:
    return json.dumps([StoredCouponInstance.from_domain(item).to_payload() for item in instances])


__all__ = [
    "CouponDefinitionSchema",
    "StoredCouponInstance",
    "decode_instances",
    "encode_instances",
]
