"""Device-scoped set of favorited coupon definitions."""

from __future__ import annotations

import json

from loguru import logger

from loyalty_wallet.observability.wallet import WalletObservabilityStore, get_wallet_store
from loyalty_wallet.services.storage import BlobStore


def _parse_favorites(raw: str | None) -> list[str]:
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return []
    if not isinstance(parsed, list):
        return []
    ordered: list[str] = []
    for item in parsed:
        if isinstance(item, str) and item and item not in ordered:
            ordered.append(item)
    return ordered


class FavoritesLedger:
    """Favorite coupon ids persisted under a single global key."""

    def __init__(
        self,
        blob_store: BlobStore,
        *,
        key: str = "coupon_favorites_v1",
        observability: WalletObservabilityStore | None = None,
    ) -> None:
        self._store = blob_store
        self._key = key
        self._observability = observability or get_wallet_store()
        self._ids: list[str] = []
        self._loaded = False

    @property
    def favorite_ids(self) -> frozenset[str]:
        return frozenset(self._ids)

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    async def load(self) -> frozenset[str]:
        try:
            raw = await self._store.get(self._key)
        except Exception as exc:
            logger.warning("Failed to read favorites", key=self._key, error=str(exc))
            self._observability.record_storage_failure("read_favorites")
            raw = None
        self._ids = _parse_favorites(raw)
        self._loaded = True
        return self.favorite_ids

    def is_favorite(self, coupon_id: str) -> bool:
        return coupon_id in self._ids

    async def add(self, coupon_id: str) -> None:
        if not coupon_id or coupon_id in self._ids:
            return
        self._ids = [coupon_id, *self._ids]
        await self._persist()

    async def remove(self, coupon_id: str) -> None:
        if coupon_id not in self._ids:
            return
        self._ids = [item for item in self._ids if item != coupon_id]
        await self._persist()

    async def toggle_favorite(self, coupon_id: str) -> bool:
        """Flip the favorite flag and return the new state."""

        if self.is_favorite(coupon_id):
            await self.remove(coupon_id)
            return False
        await self.add(coupon_id)
        return self.is_favorite(coupon_id)

    async def _persist(self) -> None:
        try:
            await self._store.set(self._key, json.dumps(self._ids))
        except Exception as exc:
            logger.warning("Failed to persist favorites", key=self._key, error=str(exc))
            self._observability.record_storage_failure("write_favorites")


__all__ = ["FavoritesLedger"]
