from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class WalletSnapshot:
    claims: Dict[str, int]
    redemptions: Dict[str, int]
    gifts: Dict[str, int]
    seeds: int
    storage_failures: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "claims": dict(self.claims),
            "redemptions": dict(self.redemptions),
            "gifts": dict(self.gifts),
            "seeds": self.seeds,
            "storage_failures": dict(self.storage_failures),
        }


class WalletObservabilityStore:
    """Collect coupon wallet telemetry for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._claims: Dict[str, int] = defaultdict(int)
        self._redemptions: Dict[str, int] = defaultdict(int)
        self._gifts: Dict[str, int] = defaultdict(int)
        self._seeds = 0
        self._storage_failures: Dict[str, int] = defaultdict(int)

    def record_claim(self, outcome: str) -> None:
        with self._lock:
            self._claims[outcome] += 1

    def record_redemption(self, outcome: str) -> None:
        with self._lock:
            self._redemptions[outcome] += 1

    def record_gift(self, coupon_id: str) -> None:
        with self._lock:
            self._gifts[coupon_id] += 1

    def record_seed(self) -> None:
        with self._lock:
            self._seeds += 1

    def record_storage_failure(self, operation: str) -> None:
        with self._lock:
            self._storage_failures[operation] += 1

    def snapshot(self) -> WalletSnapshot:
        with self._lock:
            return WalletSnapshot(
                claims=dict(self._claims),
                redemptions=dict(self._redemptions),
                gifts=dict(self._gifts),
                seeds=self._seeds,
                storage_failures=dict(self._storage_failures),
            )

    def reset(self) -> None:
        with self._lock:
            self._claims.clear()
            self._redemptions.clear()
            self._gifts.clear()
            self._seeds = 0
            self._storage_failures.clear()


_STORE = WalletObservabilityStore()


def get_wallet_store() -> WalletObservabilityStore:
    return _STORE


__all__ = ["get_wallet_store", "WalletObservabilityStore", "WalletSnapshot"]
