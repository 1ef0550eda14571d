"""
pools.py - Lending pool catalogue

One pool per asset type, seeded at process start and never created or
removed afterwards. Deposits raise total_deposited, loans raise
total_borrowed; every change to either total is followed by recompute().

    utilization_rate = total_borrowed / total_deposited * 100
                       (0 when nothing is deposited)
"""

from __future__ import annotations
from decimal import Decimal
from typing import List, TYPE_CHECKING

from .core import AssetType, LendingPool

if TYPE_CHECKING:
    from .store import Store


# Default catalogue. Identical on every cold start.
DEFAULT_POOL_SPECS = (
    # (id, asset, total_deposited, total_borrowed, supply APY %)
    ("pool-eth", AssetType.ETH, Decimal("1000"), Decimal("450"), Decimal("5.0")),
    ("pool-btc", AssetType.BTC, Decimal("50"), Decimal("20"), Decimal("4.5")),
    ("pool-usdc", AssetType.USDC, Decimal("100000"), Decimal("60000"), Decimal("6.0")),
)


def calculate_utilization_rate(total_borrowed: Decimal, total_deposited: Decimal) -> Decimal:
    """Percentage of deposited funds currently lent out. 0 for an empty pool."""
    if total_deposited <= 0:
        return Decimal("0")
    return total_borrowed / total_deposited * Decimal("100")


def default_pools() -> List[LendingPool]:
    """Fresh LendingPool objects for the default catalogue."""
    return [
        LendingPool(
            id=pool_id,
            asset_type=asset,
            total_deposited=deposited,
            total_borrowed=borrowed,
            interest_rate=rate,
            utilization_rate=calculate_utilization_rate(borrowed, deposited),
        )
        for pool_id, asset, deposited, borrowed, rate in DEFAULT_POOL_SPECS
    ]


class PoolRegistry:
    """Typed view over the Store's lending pools."""

    def __init__(self, store: Store):
        self.store = store

    def list_pools(self) -> List[LendingPool]:
        """All pools in insertion (catalogue) order."""
        return list(self.store.lending_pools.values())

    def get_pool(self, pool_id: str) -> LendingPool:
        """Raises PoolNotFound for an unknown id."""
        return self.store.get_pool(pool_id)

    def pool_for(self, asset_type: AssetType) -> LendingPool:
        asset_type = AssetType(asset_type)
        for pool in self.store.lending_pools.values():
            if pool.asset_type is asset_type:
                return pool
        raise KeyError(f"No pool for {asset_type.value}")

    @staticmethod
    def available_liquidity(pool: LendingPool) -> Decimal:
        return pool.total_deposited - pool.total_borrowed

    @staticmethod
    def recompute(pool: LendingPool) -> None:
        pool.utilization_rate = calculate_utilization_rate(
            pool.total_borrowed, pool.total_deposited
        )
