"""
test_pools.py - Unit tests for pools.py and the Store catalogue

Tests:
- Default pool catalogue on a cold start
- Utilization rate calculation
- PoolRegistry lookups and recompute
"""

import pytest
from decimal import Decimal

from defi_ledger import (
    AssetType, LendingPool, PoolRegistry, PoolNotFound, Store,
    calculate_utilization_rate,
)


class TestCalculateUtilizationRate:

    def test_eth_pool_seed(self):
        """1000 deposited, 450 borrowed -> 45%."""
        assert calculate_utilization_rate(Decimal("450"), Decimal("1000")) == Decimal("45")

    def test_empty_pool_is_zero(self):
        assert calculate_utilization_rate(Decimal("0"), Decimal("0")) == Decimal("0")

    def test_fully_borrowed(self):
        assert calculate_utilization_rate(Decimal("50"), Decimal("50")) == Decimal("100")


class TestDefaultPools:

    def test_catalogue(self, store):
        pools = PoolRegistry(store).list_pools()
        assert [p.id for p in pools] == ["pool-eth", "pool-btc", "pool-usdc"]

        eth, btc, usdc = pools
        assert (eth.asset_type, eth.total_deposited, eth.total_borrowed, eth.interest_rate) == (
            AssetType.ETH, Decimal("1000"), Decimal("450"), Decimal("5.0"))
        assert (btc.asset_type, btc.total_deposited, btc.total_borrowed, btc.interest_rate) == (
            AssetType.BTC, Decimal("50"), Decimal("20"), Decimal("4.5"))
        assert (usdc.asset_type, usdc.total_deposited, usdc.total_borrowed, usdc.interest_rate) == (
            AssetType.USDC, Decimal("100000"), Decimal("60000"), Decimal("6.0"))

    def test_seeded_utilization(self, store):
        registry = PoolRegistry(store)
        assert registry.get_pool("pool-eth").utilization_rate == Decimal("45")
        assert registry.get_pool("pool-btc").utilization_rate == Decimal("40")
        assert registry.get_pool("pool-usdc").utilization_rate == Decimal("60")

    def test_every_cold_start_is_identical(self):
        a, b = Store.fresh(), Store.fresh()
        assert list(a.lending_pools.values()) == list(b.lending_pools.values())
        a.get_pool("pool-eth").total_deposited += 1
        assert b.get_pool("pool-eth").total_deposited == Decimal("1000")


class TestPoolRegistry:

    def test_unknown_pool(self, store):
        with pytest.raises(PoolNotFound):
            PoolRegistry(store).get_pool("pool-doge")

    def test_pool_for_asset(self, store):
        registry = PoolRegistry(store)
        assert registry.pool_for(AssetType.BTC).id == "pool-btc"
        assert registry.pool_for("USDC").id == "pool-usdc"

    def test_available_liquidity(self, store):
        pool = store.get_pool("pool-eth")
        assert PoolRegistry.available_liquidity(pool) == Decimal("550")

    def test_recompute(self, store):
        pool = store.get_pool("pool-eth")
        pool.total_borrowed = Decimal("500")
        PoolRegistry.recompute(pool)
        assert pool.utilization_rate == Decimal("50")

    def test_one_pool_per_asset_type(self, store):
        with pytest.raises(ValueError):
            store.add_pool(LendingPool(
                id="pool-eth-2", asset_type="ETH", total_deposited=1,
                total_borrowed=0, interest_rate=1,
            ))
