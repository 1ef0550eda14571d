"""
conftest.py - Shared pytest fixtures for lending ledger tests

Provides common fixtures used across unit, functional and conformance tests:
- A deterministic clock and a cold-start Store
- A LendingService wired to both, with or without a snapshot file
- Signed-up users with the default sign-up balances
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from defi_ledger import (
    LendingService, Store, ManualClock, AssetType, CryptoAsset,
)


START = datetime(2025, 1, 1, tzinfo=timezone.utc)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    return ManualClock(START)


@pytest.fixture
def store():
    return Store.fresh()


@pytest.fixture
def service(store, clock):
    return LendingService(store, clock=clock)


@pytest.fixture
def alice(service):
    return service.sign_up("alice@example.com", "pw", "Alice")


@pytest.fixture
def bob(service):
    return service.sign_up("bob@example.com", "pw", "Bob")


@pytest.fixture
def snapshot_path(tmp_path):
    return tmp_path / "ledger.json"


@pytest.fixture
def persistent_service(snapshot_path, clock):
    service = LendingService.open(str(snapshot_path), clock=clock)
    yield service
    service.close()


@pytest.fixture
def asset_of(service):
    """Lookup helper: asset_of(user_id, "ETH") -> the user's CryptoAsset."""
    def lookup(user_id: str, asset_type: str) -> CryptoAsset:
        asset = service.store.find_asset(user_id, AssetType(asset_type))
        assert asset is not None, f"{user_id} has no {asset_type}"
        return asset
    return lookup


@pytest.fixture
def usdc_loan(service, alice, asset_of):
    """Alice borrows 10 ETH from pool-eth against 20000 USD of USDC collateral."""
    usdc = asset_of(alice.id, "USDC")
    return service.create_loan(
        alice.id, "pool-eth", Decimal("10"), "crypto", usdc.id, Decimal("20000"),
    )
