"""
test_persistence.py - Unit tests for snapshot encode/decode and file I/O

Tests:
- Snapshot layout (camelCase keys, string decimals, ISO timestamps)
- Round-trip equality including exact timestamps
- Fallback to the cold-start Store on absent or corrupt files
- SnapshotWriter atomic writes and error logging
"""

import json
import logging
import pytest
from decimal import Decimal

from defi_ledger import (
    LoanStatus, SnapshotWriter, Store, from_snapshot, load_store, to_snapshot,
)
from defi_ledger.persistence import dumps, write_snapshot


def populate(service, asset_of, clock):
    alice = service.sign_up("alice@example.com", "pw", "Alice")
    bob = service.sign_up("bob@example.com", "pw", "Bob")
    service.complete_onboarding()
    service.create_deposit(alice.id, "pool-eth", "2.5")
    clock.advance(seconds=7.25)
    token = service.create_rwa_token(alice.id, "gold", "Bar", "1kg", "65000.50")
    service.create_loan(alice.id, "pool-btc", "1", "rwa", token.id, "65000.50")
    usdc = asset_of(bob.id, "USDC")
    loan = service.create_loan(bob.id, "pool-usdc", "100", "crypto", usdc.id, "150")
    service.repay_loan(loan.id)
    clock.advance(seconds=3600)
    service.tick()
    return alice, bob


def store_state(store):
    return (
        store.current_user_id,
        list(store.users.values()),
        list(store.crypto_assets.values()),
        list(store.lending_pools.values()),
        list(store.user_deposits.values()),
        list(store.rwa_tokens.values()),
        list(store.loans.values()),
    )


class TestSnapshotFormat:

    def test_top_level_keys(self, store):
        snapshot = to_snapshot(store)
        for key in ("currentUserId", "users", "cryptoAssets", "lendingPools",
                    "userDeposits", "rwaTokens", "loans"):
            assert key in snapshot

    def test_field_encoding(self, service, asset_of, clock):
        populate(service, asset_of, clock)
        snapshot = json.loads(dumps(service.store))

        pool = snapshot["lendingPools"][0]
        assert pool["id"] == "pool-eth"
        assert pool["assetType"] == "ETH"
        assert pool["totalDeposited"] == "1002.5"

        deposit = snapshot["userDeposits"][0]
        assert deposit["depositedAt"] == "2025-01-01T00:00:00+00:00"
        assert deposit["lastInterestUpdate"].endswith("+00:00")

        statuses = [loan["status"] for loan in snapshot["loans"]]
        assert statuses == ["active", "repaid"]
        assert snapshot["rwaTokens"][0]["verificationStatus"] == "verified"


class TestRoundTrip:

    def test_round_trip_is_exact(self, service, asset_of, clock):
        populate(service, asset_of, clock)
        restored = from_snapshot(json.loads(dumps(service.store)))
        assert store_state(restored) == store_state(service.store)

    def test_fractional_seconds_survive(self, service, asset_of, clock):
        populate(service, asset_of, clock)
        restored = from_snapshot(to_snapshot(service.store))
        token = next(iter(restored.rwa_tokens.values()))
        assert token.created_at.microsecond == 250000

    def test_fresh_store_round_trip(self, store):
        restored = from_snapshot(to_snapshot(store))
        assert store_state(restored) == store_state(store)
        assert restored.verify_invariants()['valid']

    def test_restored_loan_status_is_enum(self, service, asset_of, clock):
        populate(service, asset_of, clock)
        restored = from_snapshot(to_snapshot(service.store))
        assert {loan.status for loan in restored.loans.values()} == {
            LoanStatus.ACTIVE, LoanStatus.REPAID,
        }


class TestFromSnapshotErrors:

    def test_not_an_object(self):
        with pytest.raises(ValueError):
            from_snapshot([1, 2, 3])

    def test_missing_field(self, store):
        snapshot = to_snapshot(store)
        del snapshot["lendingPools"][0]["totalBorrowed"]
        with pytest.raises(ValueError):
            from_snapshot(snapshot)

    def test_bad_decimal(self, store):
        snapshot = to_snapshot(store)
        snapshot["lendingPools"][0]["totalDeposited"] = "lots"
        with pytest.raises(ValueError):
            from_snapshot(snapshot)

    def test_unknown_current_user(self, store):
        snapshot = to_snapshot(store)
        snapshot["currentUserId"] = "user-ghost"
        with pytest.raises(ValueError):
            from_snapshot(snapshot)

    @pytest.mark.parametrize("key", ["users", "lendingPools", "loans"])
    def test_missing_collection(self, store, key):
        snapshot = to_snapshot(store)
        del snapshot[key]
        with pytest.raises(ValueError, match=key):
            from_snapshot(snapshot)

    def test_missing_pool_for_asset_type(self, store):
        snapshot = to_snapshot(store)
        snapshot["lendingPools"] = snapshot["lendingPools"][:2]
        with pytest.raises(ValueError, match="no pool for USDC"):
            from_snapshot(snapshot)

    def test_second_pool_for_asset_type(self, store):
        snapshot = to_snapshot(store)
        extra = dict(snapshot["lendingPools"][0], id="pool-eth-2")
        snapshot["lendingPools"].append(extra)
        with pytest.raises(ValueError):
            from_snapshot(snapshot)

    def test_deposit_in_unknown_pool(self, service, asset_of, clock):
        populate(service, asset_of, clock)
        snapshot = to_snapshot(service.store)
        snapshot["userDeposits"][0]["poolId"] = "pool-gone"
        with pytest.raises(ValueError, match="unknown pool pool-gone"):
            from_snapshot(snapshot)

    def test_loan_of_unknown_user(self, service, asset_of, clock):
        populate(service, asset_of, clock)
        snapshot = to_snapshot(service.store)
        snapshot["loans"][0]["borrowerId"] = "user-ghost"
        with pytest.raises(ValueError, match="unknown user user-ghost"):
            from_snapshot(snapshot)

    def test_broken_invariant(self, service, asset_of, clock):
        populate(service, asset_of, clock)
        snapshot = to_snapshot(service.store)
        eth = next(a for a in snapshot["cryptoAssets"] if a["assetType"] == "ETH")
        eth["depositedToPool"] = "0"
        with pytest.raises(ValueError, match="invariants"):
            from_snapshot(snapshot)


class TestLoadStore:

    def test_absent_file_is_fresh(self, tmp_path):
        store = load_store(tmp_path / "missing.json")
        assert list(store.lending_pools) == ["pool-eth", "pool-btc", "pool-usdc"]
        assert store.users == {}

    def test_none_is_fresh(self):
        assert list(load_store(None).lending_pools) == ["pool-eth", "pool-btc", "pool-usdc"]

    def test_corrupt_file_falls_back(self, tmp_path, caplog):
        path = tmp_path / "ledger.json"
        path.write_text("{not json")
        with caplog.at_level(logging.WARNING, logger="defi_ledger.persistence"):
            store = load_store(path)
        assert store.users == {}
        assert store.get_pool("pool-eth").total_deposited == Decimal("1000")
        assert "Ignoring unreadable snapshot" in caplog.text

    def test_malformed_snapshot_falls_back(self, tmp_path):
        path = tmp_path / "ledger.json"
        path.write_text(json.dumps({"users": [{"id": "u"}]}))
        store = load_store(path)
        assert store.users == {}
        assert len(store.lending_pools) == 3

    def test_empty_object_falls_back(self, tmp_path):
        path = tmp_path / "ledger.json"
        path.write_text("{}")
        store = load_store(path)
        assert store_state(store) == store_state(Store.fresh())

    def test_dangling_pool_reference_falls_back(self, service, asset_of, clock, tmp_path):
        alice, _ = populate(service, asset_of, clock)
        service.create_deposit(alice.id, "pool-eth", "1")
        snapshot = to_snapshot(service.store)
        snapshot["userDeposits"][-1]["poolId"] = "pool-gone"
        path = tmp_path / "ledger.json"
        path.write_text(json.dumps(snapshot))

        store = load_store(path)

        assert store.users == {}
        assert store.user_deposits == {}
        assert list(store.lending_pools) == ["pool-eth", "pool-btc", "pool-usdc"]

    def test_loads_written_snapshot(self, service, asset_of, clock, tmp_path):
        populate(service, asset_of, clock)
        path = tmp_path / "ledger.json"
        write_snapshot(path, dumps(service.store))
        assert store_state(load_store(path)) == store_state(service.store)


class TestSnapshotWriter:

    def test_save_and_flush(self, tmp_path, store):
        path = tmp_path / "out" / "ledger.json"
        writer = SnapshotWriter(path)
        writer.save(store)
        writer.flush()
        writer.close()
        assert json.loads(path.read_text())["lendingPools"][0]["id"] == "pool-eth"
        assert not (tmp_path / "out" / "ledger.json.tmp").exists()

    def test_last_save_wins(self, tmp_path, service, alice):
        path = tmp_path / "ledger.json"
        writer = SnapshotWriter(path)
        writer.save(service.store)
        service.sign_out()
        writer.save(service.store)
        writer.close()
        assert json.loads(path.read_text())["currentUserId"] is None

    def test_write_failure_is_logged_not_raised(self, tmp_path, store, caplog):
        blocker = tmp_path / "file"
        blocker.write_text("")
        writer = SnapshotWriter(blocker / "ledger.json")
        with caplog.at_level(logging.ERROR, logger="defi_ledger.persistence"):
            writer.save(store)
            writer.flush()
        writer.close()
        assert "Failed to write snapshot" in caplog.text

    def test_save_after_close_is_dropped(self, tmp_path, store):
        writer = SnapshotWriter(tmp_path / "ledger.json")
        writer.close()
        assert writer.save(store) is None
        assert not (tmp_path / "ledger.json").exists()
