"""
persistence.py - JSON snapshot of the whole Store

The full state is written as one JSON object after every committed change and
read back once at startup:

    {
      "currentUserId": ...,
      "users": [...], "cryptoAssets": [...], "lendingPools": [...],
      "userDeposits": [...], "rwaTokens": [...], "loans": [...]
    }

Field names are camelCase. Decimals are stored as strings and timestamps as
ISO-8601 with offset, so a snapshot decodes to exactly the state it was taken
from.

Loading never fails: an absent, unreadable or malformed snapshot yields the
cold-start Store (default pools, no users). Writing never blocks the caller:
SnapshotWriter encodes under the store lock and hands the file write to one
background worker, logging any failure.
"""

from __future__ import annotations
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
import json
import logging
import os

from .core import (
    User, CryptoAsset, LendingPool, UserDeposit, RWAToken, Loan, AssetType, to_decimal,
)
from .store import Store

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


# ============================================================================
# FIELD CODECS
# ============================================================================

def _dec(value: Decimal) -> str:
    return str(value)


def _ts(value: datetime) -> str:
    return value.isoformat()


def _parse_ts(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp without offset: {value!r}")
    return parsed


# (attribute, json key, encoder, decoder) per entity.
_Field = Tuple[str, str, Callable[[Any], Any], Callable[[Any], Any]]

_USER_FIELDS: List[_Field] = [
    ('id', 'id', str, str),
    ('email', 'email', str, str),
    ('display_name', 'displayName', str, str),
    ('onboarding_completed', 'onboardingCompleted', bool, bool),
]

_ASSET_FIELDS: List[_Field] = [
    ('id', 'id', str, str),
    ('owner_id', 'userId', str, str),
    ('asset_type', 'assetType', lambda v: v.value, str),
    ('balance', 'balance', _dec, to_decimal),
    ('deposited_to_pool', 'depositedToPool', _dec, to_decimal),
]

_POOL_FIELDS: List[_Field] = [
    ('id', 'id', str, str),
    ('asset_type', 'assetType', lambda v: v.value, str),
    ('total_deposited', 'totalDeposited', _dec, to_decimal),
    ('total_borrowed', 'totalBorrowed', _dec, to_decimal),
    ('interest_rate', 'interestRate', _dec, to_decimal),
    ('utilization_rate', 'utilizationRate', _dec, to_decimal),
]

_DEPOSIT_FIELDS: List[_Field] = [
    ('id', 'id', str, str),
    ('owner_id', 'userId', str, str),
    ('pool_id', 'poolId', str, str),
    ('amount', 'amount', _dec, to_decimal),
    ('interest_earned', 'interestEarned', _dec, to_decimal),
    ('deposited_at', 'depositedAt', _ts, _parse_ts),
    ('last_interest_update', 'lastInterestUpdate', _ts, _parse_ts),
]

_TOKEN_FIELDS: List[_Field] = [
    ('id', 'id', str, str),
    ('owner_id', 'userId', str, str),
    ('token_type', 'tokenType', lambda v: v.value, str),
    ('token_name', 'tokenName', str, str),
    ('description', 'description', str, str),
    ('estimated_value', 'estimatedValue', _dec, to_decimal),
    ('verification_status', 'verificationStatus', lambda v: v.value, str),
    ('created_at', 'createdAt', _ts, _parse_ts),
]

_LOAN_FIELDS: List[_Field] = [
    ('id', 'id', str, str),
    ('borrower_id', 'borrowerId', str, str),
    ('pool_id', 'poolId', str, str),
    ('loan_amount', 'loanAmount', _dec, to_decimal),
    ('collateral_type', 'collateralType', lambda v: v.value, str),
    ('collateral_id', 'collateralId', str, str),
    ('collateral_value', 'collateralValue', _dec, to_decimal),
    ('interest_rate', 'interestRate', _dec, to_decimal),
    ('interest_accrued', 'interestAccrued', _dec, to_decimal),
    ('health_factor', 'healthFactor', _dec, to_decimal),
    ('status', 'status', lambda v: v.value, str),
    ('created_at', 'createdAt', _ts, _parse_ts),
    ('updated_at', 'updatedAt', _ts, _parse_ts),
]

# snapshot key -> (Store attribute, Store insert method, entity class, fields)
_COLLECTIONS = {
    'users': ('users', 'add_user', User, _USER_FIELDS),
    'cryptoAssets': ('crypto_assets', 'add_asset', CryptoAsset, _ASSET_FIELDS),
    'lendingPools': ('lending_pools', 'add_pool', LendingPool, _POOL_FIELDS),
    'userDeposits': ('user_deposits', 'add_deposit', UserDeposit, _DEPOSIT_FIELDS),
    'rwaTokens': ('rwa_tokens', 'add_token', RWAToken, _TOKEN_FIELDS),
    'loans': ('loans', 'add_loan', Loan, _LOAN_FIELDS),
}


def _encode(entity: Any, fields: List[_Field]) -> Dict[str, Any]:
    return {key: encode(getattr(entity, attr)) for attr, key, encode, _ in fields}


def _decode(cls: Callable[..., Any], data: Dict[str, Any], fields: List[_Field]) -> Any:
    return cls(**{attr: decode(data[key]) for attr, key, _, decode in fields})


# ============================================================================
# SNAPSHOT ENCODE / DECODE
# ============================================================================

def to_snapshot(store: Store) -> Dict[str, Any]:
    """Encode every Store collection as a JSON-compatible dict."""
    snapshot: Dict[str, Any] = {
        'version': SNAPSHOT_VERSION,
        'currentUserId': store.current_user_id,
    }
    for key, (attr, _, _, fields) in _COLLECTIONS.items():
        snapshot[key] = [_encode(entity, fields) for entity in getattr(store, attr).values()]
    return snapshot


def from_snapshot(snapshot: Dict[str, Any]) -> Store:
    """
    Rebuild a Store from to_snapshot() output.

    Every collection key is required, there must be exactly one pool per
    asset type, every owner/pool reference must resolve, and the rebuilt
    Store must pass verify_invariants().

    Raises:
        ValueError: If the snapshot is not a well-formed ledger snapshot.
    """
    if not isinstance(snapshot, dict):
        raise ValueError(f"snapshot must be a JSON object, got {type(snapshot).__name__}")
    missing = [key for key in _COLLECTIONS if key not in snapshot]
    if missing:
        raise ValueError(f"snapshot is missing {', '.join(missing)}")

    store = Store()
    try:
        for key, (_, add, cls, fields) in _COLLECTIONS.items():
            insert = getattr(store, add)
            for item in snapshot[key]:
                insert(_decode(cls, item, fields))
    except (KeyError, TypeError, AttributeError) as e:
        raise ValueError(f"malformed snapshot: {e!r}") from e

    _check_references(store)

    current = snapshot.get('currentUserId')
    if current is not None and current not in store.users:
        raise ValueError(f"currentUserId {current} is not a known user")
    store.current_user_id = current

    report = store.verify_invariants()
    if not report['valid']:
        raise ValueError(f"snapshot breaks ledger invariants: {'; '.join(report['violations'])}")
    return store


def _check_references(store: Store) -> None:
    pool_assets = {pool.asset_type for pool in store.lending_pools.values()}
    absent = [a.value for a in AssetType if a not in pool_assets]
    if absent:
        raise ValueError(f"snapshot has no pool for {', '.join(absent)}")

    owned = [
        *(('cryptoAssets', a.id, a.owner_id) for a in store.crypto_assets.values()),
        *(('userDeposits', d.id, d.owner_id) for d in store.user_deposits.values()),
        *(('rwaTokens', t.id, t.owner_id) for t in store.rwa_tokens.values()),
        *(('loans', l.id, l.borrower_id) for l in store.loans.values()),
    ]
    for key, entity_id, user_id in owned:
        if user_id not in store.users:
            raise ValueError(f"{key} {entity_id} references unknown user {user_id}")

    pooled = [
        *(('userDeposits', d.id, d.pool_id) for d in store.user_deposits.values()),
        *(('loans', l.id, l.pool_id) for l in store.loans.values()),
    ]
    for key, entity_id, pool_id in pooled:
        if pool_id not in store.lending_pools:
            raise ValueError(f"{key} {entity_id} references unknown pool {pool_id}")


def dumps(store: Store) -> str:
    return json.dumps(to_snapshot(store), indent=2)


# ============================================================================
# FILE I/O
# ============================================================================

def load_store(path: Union[str, Path, None]) -> Store:
    """
    Load the Store from a snapshot file, or start fresh.

    An absent file is a normal cold start. An unreadable or malformed file is
    logged as a warning and also yields Store.fresh().
    """
    if path is None:
        return Store.fresh()
    path = Path(path)
    if not path.exists():
        logger.info("No snapshot at %s, starting with default pools", path)
        return Store.fresh()

    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
        store = from_snapshot(data)
    except (OSError, ValueError) as exc:
        # json.JSONDecodeError is a ValueError
        logger.warning("Ignoring unreadable snapshot %s: %s", path, exc)
        return Store.fresh()

    logger.info("Loaded snapshot %s: %r", path, store)
    return store


def write_snapshot(path: Union[str, Path], payload: str) -> None:
    """Write payload to path atomically (temp file + replace)."""
    path = Path(path)
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as handle:
        handle.write(payload)
    os.replace(tmp_path, path)


class SnapshotWriter:
    """
    Fire-and-forget snapshot writer.

    save() encodes the Store synchronously under its lock, so the snapshot
    reflects exactly one committed state, then queues the write on a single
    worker thread. Writes land in submission order. Failures are logged and
    never reach the caller.

    Example:
        writer = SnapshotWriter("ledger.json")
        writer.save(store)
        writer.close()
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="snapshot")
        self._last: Optional[Future] = None
        self._closed = False

    def save(self, store: Store) -> Optional[Future]:
        if self._closed:
            logger.warning("Snapshot writer for %s is closed, dropping save", self.path)
            return None
        with store.lock:
            payload = dumps(store)
        future = self._executor.submit(self._write, payload)
        self._last = future
        return future

    def _write(self, payload: str) -> None:
        try:
            write_snapshot(self.path, payload)
        except OSError as exc:
            logger.error("Failed to write snapshot %s", self.path, exc_info=exc)

    def flush(self) -> None:
        """Block until every queued write has finished."""
        if self._last is not None:
            self._last.result()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._executor.shutdown(wait=True)

    def __repr__(self):
        return f"SnapshotWriter({self.path})"
