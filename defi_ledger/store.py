"""
store.py - In-memory entity store

The Store is the single source of truth for the lending ledger. It owns every
entity collection; PoolRegistry, DepositLedger, LoanLedger, RWARegistry and
AccrualEngine are typed views that read and mutate Store entities in place.

Key responsibilities:
    - Holds users, assets, pools, deposits, RWA tokens and loans, keyed by id
      in insertion order
    - Resolves ids, raising the matching NotFoundError
    - Carries the single-writer lock that serializes operations and ticks
    - Checks the cross-entity invariants (verify_invariants)
"""

from __future__ import annotations
from collections import defaultdict
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple
import copy
import threading

from .core import (
    User, CryptoAsset, LendingPool, UserDeposit, RWAToken, Loan,
    AssetType,
    UserNotFound, PoolNotFound, AssetNotFound, DepositNotFound,
    LoanNotFound, TokenNotFound,
)
from .pools import default_pools, calculate_utilization_rate


class Store:
    """
    Container for all ledger entities.

    Thread Safety:
        The Store itself does no locking. Callers that mutate it from more
        than one thread (the service facade and the accrual scheduler) hold
        `store.lock` for the whole unit of work.

    Example:
        store = Store.fresh()
        pools = list(store.lending_pools.values())
    """

    def __init__(self, pools: Optional[Iterable[LendingPool]] = None):
        self.current_user_id: Optional[str] = None
        self.users: Dict[str, User] = {}
        self.crypto_assets: Dict[str, CryptoAsset] = {}
        self.lending_pools: Dict[str, LendingPool] = {}
        self.user_deposits: Dict[str, UserDeposit] = {}
        self.rwa_tokens: Dict[str, RWAToken] = {}
        self.loans: Dict[str, Loan] = {}
        self.lock = threading.RLock()

        for pool in pools or ():
            self.add_pool(pool)

    @classmethod
    def fresh(cls) -> Store:
        """A cold-start store: the default pool catalogue and no users."""
        return cls(default_pools())

    # ========================================================================
    # LOOKUPS
    # ========================================================================

    def get_user(self, user_id: str) -> User:
        try:
            return self.users[user_id]
        except KeyError:
            raise UserNotFound(f"User {user_id} not found") from None

    def get_pool(self, pool_id: str) -> LendingPool:
        try:
            return self.lending_pools[pool_id]
        except KeyError:
            raise PoolNotFound(f"Pool {pool_id} not found") from None

    def get_asset(self, asset_id: str) -> CryptoAsset:
        try:
            return self.crypto_assets[asset_id]
        except KeyError:
            raise AssetNotFound(f"Asset {asset_id} not found") from None

    def get_deposit(self, deposit_id: str) -> UserDeposit:
        try:
            return self.user_deposits[deposit_id]
        except KeyError:
            raise DepositNotFound(f"Deposit {deposit_id} not found") from None

    def get_loan(self, loan_id: str) -> Loan:
        try:
            return self.loans[loan_id]
        except KeyError:
            raise LoanNotFound(f"Loan {loan_id} not found") from None

    def get_token(self, token_id: str) -> RWAToken:
        try:
            return self.rwa_tokens[token_id]
        except KeyError:
            raise TokenNotFound(f"RWA token {token_id} not found") from None

    def find_user_by_email(self, email: str) -> Optional[User]:
        for user in self.users.values():
            if user.email == email:
                return user
        return None

    def find_asset(self, owner_id: str, asset_type: AssetType) -> Optional[CryptoAsset]:
        """Return the owner's record for asset_type, or None."""
        asset_type = AssetType(asset_type)
        for asset in self.crypto_assets.values():
            if asset.owner_id == owner_id and asset.asset_type is asset_type:
                return asset
        return None

    def assets_of(self, owner_id: str) -> List[CryptoAsset]:
        return [a for a in self.crypto_assets.values() if a.owner_id == owner_id]

    def deposits_of(self, owner_id: str) -> List[UserDeposit]:
        return [d for d in self.user_deposits.values() if d.owner_id == owner_id]

    def loans_of(self, borrower_id: str) -> List[Loan]:
        return [l for l in self.loans.values() if l.borrower_id == borrower_id]

    def tokens_of(self, owner_id: str) -> List[RWAToken]:
        return [t for t in self.rwa_tokens.values() if t.owner_id == owner_id]

    # ========================================================================
    # INSERTION / REMOVAL (Mutating)
    # ========================================================================

    def _insert(self, collection: Dict[str, Any], entity: Any) -> None:
        if entity.id in collection:
            raise ValueError(f"{type(entity).__name__} {entity.id} already exists")
        collection[entity.id] = entity

    def add_user(self, user: User) -> None:
        self._insert(self.users, user)

    def add_asset(self, asset: CryptoAsset) -> None:
        if self.find_asset(asset.owner_id, asset.asset_type) is not None:
            raise ValueError(
                f"User {asset.owner_id} already holds a {asset.asset_type.value} record"
            )
        self._insert(self.crypto_assets, asset)

    def add_pool(self, pool: LendingPool) -> None:
        for existing in self.lending_pools.values():
            if existing.asset_type is pool.asset_type:
                raise ValueError(f"A pool for {pool.asset_type.value} already exists")
        self._insert(self.lending_pools, pool)

    def add_deposit(self, deposit: UserDeposit) -> None:
        self._insert(self.user_deposits, deposit)

    def add_token(self, token: RWAToken) -> None:
        self._insert(self.rwa_tokens, token)

    def add_loan(self, loan: Loan) -> None:
        self._insert(self.loans, loan)

    def remove_deposit(self, deposit_id: str) -> UserDeposit:
        deposit = self.get_deposit(deposit_id)
        del self.user_deposits[deposit_id]
        return deposit

    # ========================================================================
    # INVARIANTS
    # ========================================================================

    def verify_invariants(self, tolerance: Decimal = Decimal("1e-18")) -> Dict[str, Any]:
        """
        Check every cross-entity invariant of the ledger.

        Checked:
        - pools: 0 <= total_borrowed <= total_deposited and utilization_rate
          matches the totals
        - assets: balance >= 0, deposited_to_pool >= 0, and deposited_to_pool
          equals the sum of the owner's open deposits for that asset type
        - deposits: amount > 0 and the pool exists

        Returns:
            Dict with keys:
            - 'valid': bool - True if every invariant holds
            - 'violations': List[str] - one description per broken invariant
        """
        violations: List[str] = []

        for pool in self.lending_pools.values():
            if pool.total_borrowed < 0:
                violations.append(f"{pool.id}: total_borrowed {pool.total_borrowed} < 0")
            if pool.total_borrowed > pool.total_deposited:
                violations.append(
                    f"{pool.id}: total_borrowed {pool.total_borrowed} > "
                    f"total_deposited {pool.total_deposited}"
                )
            expected = calculate_utilization_rate(pool.total_borrowed, pool.total_deposited)
            if abs(pool.utilization_rate - expected) > tolerance:
                violations.append(
                    f"{pool.id}: utilization_rate {pool.utilization_rate} != {expected}"
                )

        locked: Dict[Tuple[str, AssetType], Decimal] = defaultdict(Decimal)
        for deposit in self.user_deposits.values():
            if deposit.amount <= 0:
                violations.append(f"{deposit.id}: amount {deposit.amount} <= 0")
            pool = self.lending_pools.get(deposit.pool_id)
            if pool is None:
                violations.append(f"{deposit.id}: unknown pool {deposit.pool_id}")
                continue
            locked[(deposit.owner_id, pool.asset_type)] += deposit.amount

        for asset in self.crypto_assets.values():
            if asset.balance < 0:
                violations.append(f"{asset.id}: balance {asset.balance} < 0")
            if asset.deposited_to_pool < 0:
                violations.append(f"{asset.id}: deposited_to_pool {asset.deposited_to_pool} < 0")
            expected = locked.get((asset.owner_id, asset.asset_type), Decimal("0"))
            if abs(asset.deposited_to_pool - expected) > tolerance:
                violations.append(
                    f"{asset.id}: deposited_to_pool {asset.deposited_to_pool} != "
                    f"open deposits {expected}"
                )

        return {
            'valid': not violations,
            'violations': violations,
        }

    # ========================================================================
    # COPYING
    # ========================================================================

    def clone(self) -> Store:
        """
        Deep copy of every collection. The clone gets its own lock.
        """
        cloned = Store.__new__(Store)
        cloned.current_user_id = self.current_user_id
        cloned.users = copy.deepcopy(self.users)
        cloned.crypto_assets = copy.deepcopy(self.crypto_assets)
        cloned.lending_pools = copy.deepcopy(self.lending_pools)
        cloned.user_deposits = copy.deepcopy(self.user_deposits)
        cloned.rwa_tokens = copy.deepcopy(self.rwa_tokens)
        cloned.loans = copy.deepcopy(self.loans)
        cloned.lock = threading.RLock()
        return cloned

    def __repr__(self):
        return (
            f"Store({len(self.users)} users, {len(self.lending_pools)} pools, "
            f"{len(self.user_deposits)} deposits, {len(self.loans)} loans, "
            f"{len(self.rwa_tokens)} rwa tokens)"
        )
