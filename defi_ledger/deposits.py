"""
deposits.py - Supply positions in lending pools

A deposit moves part of a user's liquid balance into a pool, where it earns
the pool's supply APY until withdrawn. Withdrawal is all-or-nothing: the
principal plus all accrued interest returns to the liquid balance and the
deposit record is removed.

Every operation validates first and mutates only after all checks pass, so a
failed call leaves the Store untouched.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Any, List, TYPE_CHECKING
import logging

from .clock import Clock
from .core import (
    UserDeposit,
    InsufficientBalance, InsufficientLiquidity,
    new_id, positive_amount,
)
from .pools import PoolRegistry

if TYPE_CHECKING:
    from .store import Store

logger = logging.getLogger(__name__)


class DepositLedger:
    """Typed view over the Store's deposit positions."""

    def __init__(self, store: Store, clock: Clock):
        self.store = store
        self.clock = clock
        self.pools = PoolRegistry(store)

    def list_deposits(self, user_id: str) -> List[UserDeposit]:
        return self.store.deposits_of(user_id)

    def create_deposit(self, user_id: str, pool_id: str, amount: Any) -> UserDeposit:
        """
        Lock `amount` of the user's matching asset into a pool.

        Args:
            user_id: Depositor
            pool_id: Target pool; its asset type selects the user's asset record
            amount: Quantity of the pool's asset to deposit

        Returns:
            The new UserDeposit

        Raises:
            InvalidAmount: amount is not a positive number
            UserNotFound, PoolNotFound: unknown ids
            InsufficientBalance: liquid balance is below amount
        """
        amount = positive_amount(amount)
        self.store.get_user(user_id)
        pool = self.pools.get_pool(pool_id)
        asset = self.store.find_asset(user_id, pool.asset_type)
        if asset is None or asset.balance < amount:
            available = asset.balance if asset is not None else Decimal("0")
            raise InsufficientBalance(
                f"Insufficient balance: {available} {pool.asset_type.value} available, "
                f"{amount} requested"
            )

        now = self.clock.now()
        deposit = UserDeposit(
            id=new_id("deposit"),
            owner_id=user_id,
            pool_id=pool.id,
            amount=amount,
            interest_earned=Decimal("0"),
            deposited_at=now,
            last_interest_update=now,
        )

        asset.balance -= amount
        asset.deposited_to_pool += amount
        pool.total_deposited += amount
        self.pools.recompute(pool)
        self.store.add_deposit(deposit)

        logger.info(
            "Deposit %s: %s %s into %s by %s",
            deposit.id, amount, pool.asset_type.value, pool.id, user_id,
        )
        return deposit

    def withdraw_deposit(self, deposit_id: str) -> UserDeposit:
        """
        Close a deposit, crediting principal + interest to the liquid balance.

        The pool must still cover its outstanding borrows once the principal
        leaves (total_borrowed <= total_deposited).

        Returns:
            The removed UserDeposit (as it was at withdrawal)

        Raises:
            DepositNotFound: unknown deposit id
            InsufficientLiquidity: withdrawing would leave the pool lending
                                   out more than it holds
        """
        deposit = self.store.get_deposit(deposit_id)
        pool = self.pools.get_pool(deposit.pool_id)
        asset = self.store.find_asset(deposit.owner_id, pool.asset_type)
        if asset is None:
            # Deposits are only ever created against an existing asset record.
            raise InsufficientBalance(
                f"User {deposit.owner_id} has no {pool.asset_type.value} record"
            )
        if pool.total_deposited - deposit.amount < pool.total_borrowed:
            raise InsufficientLiquidity(
                f"Insufficient liquidity in pool {pool.id}: "
                f"{self.pools.available_liquidity(pool)} available, "
                f"{deposit.amount} requested"
            )

        payout = deposit.amount + deposit.interest_earned
        asset.balance += payout
        asset.deposited_to_pool -= deposit.amount
        pool.total_deposited -= deposit.amount
        self.pools.recompute(pool)
        self.store.remove_deposit(deposit.id)

        logger.info(
            "Withdrawal %s: %s %s (principal %s, interest %s) to %s",
            deposit.id, payout, pool.asset_type.value,
            deposit.amount, deposit.interest_earned, deposit.owner_id,
        )
        return deposit
