"""
loans.py - Collateralized borrow positions

A loan draws `loan_amount` of a pool's asset into the borrower's liquid
balance, backed by a crypto asset or an RWA token. The collateral is referenced
by id only; its USD value is snapshotted into the loan at origination and
never re-read.

Key Formulas:
    required_collateral = loan_amount * COLLATERAL_RATIO            (150%)
    max_borrow          = collateral_value / COLLATERAL_RATIO
    borrow_rate         = pool.interest_rate + BORROW_RATE_SPREAD   (percent)
    health_factor       = collateral_value * LIQUIDATION_THRESHOLD
                          / (loan_amount + interest_accrued)

Lifecycle:
    create_loan  -> ACTIVE
    repay_loan   -> REPAID      (principal + accrued interest debited)
    AccrualEngine.tick() -> LIQUIDATED when health_factor < 1.0
"""

from __future__ import annotations
from decimal import Decimal
from typing import Any, List, TYPE_CHECKING
import logging

from .clock import Clock
from .core import (
    Loan, LoanStatus, CollateralType,
    COLLATERAL_RATIO, LIQUIDATION_THRESHOLD, BORROW_RATE_SPREAD,
    AssetNotFound, InsufficientBalance, InsufficientCollateral,
    InsufficientLiquidity, LoanNotActive,
    new_id, positive_amount, to_decimal,
)
from .pools import PoolRegistry
from .pricing_source import PricingSource

if TYPE_CHECKING:
    from .store import Store

logger = logging.getLogger(__name__)


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_health_factor(
    collateral_value: Decimal,
    loan_amount: Decimal,
    interest_accrued: Decimal = Decimal("0"),
) -> Decimal:
    """
    Ratio of threshold-adjusted collateral to total debt.

    Returns Decimal('Infinity') when there is no debt.

    Example:
        calculate_health_factor(Decimal("3000"), Decimal("1000"))  # 2.25
    """
    collateral_value = to_decimal(collateral_value)
    debt = to_decimal(loan_amount) + to_decimal(interest_accrued)
    if debt <= 0:
        return Decimal("Infinity")
    return collateral_value * LIQUIDATION_THRESHOLD / debt


def calculate_max_borrow(collateral_value: Decimal) -> Decimal:
    """Largest principal a given collateral value can back at origination."""
    return to_decimal(collateral_value) / COLLATERAL_RATIO


def calculate_required_collateral(loan_amount: Decimal) -> Decimal:
    """Smallest collateral value accepted for a given principal."""
    return to_decimal(loan_amount) * COLLATERAL_RATIO


def calculate_borrow_rate(pool_rate: Decimal) -> Decimal:
    return to_decimal(pool_rate) + BORROW_RATE_SPREAD


# ============================================================================
# LOAN LEDGER
# ============================================================================

class LoanLedger:
    """Typed view over the Store's loans."""

    def __init__(self, store: Store, clock: Clock, prices: PricingSource):
        self.store = store
        self.clock = clock
        self.prices = prices
        self.pools = PoolRegistry(store)

    def list_loans(self, user_id: str) -> List[Loan]:
        return self.store.loans_of(user_id)

    def quote_collateral_value(self, collateral_type: CollateralType, collateral_id: str) -> Decimal:
        """
        USD value of a piece of collateral, as offered to create_loan().

        Crypto collateral is the asset's liquid balance at its fixed price;
        RWA collateral is the token's estimated value.

        Raises:
            AssetNotFound, TokenNotFound: unknown collateral id
        """
        collateral_type = CollateralType(collateral_type)
        if collateral_type is CollateralType.CRYPTO:
            asset = self.store.get_asset(collateral_id)
            return self.prices.get_price(asset.asset_type) * asset.balance
        return self.store.get_token(collateral_id).estimated_value

    def create_loan(
        self,
        user_id: str,
        pool_id: str,
        loan_amount: Any,
        collateral_type: CollateralType,
        collateral_id: str,
        collateral_value: Any,
    ) -> Loan:
        """
        Originate a loan and pay the principal into the borrower's balance.

        Args:
            user_id: Borrower
            pool_id: Pool to borrow from
            loan_amount: Principal, in the pool's asset
            collateral_type: CRYPTO or RWA
            collateral_id: Id of the pledged CryptoAsset or RWAToken
            collateral_value: USD value of the collateral

        Returns:
            The new ACTIVE Loan

        Raises:
            InvalidAmount: loan_amount or collateral_value not positive
            UserNotFound, PoolNotFound: unknown ids
            AssetNotFound: borrower holds no record of the pool's asset
            InsufficientLiquidity: pool cannot lend loan_amount
            InsufficientCollateral: collateral_value < 150% of loan_amount
        """
        loan_amount = positive_amount(loan_amount, "loan amount")
        collateral_value = positive_amount(collateral_value, "collateral value")
        collateral_type = CollateralType(collateral_type)
        self.store.get_user(user_id)
        pool = self.pools.get_pool(pool_id)

        asset = self.store.find_asset(user_id, pool.asset_type)
        if asset is None:
            raise AssetNotFound(
                f"User {user_id} holds no {pool.asset_type.value} to receive the loan"
            )

        available = self.pools.available_liquidity(pool)
        if available < loan_amount:
            raise InsufficientLiquidity(
                f"Insufficient liquidity in pool {pool.id}: "
                f"{available} {pool.asset_type.value} available, {loan_amount} requested"
            )

        required = calculate_required_collateral(loan_amount)
        if collateral_value < required:
            raise InsufficientCollateral(
                f"Insufficient collateral: {collateral_value} offered, "
                f"{required} required (150% of {loan_amount})"
            )

        now = self.clock.now()
        loan = Loan(
            id=new_id("loan"),
            borrower_id=user_id,
            pool_id=pool.id,
            loan_amount=loan_amount,
            collateral_type=collateral_type,
            collateral_id=collateral_id,
            collateral_value=collateral_value,
            interest_rate=calculate_borrow_rate(pool.interest_rate),
            interest_accrued=Decimal("0"),
            health_factor=calculate_health_factor(collateral_value, loan_amount),
            status=LoanStatus.ACTIVE,
            created_at=now,
            updated_at=now,
        )

        pool.total_borrowed += loan_amount
        self.pools.recompute(pool)
        asset.balance += loan_amount
        self.store.add_loan(loan)

        logger.info(
            "Loan %s: %s %s from %s to %s against %s %s (hf %s)",
            loan.id, loan_amount, pool.asset_type.value, pool.id, user_id,
            collateral_type.value, collateral_id, loan.health_factor,
        )
        return loan

    def repay_loan(self, loan_id: str) -> Loan:
        """
        Repay principal plus accrued interest in full.

        Only the principal returns to the pool's total_borrowed; the interest
        leaves the borrower's balance.

        Raises:
            LoanNotFound: unknown loan id
            LoanNotActive: loan is already REPAID or LIQUIDATED
            InsufficientBalance: liquid balance below principal + interest
        """
        loan = self.store.get_loan(loan_id)
        if not loan.is_active:
            raise LoanNotActive(f"Loan {loan.id} is {loan.status.value}, not active")

        pool = self.pools.get_pool(loan.pool_id)
        asset = self.store.find_asset(loan.borrower_id, pool.asset_type)
        total = loan.total_debt
        if asset is None or asset.balance < total:
            available = asset.balance if asset is not None else Decimal("0")
            raise InsufficientBalance(
                f"Insufficient balance to repay: {available} {pool.asset_type.value} "
                f"available, {total} owed"
            )

        asset.balance -= total
        pool.total_borrowed -= loan.loan_amount
        self.pools.recompute(pool)
        loan.status = LoanStatus.REPAID
        loan.updated_at = self.clock.now()

        logger.info(
            "Repaid %s: %s %s (principal %s, interest %s)",
            loan.id, total, pool.asset_type.value, loan.loan_amount, loan.interest_accrued,
        )
        return loan
