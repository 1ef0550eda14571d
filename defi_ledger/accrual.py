"""
accrual.py - Interest accrual and liquidation

One tick() brings every open position up to the clock's current instant.

Execution order each tick():
1. Read `now` once from the clock
2. Accrue supply interest on every open deposit (pool's current APY)
3. Accrue borrow interest on every ACTIVE loan, recompute its health factor,
   and liquidate it if the health factor fell below 1.0

Interest is simple interest on the fixed principal, cumulative across ticks:

    gained = principal * (rate / 100) * (elapsed_seconds / SECONDS_PER_YEAR)

Because each position carries its own last-update instant, the result does not
depend on how often tick() runs. Two ticks at the same instant are equivalent
to one.

Liquidation only flips the loan's status. Pool totals are left as they are;
the liquidated principal stays counted in total_borrowed.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Tuple, TYPE_CHECKING
import logging

from .clock import Clock
from .core import (
    Loan, LoanStatus, UserDeposit, HealthStatus,
    LIQUIDATION_HEALTH_FACTOR, HEALTH_FACTOR_SAFE, HEALTH_FACTOR_WARNING,
    SECONDS_PER_YEAR, to_decimal,
)
from .loans import calculate_health_factor

if TYPE_CHECKING:
    from .store import Store

logger = logging.getLogger(__name__)


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_interest(
    principal: Decimal,
    annual_rate_percent: Decimal,
    elapsed_seconds: Decimal,
) -> Decimal:
    """
    Simple interest on principal over elapsed_seconds.

    PURE FUNCTION - All inputs explicit.

    Args:
        principal: Amount interest is charged or paid on
        annual_rate_percent: Annual rate in percent (5.0 for 5%)
        elapsed_seconds: Length of the accrual period; negative values count as 0

    Returns:
        Interest for the period (Decimal("0") if no time elapsed)
    """
    elapsed_seconds = to_decimal(elapsed_seconds)
    if elapsed_seconds <= 0:
        return Decimal("0")
    return (
        to_decimal(principal)
        * (to_decimal(annual_rate_percent) / Decimal("100"))
        * (elapsed_seconds / SECONDS_PER_YEAR)
    )


def health_status(health_factor: Decimal) -> HealthStatus:
    """
    Display band for a health factor.

    >= 1.5 SAFE, [1.2, 1.5) WARNING, < 1.2 DANGER.
    """
    health_factor = to_decimal(health_factor)
    if health_factor >= HEALTH_FACTOR_SAFE:
        return HealthStatus.SAFE
    if health_factor >= HEALTH_FACTOR_WARNING:
        return HealthStatus.WARNING
    return HealthStatus.DANGER


def elapsed_seconds(since: datetime, now: datetime) -> Decimal:
    """Seconds from `since` to `now`, clamped at zero."""
    seconds = Decimal(str((now - since).total_seconds()))
    return seconds if seconds > 0 else Decimal("0")


# ============================================================================
# TICK RESULT
# ============================================================================

@dataclass(frozen=True, slots=True)
class TickResult:
    """
    Outcome of one accrual pass.

    Attributes:
        timestamp: The instant every updated position was brought up to
        deposits_updated: Number of deposits accrued
        loans_updated: Number of active loans accrued
        liquidated: Ids of loans liquidated by this pass
    """
    timestamp: datetime
    deposits_updated: int
    loans_updated: int
    liquidated: Tuple[str, ...] = ()


# ============================================================================
# ACCRUAL ENGINE
# ============================================================================

class AccrualEngine:
    """
    Periodic recomputation of interest and collateral health.

    The engine holds no state of its own. Callers sharing the Store with
    other writers run tick() under `store.lock`.
    """

    def __init__(self, store: Store, clock: Clock):
        self.store = store
        self.clock = clock

    def tick(self) -> TickResult:
        now = self.clock.now()

        # Deposits whose pool is unknown are skipped before anything accrues.
        deposits = []
        for deposit in self.store.user_deposits.values():
            if deposit.pool_id not in self.store.lending_pools:
                logger.warning("Skipping deposit %s: unknown pool %s", deposit.id, deposit.pool_id)
                continue
            deposits.append(deposit)
        for deposit in deposits:
            self._accrue_deposit(deposit, now)

        active = [loan for loan in self.store.loans.values() if loan.is_active]
        liquidated: List[str] = []
        for loan in active:
            if self._accrue_loan(loan, now):
                liquidated.append(loan.id)

        result = TickResult(
            timestamp=now,
            deposits_updated=len(deposits),
            loans_updated=len(active),
            liquidated=tuple(liquidated),
        )
        logger.debug(
            "Tick at %s: %d deposits, %d loans, %d liquidated",
            now.isoformat(), result.deposits_updated, result.loans_updated,
            len(result.liquidated),
        )
        return result

    def _accrue_deposit(self, deposit: UserDeposit, now: datetime) -> None:
        pool = self.store.get_pool(deposit.pool_id)
        gained = calculate_interest(
            deposit.amount,
            pool.interest_rate,
            elapsed_seconds(deposit.last_interest_update, now),
        )
        deposit.interest_earned += gained
        if now > deposit.last_interest_update:
            deposit.last_interest_update = now

    def _accrue_loan(self, loan: Loan, now: datetime) -> bool:
        """Accrue one active loan. Returns True if it was liquidated."""
        gained = calculate_interest(
            loan.loan_amount,
            loan.interest_rate,
            elapsed_seconds(loan.updated_at, now),
        )
        loan.interest_accrued += gained
        loan.health_factor = calculate_health_factor(
            loan.collateral_value, loan.loan_amount, loan.interest_accrued
        )
        if now > loan.updated_at:
            loan.updated_at = now

        if loan.health_factor < LIQUIDATION_HEALTH_FACTOR:
            loan.status = LoanStatus.LIQUIDATED
            logger.warning(
                "Liquidated %s: health factor %s below %s (debt %s, collateral %s USD)",
                loan.id, loan.health_factor, LIQUIDATION_HEALTH_FACTOR,
                loan.total_debt, loan.collateral_value,
            )
            return True
        return False
