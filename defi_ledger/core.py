"""
Core types for the lending ledger.

This module provides the foundational data structures shared by every ledger:
1. Decimal context and risk constants
2. Enums: AssetType, CollateralType, TokenType, VerificationStatus, LoanStatus, HealthStatus
3. Exceptions: LedgerError and the domain-specific error taxonomy
4. Entities: User, CryptoAsset, LendingPool, UserDeposit, RWAToken, Loan
5. Helpers: to_decimal, new_id

Entities are plain mutable dataclasses owned by the Store. Ledgers mutate
them in place, only after every validation for an operation has passed.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_EVEN, getcontext, InvalidOperation
from enum import Enum
from typing import Any
import uuid


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Interest accrues in very small increments (a 5 second tick on a 10 ETH
# deposit at 5% is ~7.9e-8 ETH), so all amounts are Decimal with a wide context.
#
# PRECONDITION: No other code should modify the global Decimal context.
#
_LEDGER_DECIMAL_CONTEXT = getcontext()
_LEDGER_DECIMAL_CONTEXT.prec = 50
_LEDGER_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Collateral value required at origination relative to loan principal (150%).
COLLATERAL_RATIO = Decimal("1.5")

# Share of nominal collateral value that counts toward solvency.
LIQUIDATION_THRESHOLD = Decimal("0.75")

# Loans liquidate when the health factor drops below this floor.
LIQUIDATION_HEALTH_FACTOR = Decimal("1.0")

# Borrow APR = pool supply APY + spread (percentage points).
BORROW_RATE_SPREAD = Decimal("2")

# Display bands for health factors.
HEALTH_FACTOR_SAFE = Decimal("1.5")
HEALTH_FACTOR_WARNING = Decimal("1.2")

SECONDS_PER_YEAR = Decimal(365 * 24 * 60 * 60)

# Assets granted to every new user at sign-up.
SIGN_UP_BALANCES = {
    "ETH": Decimal("10"),
    "BTC": Decimal("0.5"),
    "USDC": Decimal("10000"),
}


# ============================================================================
# ENUMS
# ============================================================================

class AssetType(str, Enum):
    """Crypto asset kinds. One pool and one user balance record per kind."""
    ETH = "ETH"
    BTC = "BTC"
    USDC = "USDC"


class CollateralType(str, Enum):
    """What a loan's collateral_id refers to."""
    CRYPTO = "crypto"   # a CryptoAsset
    RWA = "rwa"         # an RWAToken


class TokenType(str, Enum):
    """Kinds of tokenized real-world assets."""
    LAND = "land"
    INVOICE = "invoice"
    GOLD = "gold"
    PROPERTY = "property"


class VerificationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class LoanStatus(str, Enum):
    """
    Loan state machine.

    ACTIVE -> REPAID      (borrower repays principal + interest)
    ACTIVE -> LIQUIDATED  (accrual pushes health factor below 1.0)

    REPAID and LIQUIDATED are terminal.
    """
    ACTIVE = "active"
    REPAID = "repaid"
    LIQUIDATED = "liquidated"

    @property
    def is_terminal(self) -> bool:
        return self is not LoanStatus.ACTIVE


class HealthStatus(str, Enum):
    """Presentation band derived from a health factor. Never stored."""
    SAFE = "safe"
    WARNING = "warning"
    DANGER = "danger"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class ValidationError(LedgerError):
    """Raised when an operation's inputs or the current state forbid it."""
    pass


class InvalidAmount(ValidationError):
    """Raised when an amount or value is not a finite positive number."""
    pass


class InsufficientBalance(ValidationError):
    """Raised when a user's liquid balance cannot cover a debit."""
    pass


class InsufficientLiquidity(ValidationError):
    """Raised when a pool cannot lend out or release the requested amount."""
    pass


class InsufficientCollateral(ValidationError):
    """Raised when collateral value is below 150% of the loan principal."""
    pass


class IneligibleCollateral(ValidationError):
    """Raised when an RWA token that is not verified is offered as collateral."""
    pass


class NotFoundError(LedgerError):
    """Raised when an id does not resolve to a stored entity."""
    pass


class UserNotFound(NotFoundError):
    pass


class PoolNotFound(NotFoundError):
    pass


class AssetNotFound(NotFoundError):
    pass


class DepositNotFound(NotFoundError):
    pass


class LoanNotFound(NotFoundError):
    pass


class TokenNotFound(NotFoundError):
    pass


class AuthError(LedgerError):
    """Base exception for sign-up / sign-in failures."""
    pass


class DuplicateEmail(AuthError):
    pass


class InvalidCredentials(AuthError):
    pass


class NotSignedIn(AuthError):
    pass


class InvalidStateError(LedgerError):
    """Raised when an entity's lifecycle state forbids the operation."""
    pass


class LoanNotActive(InvalidStateError):
    """Raised when repaying a loan that is already repaid or liquidated."""
    pass


# ============================================================================
# HELPERS
# ============================================================================

def to_decimal(value: Any) -> Decimal:
    """
    Convert int/float/str/Decimal to Decimal.

    Floats go through str() so that 0.1 becomes Decimal("0.1") rather than
    its binary expansion.

    Raises:
        ValueError: If the value cannot be parsed as a number.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Expected a number, got {value!r}") from e


def positive_amount(value: Any, what: str = "amount") -> Decimal:
    """
    Parse a strictly positive, finite amount.

    Raises:
        InvalidAmount: If the value is not a number, not finite, or <= 0.
    """
    try:
        amount = to_decimal(value)
    except ValueError as e:
        raise InvalidAmount(f"{what} must be a number, got {value!r}") from e
    if not amount.is_finite():
        raise InvalidAmount(f"{what} must be finite, got {amount}")
    if amount <= 0:
        raise InvalidAmount(f"{what} must be positive, got {amount}")
    return amount


def new_id(prefix: str) -> str:
    """Return an opaque unique identifier such as 'loan-3f2a...'."""
    return f"{prefix}-{uuid.uuid4().hex}"


# ============================================================================
# ENTITIES
# ============================================================================

@dataclass(slots=True)
class User:
    id: str
    email: str
    display_name: str
    onboarding_completed: bool = False


@dataclass(slots=True)
class CryptoAsset:
    """
    A user's holding of one asset type.

    Attributes:
        balance: Liquid, spendable amount.
        deposited_to_pool: Amount currently locked in the owner's open deposits
                           for pools of this asset type.
    """
    id: str
    owner_id: str
    asset_type: AssetType
    balance: Decimal
    deposited_to_pool: Decimal = Decimal("0")

    def __post_init__(self):
        self.asset_type = AssetType(self.asset_type)
        self.balance = to_decimal(self.balance)
        self.deposited_to_pool = to_decimal(self.deposited_to_pool)
        if self.balance < 0:
            raise ValueError(f"balance cannot be negative, got {self.balance}")
        if self.deposited_to_pool < 0:
            raise ValueError(f"deposited_to_pool cannot be negative, got {self.deposited_to_pool}")


@dataclass(slots=True)
class LendingPool:
    """
    Shared liquidity pool for one asset type.

    interest_rate is the annual supply APY in percent (5.0 means 5%).
    utilization_rate is derived; PoolRegistry.recompute() keeps it current.
    """
    id: str
    asset_type: AssetType
    total_deposited: Decimal
    total_borrowed: Decimal
    interest_rate: Decimal
    utilization_rate: Decimal = Decimal("0")

    def __post_init__(self):
        self.asset_type = AssetType(self.asset_type)
        self.total_deposited = to_decimal(self.total_deposited)
        self.total_borrowed = to_decimal(self.total_borrowed)
        self.interest_rate = to_decimal(self.interest_rate)
        self.utilization_rate = to_decimal(self.utilization_rate)
        if self.total_borrowed < 0:
            raise ValueError(f"total_borrowed cannot be negative, got {self.total_borrowed}")
        if self.total_borrowed > self.total_deposited:
            raise ValueError(
                f"total_borrowed ({self.total_borrowed}) cannot exceed "
                f"total_deposited ({self.total_deposited})"
            )


@dataclass(slots=True)
class UserDeposit:
    """
    An open supply position. Interest never compounds into `amount`.
    """
    id: str
    owner_id: str
    pool_id: str
    amount: Decimal
    interest_earned: Decimal
    deposited_at: datetime
    last_interest_update: datetime

    def __post_init__(self):
        self.amount = to_decimal(self.amount)
        self.interest_earned = to_decimal(self.interest_earned)
        if self.amount <= 0:
            raise ValueError(f"deposit amount must be positive, got {self.amount}")


@dataclass(slots=True)
class RWAToken:
    id: str
    owner_id: str
    token_type: TokenType
    token_name: str
    description: str
    estimated_value: Decimal
    verification_status: VerificationStatus
    created_at: datetime

    def __post_init__(self):
        self.token_type = TokenType(self.token_type)
        self.verification_status = VerificationStatus(self.verification_status)
        self.estimated_value = to_decimal(self.estimated_value)
        if self.estimated_value <= 0:
            raise ValueError(f"estimated_value must be positive, got {self.estimated_value}")

    @property
    def is_verified(self) -> bool:
        return self.verification_status is VerificationStatus.VERIFIED


@dataclass(slots=True)
class Loan:
    """
    A borrow position.

    Attributes:
        loan_amount: Original principal. Fixed for the life of the loan.
        collateral_id: Non-owning reference to a CryptoAsset or RWAToken.
        collateral_value: USD value of the collateral snapshotted at origination.
        interest_rate: Borrow APR in percent (pool APY + BORROW_RATE_SPREAD).
        interest_accrued: Accumulated unpaid interest. Never decreases.
        health_factor: collateral_value * 0.75 / (loan_amount + interest_accrued).
    """
    id: str
    borrower_id: str
    pool_id: str
    loan_amount: Decimal
    collateral_type: CollateralType
    collateral_id: str
    collateral_value: Decimal
    interest_rate: Decimal
    interest_accrued: Decimal
    health_factor: Decimal
    status: LoanStatus
    created_at: datetime
    updated_at: datetime

    def __post_init__(self):
        self.collateral_type = CollateralType(self.collateral_type)
        self.status = LoanStatus(self.status)
        self.loan_amount = to_decimal(self.loan_amount)
        self.collateral_value = to_decimal(self.collateral_value)
        self.interest_rate = to_decimal(self.interest_rate)
        self.interest_accrued = to_decimal(self.interest_accrued)
        self.health_factor = to_decimal(self.health_factor)
        if self.loan_amount <= 0:
            raise ValueError(f"loan_amount must be positive, got {self.loan_amount}")

    @property
    def total_debt(self) -> Decimal:
        return self.loan_amount + self.interest_accrued

    @property
    def is_active(self) -> bool:
        return self.status is LoanStatus.ACTIVE
