"""
defi_ledger - Collateralized Lending Ledger

An in-memory simulation of pooled crypto lending: users deposit ETH/BTC/USDC
into pools to earn interest and borrow against crypto or tokenized real-world
asset collateral, with time-based accrual and automatic liquidation.

Usage:
    from defi_ledger import LendingService, Store, ManualClock, CollateralType

    clock = ManualClock()
    service = LendingService(Store.fresh(), clock=clock)

    alice = service.sign_up("alice@example.com", "secret", "Alice")
    service.create_deposit(alice.id, "pool-eth", "2")

    usdc = service.store.find_asset(alice.id, "USDC")
    value = service.quote_collateral_value(alice.id, CollateralType.CRYPTO, usdc.id)
    loan = service.create_loan(alice.id, "pool-eth", "1",
                               CollateralType.CRYPTO, usdc.id, value)

    clock.advance(seconds=3600)
    result = service.tick()
"""

# Core types
from .core import (
    AssetType,
    CollateralType,
    TokenType,
    VerificationStatus,
    LoanStatus,
    HealthStatus,
    User,
    CryptoAsset,
    LendingPool,
    UserDeposit,
    RWAToken,
    Loan,
    LedgerError,
    ValidationError,
    InvalidAmount,
    InsufficientBalance,
    InsufficientLiquidity,
    InsufficientCollateral,
    IneligibleCollateral,
    NotFoundError,
    UserNotFound,
    PoolNotFound,
    AssetNotFound,
    DepositNotFound,
    LoanNotFound,
    TokenNotFound,
    AuthError,
    DuplicateEmail,
    InvalidCredentials,
    NotSignedIn,
    InvalidStateError,
    LoanNotActive,
    COLLATERAL_RATIO,
    LIQUIDATION_THRESHOLD,
    LIQUIDATION_HEALTH_FACTOR,
    BORROW_RATE_SPREAD,
    HEALTH_FACTOR_SAFE,
    HEALTH_FACTOR_WARNING,
    SECONDS_PER_YEAR,
)

# Time and prices
from .clock import Clock, SystemClock, ManualClock
from .pricing_source import PricingSource, StaticPricingSource, DEFAULT_PRICES

# State and ledgers
from .store import Store
from .pools import PoolRegistry, DEFAULT_POOL_SPECS, calculate_utilization_rate
from .deposits import DepositLedger
from .loans import (
    LoanLedger,
    calculate_health_factor,
    calculate_max_borrow,
    calculate_required_collateral,
)
from .rwa import RWARegistry
from .accrual import AccrualEngine, TickResult, calculate_interest, health_status

# Persistence, service, scheduling
from .persistence import SnapshotWriter, load_store, to_snapshot, from_snapshot
from .service import LendingService, PortfolioSummary
from .scheduler import AccrualScheduler

__version__ = "0.1.0"

__all__ = [
    # Enums
    'AssetType', 'CollateralType', 'TokenType', 'VerificationStatus',
    'LoanStatus', 'HealthStatus',
    # Entities
    'User', 'CryptoAsset', 'LendingPool', 'UserDeposit', 'RWAToken', 'Loan',
    # Exceptions
    'LedgerError', 'ValidationError', 'InvalidAmount', 'InsufficientBalance',
    'InsufficientLiquidity', 'InsufficientCollateral', 'IneligibleCollateral',
    'NotFoundError', 'UserNotFound', 'PoolNotFound', 'AssetNotFound',
    'DepositNotFound', 'LoanNotFound', 'TokenNotFound',
    'AuthError', 'DuplicateEmail', 'InvalidCredentials', 'NotSignedIn',
    'InvalidStateError', 'LoanNotActive',
    # Constants
    'COLLATERAL_RATIO', 'LIQUIDATION_THRESHOLD', 'LIQUIDATION_HEALTH_FACTOR',
    'BORROW_RATE_SPREAD', 'HEALTH_FACTOR_SAFE', 'HEALTH_FACTOR_WARNING',
    'SECONDS_PER_YEAR', 'DEFAULT_PRICES', 'DEFAULT_POOL_SPECS',
    # Time and prices
    'Clock', 'SystemClock', 'ManualClock', 'PricingSource', 'StaticPricingSource',
    # State and ledgers
    'Store', 'PoolRegistry', 'DepositLedger', 'LoanLedger', 'RWARegistry',
    'AccrualEngine', 'TickResult',
    # Pure functions
    'calculate_utilization_rate', 'calculate_health_factor', 'calculate_max_borrow',
    'calculate_required_collateral', 'calculate_interest', 'health_status',
    # Persistence, service, scheduling
    'SnapshotWriter', 'load_store', 'to_snapshot', 'from_snapshot',
    'LendingService', 'PortfolioSummary', 'AccrualScheduler',
]
