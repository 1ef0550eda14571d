"""
service.py - The lending operation surface

LendingService is what a presentation layer talks to. Each public method is
one unit of work:

1. Acquire the store lock (serializes operations and accrual ticks)
2. Delegate to the ledger, which validates everything and then mutates
3. Release the lock and hand a snapshot to the SnapshotWriter

A method that raises has not changed the Store, and nothing is saved.

Example:
    service = LendingService(Store.fresh())
    alice = service.sign_up("alice@example.com", "pw", "Alice")
    service.create_deposit(alice.id, "pool-eth", "2.5")
    service.tick()
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, List, Optional
import logging

from .accrual import AccrualEngine, TickResult
from .clock import Clock, SystemClock
from .core import (
    User, CryptoAsset, LendingPool, UserDeposit, RWAToken, Loan,
    AssetType, CollateralType, TokenType, VerificationStatus,
    SIGN_UP_BALANCES,
    DuplicateEmail, InvalidCredentials, NotSignedIn,
    IneligibleCollateral, ValidationError, AssetNotFound, TokenNotFound,
    new_id,
)
from .deposits import DepositLedger
from .loans import LoanLedger
from .persistence import SnapshotWriter, load_store
from .pools import PoolRegistry
from .pricing_source import PricingSource, StaticPricingSource
from .rwa import RWARegistry, is_eligible_collateral
from .store import Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PortfolioSummary:
    """
    USD totals for one user at fixed prices.

    Attributes:
        liquid_value: Spendable balances
        deposited_value: Principal locked in open deposits
        interest_earned_value: Interest accrued on open deposits
        debt_value: Principal + interest of ACTIVE loans
    """
    user_id: str
    liquid_value: Decimal
    deposited_value: Decimal
    interest_earned_value: Decimal
    debt_value: Decimal
    active_loans: int

    @property
    def net_value(self) -> Decimal:
        return (
            self.liquid_value + self.deposited_value
            + self.interest_earned_value - self.debt_value
        )


class LendingService:
    """
    Facade over the Store and its ledgers.

    Args:
        store: The Store to operate on (Store.fresh() or load_store(...))
        clock: Time source. Defaults to SystemClock().
        prices: Fixed prices for valuation. Defaults to StaticPricingSource().
        writer: Optional SnapshotWriter; when set, every committed change is saved.
        auto_verify: Whether new RWA tokens are verified at creation.
    """

    def __init__(
        self,
        store: Store,
        clock: Optional[Clock] = None,
        prices: Optional[PricingSource] = None,
        writer: Optional[SnapshotWriter] = None,
        auto_verify: bool = True,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.prices = prices or StaticPricingSource()
        self.writer = writer

        self.pools = PoolRegistry(store)
        self.deposits = DepositLedger(store, self.clock)
        self.loans = LoanLedger(store, self.clock, self.prices)
        self.rwa = RWARegistry(store, self.clock, auto_verify=auto_verify)
        self.engine = AccrualEngine(store, self.clock)

    @classmethod
    def open(
        cls,
        snapshot_path: Optional[str],
        clock: Optional[Clock] = None,
        prices: Optional[PricingSource] = None,
        auto_verify: bool = True,
    ) -> LendingService:
        """
        Load the Store from snapshot_path (or start fresh) and save back to it.

        With snapshot_path None the service is purely in-memory.
        """
        store = load_store(snapshot_path)
        writer = SnapshotWriter(snapshot_path) if snapshot_path is not None else None
        return cls(store, clock=clock, prices=prices, writer=writer, auto_verify=auto_verify)

    def close(self) -> None:
        """Wait for pending snapshot writes and stop the writer."""
        if self.writer is not None:
            self.writer.close()

    def _commit(self) -> None:
        if self.writer is not None:
            self.writer.save(self.store)

    # ========================================================================
    # ACCOUNTS
    # ========================================================================

    def sign_up(self, email: str, password: str, display_name: str) -> User:
        """
        Register a user, seed ETH/BTC/USDC balances and sign them in.

        The password is accepted but not stored; credential handling belongs
        to the presentation layer.

        Raises:
            ValidationError: empty email
            DuplicateEmail: email already registered
        """
        if not email:
            raise ValidationError("Email is required")
        with self.store.lock:
            if self.store.find_user_by_email(email) is not None:
                raise DuplicateEmail("User already exists")

            user = User(id=new_id("user"), email=email, display_name=display_name)
            self.store.add_user(user)
            for asset_type, balance in SIGN_UP_BALANCES.items():
                self.store.add_asset(CryptoAsset(
                    id=new_id("asset"),
                    owner_id=user.id,
                    asset_type=AssetType(asset_type),
                    balance=balance,
                ))
            self.store.current_user_id = user.id
            self._commit()

        logger.info("Signed up %s (%s)", user.id, email)
        return user

    def sign_in(self, email: str, password: str) -> User:
        """
        Make the user with this email current.

        Raises:
            InvalidCredentials: no user has this email
        """
        with self.store.lock:
            user = self.store.find_user_by_email(email)
            if user is None:
                raise InvalidCredentials("Invalid credentials")
            self.store.current_user_id = user.id
            self._commit()

        logger.info("Signed in %s", user.id)
        return user

    def sign_out(self) -> None:
        with self.store.lock:
            self.store.current_user_id = None
            self._commit()

    def get_current_user(self) -> Optional[User]:
        with self.store.lock:
            if self.store.current_user_id is None:
                return None
            return self.store.users.get(self.store.current_user_id)

    def complete_onboarding(self) -> User:
        """Raises NotSignedIn when no user is current."""
        with self.store.lock:
            user = self.get_current_user()
            if user is None:
                raise NotSignedIn("No user is signed in")
            user.onboarding_completed = True
            self._commit()
        return user

    # ========================================================================
    # ASSETS AND POOLS
    # ========================================================================

    def list_assets(self, user_id: str) -> List[CryptoAsset]:
        with self.store.lock:
            return self.store.assets_of(user_id)

    def list_pools(self) -> List[LendingPool]:
        with self.store.lock:
            return self.pools.list_pools()

    # ========================================================================
    # DEPOSITS
    # ========================================================================

    def create_deposit(self, user_id: str, pool_id: str, amount: Any) -> UserDeposit:
        with self.store.lock:
            deposit = self.deposits.create_deposit(user_id, pool_id, amount)
            self._commit()
        return deposit

    def withdraw_deposit(self, deposit_id: str) -> UserDeposit:
        with self.store.lock:
            deposit = self.deposits.withdraw_deposit(deposit_id)
            self._commit()
        return deposit

    def list_deposits(self, user_id: str) -> List[UserDeposit]:
        with self.store.lock:
            return self.deposits.list_deposits(user_id)

    # ========================================================================
    # RWA TOKENS
    # ========================================================================

    def create_rwa_token(
        self,
        user_id: str,
        token_type: TokenType,
        name: str,
        description: str,
        estimated_value: Any,
    ) -> RWAToken:
        with self.store.lock:
            token = self.rwa.create_token(user_id, token_type, name, description, estimated_value)
            self._commit()
        return token

    def list_rwa_tokens(self, user_id: str) -> List[RWAToken]:
        with self.store.lock:
            return self.rwa.list_tokens(user_id)

    def verify_rwa_token(self, token_id: str, status: VerificationStatus) -> RWAToken:
        """External verifier hook: set a token's verification status."""
        with self.store.lock:
            token = self.rwa.set_verification_status(token_id, status)
            self._commit()
        return token

    # ========================================================================
    # LOANS
    # ========================================================================

    def create_loan(
        self,
        user_id: str,
        pool_id: str,
        amount: Any,
        collateral_type: CollateralType,
        collateral_id: str,
        collateral_value: Any,
    ) -> Loan:
        """
        Originate a loan. See LoanLedger.create_loan for the checks.

        Additionally raises TokenNotFound when collateral_id names a known RWA
        token owned by someone else, and IneligibleCollateral when it names a
        known RWA token that is not verified.
        """
        with self.store.lock:
            try:
                collateral_type = CollateralType(collateral_type)
            except ValueError:
                raise ValidationError(f"Unknown collateral type {collateral_type!r}") from None
            if collateral_type is CollateralType.RWA:
                token = self.store.rwa_tokens.get(collateral_id)
                if token is not None and token.owner_id != user_id:
                    raise TokenNotFound(f"RWA token {collateral_id} not found for user {user_id}")
                if token is not None and not is_eligible_collateral(token):
                    raise IneligibleCollateral(
                        f"RWA token {token.id} is {token.verification_status.value}, "
                        f"only verified tokens can back a loan"
                    )
            loan = self.loans.create_loan(
                user_id, pool_id, amount, collateral_type, collateral_id, collateral_value,
            )
            self._commit()
        return loan

    def repay_loan(self, loan_id: str) -> Loan:
        with self.store.lock:
            loan = self.loans.repay_loan(loan_id)
            self._commit()
        return loan

    def list_loans(self, user_id: str) -> List[Loan]:
        with self.store.lock:
            return self.loans.list_loans(user_id)

    def quote_collateral_value(
        self,
        user_id: str,
        collateral_type: CollateralType,
        collateral_id: str,
    ) -> Decimal:
        """
        USD value of one of the user's own assets or tokens as collateral.

        Raises:
            AssetNotFound, TokenNotFound: unknown id, or owned by someone else
        """
        with self.store.lock:
            collateral_type = CollateralType(collateral_type)
            if collateral_type is CollateralType.CRYPTO:
                owner = self.store.get_asset(collateral_id).owner_id
                if owner != user_id:
                    raise AssetNotFound(f"Asset {collateral_id} not found for user {user_id}")
            else:
                owner = self.store.get_token(collateral_id).owner_id
                if owner != user_id:
                    raise TokenNotFound(f"RWA token {collateral_id} not found for user {user_id}")
            return self.loans.quote_collateral_value(collateral_type, collateral_id)

    # ========================================================================
    # ACCRUAL AND REPORTING
    # ========================================================================

    def tick(self) -> TickResult:
        """Run one accrual pass; saves when any position was touched."""
        with self.store.lock:
            result = self.engine.tick()
            if result.deposits_updated or result.loans_updated:
                self._commit()
        return result

    def portfolio_summary(self, user_id: str) -> PortfolioSummary:
        """
        Raises:
            UserNotFound: unknown user
        """
        with self.store.lock:
            self.store.get_user(user_id)
            liquid = sum(
                (self.prices.value(a.asset_type, a.balance) for a in self.store.assets_of(user_id)),
                Decimal("0"),
            )

            deposited = Decimal("0")
            interest = Decimal("0")
            for deposit in self.store.deposits_of(user_id):
                asset_type = self.store.get_pool(deposit.pool_id).asset_type
                deposited += self.prices.value(asset_type, deposit.amount)
                interest += self.prices.value(asset_type, deposit.interest_earned)

            debt = Decimal("0")
            active = [loan for loan in self.store.loans_of(user_id) if loan.is_active]
            for loan in active:
                asset_type = self.store.get_pool(loan.pool_id).asset_type
                debt += self.prices.value(asset_type, loan.total_debt)

        return PortfolioSummary(
            user_id=user_id,
            liquid_value=liquid,
            deposited_value=deposited,
            interest_earned_value=interest,
            debt_value=debt,
            active_loans=len(active),
        )

    def __repr__(self):
        return f"LendingService({self.store!r})"
