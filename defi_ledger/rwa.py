"""
rwa.py - Tokenized real-world assets

Users register land, invoices, gold or property as RWA tokens with a
self-declared USD value. Only VERIFIED tokens may back a loan.

With auto_verify on (the default) tokens are verified at creation, as the
simulated application does. With it off, tokens start PENDING and an external
verifier moves them with set_verification_status().
"""

from __future__ import annotations
from typing import Any, List, TYPE_CHECKING
import logging

from .clock import Clock
from .core import (
    RWAToken, TokenType, VerificationStatus,
    ValidationError, new_id, positive_amount,
)

if TYPE_CHECKING:
    from .store import Store

logger = logging.getLogger(__name__)


class RWARegistry:

    def __init__(self, store: Store, clock: Clock, auto_verify: bool = True):
        self.store = store
        self.clock = clock
        self.auto_verify = auto_verify

    def get_token(self, token_id: str) -> RWAToken:
        return self.store.get_token(token_id)

    def list_tokens(self, user_id: str) -> List[RWAToken]:
        return self.store.tokens_of(user_id)

    def create_token(
        self,
        user_id: str,
        token_type: TokenType,
        name: str,
        description: str,
        estimated_value: Any,
    ) -> RWAToken:
        """
        Register a new token for user_id.

        Raises:
            InvalidAmount: estimated_value is not positive
            ValidationError: unknown token_type
            UserNotFound: unknown user
        """
        estimated_value = positive_amount(estimated_value, "estimated value")
        try:
            token_type = TokenType(token_type)
        except ValueError:
            raise ValidationError(f"Unknown token type {token_type!r}") from None
        self.store.get_user(user_id)

        status = VerificationStatus.VERIFIED if self.auto_verify else VerificationStatus.PENDING
        token = RWAToken(
            id=new_id("rwa"),
            owner_id=user_id,
            token_type=token_type,
            token_name=name,
            description=description,
            estimated_value=estimated_value,
            verification_status=status,
            created_at=self.clock.now(),
        )
        self.store.add_token(token)

        logger.info(
            "RWA token %s (%s '%s', %s USD) for %s: %s",
            token.id, token_type.value, name, estimated_value, user_id, status.value,
        )
        return token

    def set_verification_status(self, token_id: str, status: VerificationStatus) -> RWAToken:
        """
        Record an external verification decision.

        Raises:
            TokenNotFound: unknown token id
            ValidationError: unknown status
        """
        token = self.store.get_token(token_id)
        try:
            status = VerificationStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown verification status {status!r}") from None

        previous = token.verification_status
        token.verification_status = status
        logger.info("RWA token %s: %s -> %s", token.id, previous.value, status.value)
        return token


def is_eligible_collateral(token: RWAToken) -> bool:
    return token.is_verified

