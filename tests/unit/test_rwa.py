"""
test_rwa.py - Unit tests for RWARegistry

Tests:
- Token creation with and without auto-verification
- Verification status changes
- Validation failures
"""

import pytest
from decimal import Decimal

from defi_ledger import (
    RWARegistry, TokenType, VerificationStatus, User,
    InvalidAmount, ValidationError, UserNotFound, TokenNotFound,
)
from defi_ledger.rwa import is_eligible_collateral


@pytest.fixture
def registry(service):
    return service.rwa


@pytest.fixture
def manual_registry(store, clock):
    return RWARegistry(store, clock, auto_verify=False)


class TestCreateToken:

    def test_auto_verified(self, registry, alice, clock):
        token = registry.create_token(alice.id, TokenType.GOLD, "Gold bar", "1kg 999.9", "65000")
        assert token.verification_status is VerificationStatus.VERIFIED
        assert token.estimated_value == Decimal("65000")
        assert token.created_at == clock.now()
        assert token.owner_id == alice.id
        assert is_eligible_collateral(token)

    def test_pending_without_auto_verify(self, manual_registry, store):
        store.add_user(User(id="u1", email="u1@example.com", display_name="U1"))
        token = manual_registry.create_token("u1", "invoice", "INV-9", "Net 30", 1200)
        assert token.verification_status is VerificationStatus.PENDING
        assert not is_eligible_collateral(token)

    @pytest.mark.parametrize("value", [0, -100, "lots"])
    def test_invalid_value(self, registry, alice, value):
        with pytest.raises(InvalidAmount):
            registry.create_token(alice.id, "land", "Plot", "", value)

    def test_unknown_token_type(self, registry, alice):
        with pytest.raises(ValidationError):
            registry.create_token(alice.id, "artwork", "Painting", "", 100)

    def test_unknown_user(self, registry):
        with pytest.raises(UserNotFound):
            registry.create_token("user-x", "land", "Plot", "", 100)

    def test_list_and_get(self, registry, alice, bob):
        t1 = registry.create_token(alice.id, "land", "A", "", 1)
        t2 = registry.create_token(alice.id, "property", "B", "", 2)
        registry.create_token(bob.id, "gold", "C", "", 3)
        assert registry.list_tokens(alice.id) == [t1, t2]
        assert registry.get_token(t2.id) is t2


class TestVerificationStatus:

    def test_reject_then_verify(self, registry, alice):
        token = registry.create_token(alice.id, "land", "Plot", "", 100)
        registry.set_verification_status(token.id, VerificationStatus.REJECTED)
        assert token.verification_status is VerificationStatus.REJECTED
        registry.set_verification_status(token.id, "verified")
        assert token.is_verified

    def test_unknown_token(self, registry):
        with pytest.raises(TokenNotFound):
            registry.set_verification_status("rwa-x", "verified")

    def test_unknown_status(self, registry, alice):
        token = registry.create_token(alice.id, "land", "Plot", "", 100)
        with pytest.raises(ValidationError):
            registry.set_verification_status(token.id, "approved")
        assert token.is_verified
