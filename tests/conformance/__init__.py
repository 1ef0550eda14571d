"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. pool_invariants.py - Pool and asset bookkeeping after every operation
2. atomicity.py - Failed operations change nothing
3. accrual_properties.py - Tick idempotence, monotonic interest, liquidation rule

These tests use hypothesis for property-based testing.
"""
