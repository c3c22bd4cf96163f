"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Totals, custody balances and token supply stay consistent
2. atomicity.py - All-or-nothing operation semantics
3. projection.py - Side-effect-free, repeatable queries that match accrual
4. reentrancy.py - Single-flight execution of mutating operations

These tests use hypothesis for property-based testing.
"""
