"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending protocol.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Cash and collateral are never created or lost
2. atomicity.py - Failed operations change nothing
3. idempotency.py - Repeated operations and duplicate transactions
4. determinism.py - Reproducible behavior and replay
5. rate_monotonicity.py - Accepted bids strictly improve the rate
6. temporal.py - Deadlines, extensions and finalize-once
7. withdrawable_bounds.py - Lender accounting of repaid funds

These tests use hypothesis for property-based testing.
"""
