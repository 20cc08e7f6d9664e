"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the key market.
Any compliant pricing or settlement engine MUST pass these tests.

The tests are organized by invariant:
1. symmetry.py - Buy and sell of the same units price identically
2. monotonicity.py - Prices never fall as supply or batch size grows
3. conservation.py - Fee splits and payments neither create nor destroy value
4. atomicity.py - A failed trade leaves no trace
5. determinism.py - Same inputs, same prices, same settlements

These tests use hypothesis for property-based testing.
"""
