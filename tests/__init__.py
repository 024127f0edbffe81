"""
Test suite for the checkout controller.

- unit tests per module (cleanup, scanner, conflicts, decision, ...)
- workflow scenarios end to end with fake source control
- diagnostic bundles
- HTTP surface
"""
