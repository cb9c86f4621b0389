"""Challenge domain services: stakes, rounds, stores and settlement.

This package contains the lightning-round challenge logic that HTTP routes
and socket handlers call into, keeping transport concerns separated from the
settlement rules.
"""
