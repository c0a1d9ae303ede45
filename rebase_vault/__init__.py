"""
Rebase Vault

An interest-bearing ledger token whose balances accrue linearly at a
per-account locked rate, and a custodial vault that mints/redeems it 1:1
against a deposited reference asset.
"""

__version__ = "1.0.0"
