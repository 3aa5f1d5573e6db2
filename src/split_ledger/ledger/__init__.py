"""Shared-expense ledger engine: splitting, balances and settlement planning."""
