"""Multi-currency ledger core."""
