"""Ledger exceptions raised below the service boundary."""


class LedgerError(Exception):
    """Base exception for the ledger core"""

    pass


class RateFetchError(LedgerError):
    """The external rate provider failed or returned unusable data"""

    pass
