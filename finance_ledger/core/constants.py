"""
Constants for currencies, rate sources and monetary rounding.
"""
from decimal import Decimal


class CurrencyConstants:
    """Currency defaults used across the ledger."""
    
    # Default base currency for new accounts
    DEFAULT_BASE_CURRENCY = "USD"


class RateSourceConstants:
    """Tags stored on ExchangeRate.source describing where a row came from."""
    
    MANUAL = "manual"
    API = "api"


class MoneyConstants:
    """Quantization steps for stored amounts and rates."""
    
    # Amounts are stored with two decimal places
    CENTS = Decimal("0.01")
    
    # Amounts are stored as NUMERIC(12, 2); stored values stay strictly below this
    MAX_AMOUNT = Decimal("10000000000")
    
    # Rates are stored as NUMERIC(18, 8)
    RATE_PRECISION = Decimal("0.00000001")
