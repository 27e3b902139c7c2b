"""
Currency conversion service for converting ledger amounts between currencies.
"""
import logging
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

from finance_ledger.core.constants import MoneyConstants
from finance_ledger.services.exchange_rate_service import ExchangeRateService
from finance_ledger.services.result_objects import RateSource

logger = logging.getLogger(__name__)


def to_cents(amount: Decimal) -> Decimal:
    """Round a money amount to 2 decimal places, half away from zero."""
    return Decimal(amount).quantize(MoneyConstants.CENTS, rounding=ROUND_HALF_UP)


def calculate_base_amount(native_amount: Decimal, rate: Decimal) -> Decimal:
    """Base-currency amount stored on a transaction: round(native * rate, 2)."""
    return to_cents(Decimal(native_amount) * Decimal(rate))


class CurrencyConversionService:
    """
    Service for converting amounts using rates resolved by ExchangeRateService.
    
    This implementation:
    - Never substitutes a default rate; unresolvable pairs convert to None
    - Rounds converted amounts to cents
    """
    
    def __init__(self, rate_service: ExchangeRateService):
        """
        Initialize the currency conversion service.
        
        Args:
            rate_service: Resolver used for every rate lookup
        """
        self.rate_service = rate_service
    
    async def convert_currency_async(
        self,
        amount: Decimal,
        from_currency: str,
        to_currency: str,
        on_date: Optional[date] = None
    ) -> Tuple[Optional[Decimal], Optional[Decimal], RateSource]:
        """
        Convert amount from one currency to another.
        
        Args:
            amount: Amount to convert
            from_currency: Source currency code
            to_currency: Target currency code
            on_date: Date of the amount being converted
            
        Returns:
            Tuple of (converted_amount, exchange_rate, rate_source); the first two
            are None when no rate is available
        """
        rate_result = await self.rate_service.get_rate_async(from_currency, to_currency, on_date)
        
        if not rate_result.found:
            logger.warning(
                f"No exchange rate available for {from_currency}/{to_currency}; amount {amount} not converted"
            )
            return (None, None, rate_result.source)
        
        converted_amount = calculate_base_amount(amount, rate_result.rate)
        logger.debug(
            f"Converted {amount} {from_currency} to {converted_amount} {to_currency} "
            f"using rate {rate_result.rate} ({rate_result.source.value})"
        )
        return (converted_amount, rate_result.rate, rate_result.source)
    
