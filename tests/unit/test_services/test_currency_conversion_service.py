"""
Unit tests for CurrencyConversionService and the rounding helpers.
"""
import pytest
from decimal import Decimal

from finance_ledger.core.exceptions import RateFetchError
from finance_ledger.services.currency_conversion_service import (
    CurrencyConversionService,
    calculate_base_amount,
    to_cents,
)
from finance_ledger.services.result_objects import RateSource


@pytest.fixture
def conversion_service(rate_service):
    return CurrencyConversionService(rate_service)


class TestRounding:

    @pytest.mark.parametrize("amount, expected", [
        (Decimal("1.005"), Decimal("1.01")),
        (Decimal("-0.005"), Decimal("-0.01")),
        (Decimal("2.004"), Decimal("2.00")),
        (Decimal("7"), Decimal("7.00")),
    ])
    def test_to_cents_rounds_half_away_from_zero(self, amount, expected):
        assert to_cents(amount) == expected

    def test_calculate_base_amount(self):
        assert calculate_base_amount(Decimal("100"), Decimal("1.08695652")) == Decimal("108.70")


class TestConvertCurrency:
    """Test conversions through the rate resolver."""

    @pytest.mark.asyncio
    async def test_convert_from_provider_base(self, conversion_service):
        converted, rate, source = await conversion_service.convert_currency_async(
            Decimal("100"), "USD", "EUR"
        )

        assert converted == Decimal("92.00")
        assert rate == Decimal("0.92")
        assert source == RateSource.API

    @pytest.mark.asyncio
    async def test_convert_to_provider_base_uses_inverse(self, conversion_service):
        converted, rate, _ = await conversion_service.convert_currency_async(
            Decimal("100"), "EUR", "USD"
        )

        assert rate == Decimal("1.08695652")
        assert converted == Decimal("108.70")

    @pytest.mark.asyncio
    async def test_same_currency_is_unchanged(self, conversion_service, mock_provider):
        converted, rate, source = await conversion_service.convert_currency_async(
            Decimal("12.345"), "UAH", "UAH"
        )

        assert converted == Decimal("12.35")
        assert rate == Decimal("1")
        assert source == RateSource.FRESH
        mock_provider.fetch_all.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_rate_is_never_defaulted(self, conversion_service, mock_provider):
        """Test an unresolvable pair converts to None instead of assuming 1:1."""
        mock_provider.fetch_all.side_effect = RateFetchError("provider down")

        converted, rate, source = await conversion_service.convert_currency_async(
            Decimal("100"), "USD", "EUR"
        )

        assert converted is None
        assert rate is None
        assert source == RateSource.NOT_FOUND
