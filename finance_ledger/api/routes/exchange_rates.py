import logging
from datetime import date
from decimal import Decimal
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from finance_ledger.api.dependencies import (
    get_currency_conversion_service,
    get_exchange_rate_service,
    status_for_error,
)
from finance_ledger.services.currency_conversion_service import CurrencyConversionService
from finance_ledger.services.exchange_rate_service import ExchangeRateService
from finance_ledger.services.result_objects import RateSource
from finance_ledger.schemas.exchange_rate import (
    AllRatesApiResponse,
    ConversionApiResponse,
    ExchangeRateApiResponse,
    ManualRateApiRequest,
    ManualRateApiResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/exchange-rates", tags=["exchange-rates"])


def _validate_currency(code: str) -> str:
    if len(code) != 3 or not code.isalpha():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid currency code '{code}'. Expected a 3-letter ISO code"
        )
    return code.upper()


@router.put("/manual", response_model=ManualRateApiResponse)
async def set_manual_rate(
    request: ManualRateApiRequest,
    service: ExchangeRateService = Depends(get_exchange_rate_service)
):
    """
    Pin a manual exchange rate for a currency pair.
    
    Manual rates never expire and are never marked stale.
    
    Responses:
        200: Rate stored
        400: Invalid currencies or non-positive rate
        500: Internal server error
    """
    from_currency = _validate_currency(request.from_currency)
    to_currency = _validate_currency(request.to_currency)
    
    result = await service.set_manual_rate_async(from_currency, to_currency, request.rate)
    
    response = ManualRateApiResponse(
        success=result.success,
        message=result.message,
        errors=result.errors if result.errors else None,
        from_currency=from_currency,
        to_currency=to_currency,
        rate=result.exchange_rate.rate if result.exchange_rate is not None else None
    )
    
    if not result.success:
        return JSONResponse(
            status_code=status_for_error(result.error_code),
            content=response.model_dump(by_alias=True, mode="json")
        )
    
    return response


@router.get("/convert", response_model=ConversionApiResponse)
async def convert_amount(
    amount: Decimal = Query(...),
    from_currency: str = Query(..., alias="from"),
    to_currency: str = Query(..., alias="to"),
    on_date: Optional[date] = Query(None, alias="date"),
    service: CurrencyConversionService = Depends(get_currency_conversion_service)
):
    """
    Convert an amount between currencies, rounded to cents.

    Responses:
        200: Amount converted
        400: Invalid currency code
        404: No rate available
    """
    from_currency = _validate_currency(from_currency)
    to_currency = _validate_currency(to_currency)

    converted_amount, rate, source = await service.convert_currency_async(
        amount, from_currency, to_currency, on_date
    )

    if converted_amount is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No exchange rate available for {from_currency}->{to_currency}"
        )

    return ConversionApiResponse(
        from_currency=from_currency,
        to_currency=to_currency,
        amount=amount,
        converted_amount=converted_amount,
        rate=rate,
        source=source.value
    )


@router.get("/{from_currency}/{to_currency}", response_model=ExchangeRateApiResponse)
async def get_exchange_rate(
    from_currency: str,
    to_currency: str,
    on_date: Optional[date] = Query(None, alias="date"),
    service: ExchangeRateService = Depends(get_exchange_rate_service)
):
    """
    Get the rate converting 1 unit of from_currency into to_currency.
    
    The source field reports whether the rate was fresh from cache, newly
    fetched (api) or a stale fallback.
    
    Responses:
        200: Rate resolved
        400: Invalid currency code
        404: No rate available
    """
    from_currency = _validate_currency(from_currency)
    to_currency = _validate_currency(to_currency)
    
    result = await service.get_rate_async(from_currency, to_currency, on_date)
    
    if result.source == RateSource.NOT_FOUND:
        logger.info(f"No exchange rate for {from_currency}->{to_currency}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No exchange rate available for {from_currency}->{to_currency}"
        )
    
    return ExchangeRateApiResponse(
        from_currency=from_currency,
        to_currency=to_currency,
        rate=result.rate,
        source=result.source.value,
        fetched_at=result.fetched_at,
        expires_at=result.expires_at
    )


@router.get("/{base_currency}", response_model=AllRatesApiResponse)
async def get_all_rates(
    base_currency: str,
    service: ExchangeRateService = Depends(get_exchange_rate_service)
):
    """Get every fresh cached rate quoted from base_currency."""
    base_currency = _validate_currency(base_currency)
    rates = await service.get_all_rates_async(base_currency)
    
    return AllRatesApiResponse(
        base_currency=base_currency,
        rates=rates,
        count=len(rates)
    )
