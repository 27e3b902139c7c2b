"""Shared FastAPI dependencies for the ledger routers."""
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from finance_ledger.core.config import settings
from finance_ledger.db.session import get_db
from finance_ledger.services.aggregation_service import AggregationService
from finance_ledger.services.currency_conversion_service import CurrencyConversionService
from finance_ledger.services.exchange_rate_provider import ExchangeRateProvider
from finance_ledger.services.exchange_rate_service import ExchangeRateService
from finance_ledger.services.result_objects import ErrorCode
from finance_ledger.services.transfer_service import TransferService

# HTTP status for each failed service result
ERROR_STATUS_CODES = {
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.NOT_ACCESSIBLE: status.HTTP_404_NOT_FOUND,
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_TRANSFER: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INTEGRITY_VIOLATION: status.HTTP_409_CONFLICT,
    ErrorCode.RATE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.FETCH_FAILURE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for_error(error_code: ErrorCode) -> int:
    """Map a failed result's error code to an HTTP status code."""
    return ERROR_STATUS_CODES.get(error_code, status.HTTP_400_BAD_REQUEST)


def get_exchange_rate_provider() -> ExchangeRateProvider:
    """Dependency to get the external exchange rate provider client."""
    return ExchangeRateProvider(
        base_url=settings.exchange_rate_api_url,
        base_currency=settings.exchange_rate_provider_base,
        timeout_seconds=settings.exchange_rate_api_timeout_seconds,
        provider_name=settings.exchange_rate_api_provider
    )


def get_exchange_rate_service(
    db: AsyncSession = Depends(get_db),
    provider: ExchangeRateProvider = Depends(get_exchange_rate_provider)
) -> ExchangeRateService:
    """Dependency to get ExchangeRateService instance."""
    return ExchangeRateService(db, provider)


def get_currency_conversion_service(
    rate_service: ExchangeRateService = Depends(get_exchange_rate_service)
) -> CurrencyConversionService:
    """Dependency to get CurrencyConversionService instance."""
    return CurrencyConversionService(rate_service)


def get_transfer_service(
    db: AsyncSession = Depends(get_db),
    rate_service: ExchangeRateService = Depends(get_exchange_rate_service)
) -> TransferService:
    """Dependency to get TransferService instance."""
    return TransferService(db, rate_service)


def get_aggregation_service(
    db: AsyncSession = Depends(get_db)
) -> AggregationService:
    """Dependency to get AggregationService instance."""
    return AggregationService(db)


async def get_current_account_id(
    x_account_id: int = Header(..., alias="X-Account-Id")
) -> int:
    """
    Resolve the calling account from the X-Account-Id header.
    
    Authentication happens upstream; this only trusts the forwarded identity.
    """
    if x_account_id <= 0:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid X-Account-Id header"
        )
    return x_account_id
