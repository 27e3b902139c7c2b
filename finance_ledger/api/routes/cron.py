import logging
import secrets
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import JSONResponse

from finance_ledger.api.dependencies import get_exchange_rate_service
from finance_ledger.core.config import settings
from finance_ledger.services.exchange_rate_service import ExchangeRateService
from finance_ledger.schemas.exchange_rate import PairRefreshDto, RefreshRatesApiResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cron", tags=["cron"])


def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Require 'Authorization: Bearer <exchange_rate_cron_secret>'."""
    if not settings.is_cron_secret_configured:
        logger.error("Scheduled refresh called but no cron secret is configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scheduled refresh is not configured"
        )
    
    expected = f"Bearer {settings.exchange_rate_cron_secret}"
    if authorization is None or not secrets.compare_digest(authorization, expected):
        logger.warning("Unauthorized scheduled refresh attempt")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )


@router.get(
    "/refresh-rates",
    response_model=RefreshRatesApiResponse,
    dependencies=[Depends(verify_cron_secret)]
)
async def refresh_rates(
    service: ExchangeRateService = Depends(get_exchange_rate_service)
):
    """
    Refresh rates for all active currencies, then mark expired rates stale.
    
    Intended for a daily scheduler. Safe to call repeatedly.
    
    Responses:
        200: Refresh ran (individual pairs may have failed, see outcomes)
        401: Missing or wrong bearer secret
        503: Every pair failed, or the secret is not configured
    """
    result = await service.refresh_all_async()
    
    response = RefreshRatesApiResponse(
        success=result.success,
        message=result.message,
        errors=result.errors if result.errors else None,
        currencies=result.currencies,
        refreshed_count=result.refreshed_count,
        failed_count=result.failed_count,
        marked_stale=result.marked_stale,
        outcomes=[
            PairRefreshDto(
                from_currency=o.from_currency,
                to_currency=o.to_currency,
                success=o.success,
                rate=o.rate,
                error=o.error
            )
            for o in result.outcomes
        ]
    )
    
    if result.outcomes and result.refreshed_count == 0:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(by_alias=True, mode="json")
        )
    
    return response
