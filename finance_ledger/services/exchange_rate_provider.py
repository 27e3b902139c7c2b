"""External exchange rate provider client (open.er-api.com / exchangerate-api.com)."""
import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional

import httpx
from pydantic import BaseModel, ValidationError, field_validator

from finance_ledger.core.exceptions import RateFetchError
from finance_ledger.core.telemetry import get_tracer

logger = logging.getLogger(__name__)


class ProviderRatesResponse(BaseModel):
    """Strict internal shape of the provider's latest-rates payload."""
    result: str
    base_code: str
    rates: Dict[str, Decimal]
    
    @field_validator("base_code")
    @classmethod
    def _upper_base(cls, value: str) -> str:
        return value.upper()
    
    @field_validator("rates")
    @classmethod
    def _positive_rates(cls, value: Dict[str, Decimal]) -> Dict[str, Decimal]:
        cleaned: Dict[str, Decimal] = {}
        for currency, rate in value.items():
            if rate is None or not rate.is_finite() or rate <= 0:
                continue
            cleaned[currency.upper()] = rate
        return cleaned


class ExchangeRateProvider:
    """
    Client for an external provider that quotes every currency against one base.
    
    fetch_all() returns {currency: rate} where 1 base = rate currency. Any
    non-success HTTP status, network error or malformed payload is collapsed
    into RateFetchError; provider-specific shapes never leave this class.
    """
    
    def __init__(
        self,
        base_url: str = "https://open.er-api.com/v6/latest",
        base_currency: str = "USD",
        timeout_seconds: int = 30,
        provider_name: str = "exchangerate-api.com",
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize the provider client.
        
        Args:
            base_url: Latest-rates endpoint; the base currency is appended as a path segment
            base_currency: The single currency the provider quotes against
            timeout_seconds: Request timeout in seconds (default: 30)
            provider_name: Tag stored on cached rows
            transport: Optional HTTPX transport (used to stub the network in tests)
        """
        self.base_url = base_url.rstrip("/")
        self.base_currency = base_currency.upper()
        self.timeout = timeout_seconds
        self.provider_name = provider_name
        self._transport = transport
    
    async def fetch_all(self, base_currency: Optional[str] = None) -> Dict[str, Decimal]:
        """
        Fetch every rate quoted against base_currency.
        
        Args:
            base_currency: Quote base (defaults to the provider's fixed base)
            
        Returns:
            Dictionary mapping currency code to rate; always contains base -> 1
            
        Raises:
            RateFetchError: If the provider is unreachable or the payload is unusable
        """
        base = (base_currency or self.base_currency).upper()
        url = f"{self.base_url}/{base}"
        
        with get_tracer().start_as_current_span("exchange_rate_provider.fetch_all") as span:
            span.set_attribute("rates.base_currency", base)
            
            try:
                async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                    response = await client.get(url, headers={"Accept": "application/json"})
            except httpx.HTTPError as ex:
                logger.warning(f"Exchange rate provider unreachable for base {base}: {ex}")
                raise RateFetchError(f"Provider request failed: {ex}") from ex
            
            if response.status_code != 200:
                logger.warning(
                    f"HTTP error fetching rates for base {base}: {response.status_code} - {response.reason_phrase}"
                )
                raise RateFetchError(f"Provider returned HTTP {response.status_code}")
            
            rates = self._parse_response(response, base)
            span.set_attribute("rates.count", len(rates))
        
        logger.info(f"Fetched {len(rates)} rates against {base} from {self.provider_name}")
        return rates
    
    def _parse_response(self, response: httpx.Response, base: str) -> Dict[str, Decimal]:
        """Validate and coerce the provider payload into {currency: rate}."""
        try:
            payload = ProviderRatesResponse.model_validate(response.json())
        except (ValueError, ValidationError, InvalidOperation) as ex:
            logger.warning(f"Malformed rate payload for base {base}: {ex}")
            raise RateFetchError("Provider returned malformed data") from ex
        
        if payload.result != "success":
            logger.warning(f"Provider reported '{payload.result}' for base {base}")
            raise RateFetchError(f"Provider reported result '{payload.result}'")
        
        if payload.base_code != base:
            raise RateFetchError(f"Provider quoted against {payload.base_code}, expected {base}")
        
        if not payload.rates:
            raise RateFetchError("Provider returned no rates")
        
        rates = dict(payload.rates)
        rates[base] = Decimal("1")
        return rates
