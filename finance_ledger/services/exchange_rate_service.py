"""
Exchange rate resolution with caching, stale fallback and triangulation.

Lookup flow for get_rate_async(from, to):
1. Identity pairs resolve to 1 without touching storage
2. A cached row that has not expired is returned as "fresh"
3. Otherwise the provider is asked; on success the pair (and, best-effort,
   its inverse) is upserted with a new TTL and returned as "api"
4. If the provider fails, an existing row (even expired) is returned as
   "stale" and its error_count is incremented; with no row the result is
   "not_found"

The provider only quotes against one base currency B. Pairs that do not
involve B are triangulated as rate(from, B) * rate(B, to), each leg going
through the same procedure, so legs can be fresh, stale or missing
independently.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from finance_ledger.core.config import settings
from finance_ledger.core.constants import MoneyConstants, RateSourceConstants
from finance_ledger.core.exceptions import RateFetchError
from finance_ledger.core.telemetry import get_instruments, get_tracer
from finance_ledger.db.models.exchange_rate import ExchangeRate
from finance_ledger.repositories.exchange_rate_repository import ExchangeRateRepository
from finance_ledger.repositories.payment_method_repository import PaymentMethodRepository
from finance_ledger.services.exchange_rate_provider import ExchangeRateProvider
from finance_ledger.services.result_objects import (
    ErrorCode,
    ManualRateResult,
    PairRefreshOutcome,
    RateResult,
    RateSource,
    RefreshRatesResult,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes read back from storage as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def quantize_rate(rate: Decimal) -> Decimal:
    """Round a rate to the stored NUMERIC(18, 8) precision."""
    return rate.quantize(MoneyConstants.RATE_PRECISION, rounding=ROUND_HALF_UP)


def rate_from_quotes(quotes: Dict[str, Decimal], from_currency: str, to_currency: str) -> Optional[Decimal]:
    """
    Derive rate(from, to) from quotes against a single base.
    
    quotes maps currency -> units of that currency per 1 base, so
    rate(from, to) = quotes[to] / quotes[from].
    """
    from_quote = quotes.get(from_currency)
    to_quote = quotes.get(to_currency)
    
    if not from_quote or not to_quote:
        return None
    
    return quantize_rate(to_quote / from_quote)


def _worst_source(*sources: RateSource) -> RateSource:
    """Combine leg sources: any stale leg makes the result stale, any fetched leg makes it api."""
    if RateSource.STALE in sources:
        return RateSource.STALE
    if RateSource.API in sources:
        return RateSource.API
    return RateSource.FRESH


class ExchangeRateService:
    """
    Service resolving exchange rates against the rate store and provider.
    
    The clock is injectable so TTL and staleness can be tested deterministically.
    Store writes made here are committed immediately; callers that need a rate
    for a multi-row write must resolve it before opening that write.
    """
    
    def __init__(
        self,
        db: AsyncSession,
        provider: Optional[ExchangeRateProvider] = None,
        clock: Clock = utc_now,
        cache_ttl_hours: int = settings.exchange_rate_cache_ttl_hours
    ):
        """
        Initialize the exchange rate service.
        
        Args:
            db: Database session backing the rate store
            provider: External provider client; without one every miss is a fetch failure
            clock: Callable returning the current timezone-aware time
            cache_ttl_hours: Lifetime of fetched rates before they expire
        """
        self.db = db
        self.provider = provider
        self.clock = clock
        self.cache_ttl = timedelta(hours=cache_ttl_hours)
        self.rate_repository = ExchangeRateRepository(db)
        self.payment_method_repository = PaymentMethodRepository(db)
    
    @property
    def provider_base(self) -> str:
        """The single currency the provider quotes against."""
        if self.provider is not None:
            return self.provider.base_currency
        return settings.exchange_rate_provider_base.upper()
    
    async def get_rate_async(
        self,
        from_currency: str,
        to_currency: str,
        on_date: Optional[date] = None
    ) -> RateResult:
        """
        Resolve the rate converting 1 from_currency into to_currency.
        
        Args:
            from_currency: Source currency code
            to_currency: Target currency code
            on_date: Transaction date; only the latest rate is kept, so this is informational
            
        Returns:
            RateResult with source fresh, stale, api or not_found
        """
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()
        
        if from_currency == to_currency:
            return RateResult(rate=Decimal("1"), source=RateSource.FRESH)
        
        try:
            result = await self._resolve(from_currency, to_currency)
        except SQLAlchemyError as ex:
            logger.error(
                f"Rate store error resolving {from_currency}->{to_currency} (date {on_date}): {ex}",
                exc_info=True
            )
            await self.db.rollback()
            result = RateResult(rate=None, source=RateSource.NOT_FOUND)
        
        get_instruments().record_resolution(result.source.value)
        return result
    
    async def _resolve(self, from_currency: str, to_currency: str) -> RateResult:
        cached = await self.rate_repository.lookup(from_currency, to_currency)
        now = self.clock()
        
        if cached is not None and self._is_fresh(cached, now):
            return self._result_from_row(cached, RateSource.FRESH)
        
        fetched = await self._fetch_pair(from_currency, to_currency)
        
        if fetched is not None and fetched.source != RateSource.STALE:
            return fetched
        
        if cached is not None:
            await self.rate_repository.increment_error_count(from_currency, to_currency)
            await self.db.commit()
            logger.warning(
                f"Using stale exchange rate {from_currency}->{to_currency} = {cached.rate} "
                f"(fetched at {cached.fetched_at})"
            )
            return self._result_from_row(cached, RateSource.STALE)
        
        if fetched is not None:
            logger.warning(
                f"Using stale triangulated rate {from_currency}->{to_currency} = {fetched.rate}"
            )
            return fetched
        
        logger.warning(f"No exchange rate available for {from_currency}->{to_currency}")
        return RateResult(rate=None, source=RateSource.NOT_FOUND)
    
    async def _fetch_pair(self, from_currency: str, to_currency: str) -> Optional[RateResult]:
        """Fetch a pair from the provider, triangulating through its base. None means failure."""
        base = self.provider_base
        
        if base not in (from_currency, to_currency):
            return await self._triangulate(from_currency, to_currency, base)
        
        if self.provider is None:
            logger.warning("No exchange rate provider configured")
            return None
        
        try:
            quotes = await self.provider.fetch_all(base)
        except RateFetchError as ex:
            logger.warning(f"Fetch failed for {from_currency}->{to_currency}: {ex}")
            get_instruments().record_provider_failure(base)
            return None
        
        rate = rate_from_quotes(quotes, from_currency, to_currency)
        if rate is None:
            logger.warning(f"Provider has no quote for {from_currency}->{to_currency}")
            return None
        
        return await self._store_pair(
            from_currency, to_currency, rate, rate_from_quotes(quotes, to_currency, from_currency)
        )
    
    async def _triangulate(self, from_currency: str, to_currency: str, base: str) -> Optional[RateResult]:
        first_leg = await self._resolve(from_currency, base)
        if not first_leg.found:
            return None
        
        second_leg = await self._resolve(base, to_currency)
        if not second_leg.found:
            return None
        
        rate = quantize_rate(first_leg.rate * second_leg.rate)
        source = _worst_source(first_leg.source, second_leg.source)
        
        logger.info(
            f"Triangulated {from_currency}->{to_currency} via {base}: "
            f"{first_leg.rate} * {second_leg.rate} = {rate} ({source.value})"
        )
        
        if source == RateSource.STALE:
            return RateResult(rate=rate, source=RateSource.STALE)
        
        stored = await self._store_pair(from_currency, to_currency, rate)
        return RateResult(
            rate=stored.rate,
            source=source,
            fetched_at=stored.fetched_at,
            expires_at=stored.expires_at
        )
    
    async def _store_pair(
        self,
        from_currency: str,
        to_currency: str,
        rate: Decimal,
        inverse_rate: Optional[Decimal] = None
    ) -> RateResult:
        """Upsert a fetched pair, then its inverse (1/rate unless given) as a best-effort secondary write."""
        if inverse_rate is None:
            inverse_rate = quantize_rate(Decimal("1") / rate)
        fetched_at = self.clock()
        expires_at = fetched_at + self.cache_ttl
        
        await self.rate_repository.upsert(
            from_currency,
            to_currency,
            rate,
            RateSourceConstants.API,
            fetched_at,
            expires_at,
            self._provider_name()
        )
        await self.db.commit()
        
        try:
            await self.rate_repository.upsert(
                to_currency,
                from_currency,
                inverse_rate,
                RateSourceConstants.API,
                fetched_at,
                expires_at,
                self._provider_name()
            )
            await self.db.commit()
        except SQLAlchemyError as ex:
            logger.warning(f"Failed to store inverse rate {to_currency}->{from_currency}: {ex}")
            await self.db.rollback()
        
        logger.info(f"Cached {from_currency}->{to_currency} = {rate} until {expires_at.isoformat()}")
        return RateResult(rate=rate, source=RateSource.API, fetched_at=fetched_at, expires_at=expires_at)
    
    async def refresh_all_async(self, currencies: Optional[List[str]] = None) -> RefreshRatesResult:
        """
        Re-fetch every ordered pair among currencies, ignoring cache freshness.
        
        One provider call serves the whole batch. A failure on one pair is
        recorded in its outcome (and its error_count) without aborting the
        rest. The batch ends with a stale sweep.
        
        Args:
            currencies: Currency codes; defaults to currencies of active payment methods
            
        Returns:
            RefreshRatesResult with one outcome per ordered pair
        """
        with get_tracer().start_as_current_span("exchange_rate_service.refresh_all") as span:
            targets = await self._refresh_targets(currencies)
            pairs = [(f, t) for f in targets for t in targets if f != t]
            span.set_attribute("rates.pair_count", len(pairs))
            
            logger.info(f"Refreshing rates for currencies: {', '.join(targets)}")
            
            quotes: Optional[Dict[str, Decimal]] = None
            fetch_error: Optional[str] = None
            
            if self.provider is None:
                fetch_error = "No exchange rate provider configured"
            else:
                try:
                    quotes = await self.provider.fetch_all(self.provider_base)
                except RateFetchError as ex:
                    fetch_error = str(ex)
                    logger.warning(f"Rate refresh fetch failed: {ex}")
                    get_instruments().record_provider_failure(self.provider_base)
            
            outcomes: List[PairRefreshOutcome] = []
            for from_currency, to_currency in pairs:
                outcomes.append(
                    await self._refresh_pair(from_currency, to_currency, quotes, fetch_error)
                )
            
            marked_stale = await self.mark_stale_async()
        
        result = RefreshRatesResult(
            success=True,
            message="",
            currencies=targets,
            outcomes=outcomes,
            marked_stale=marked_stale
        )
        result.message = (
            f"Refreshed {result.refreshed_count} of {len(outcomes)} rate pairs; "
            f"{marked_stale} rates marked stale"
        )
        
        if result.failed_count:
            result.success = False
            result.error_code = ErrorCode.FETCH_FAILURE
            result.errors = [
                f"{o.from_currency}->{o.to_currency}: {o.error}" for o in outcomes if not o.success
            ]
            logger.warning(result.message)
        else:
            logger.info(result.message)
        
        return result
    
    async def _refresh_pair(
        self,
        from_currency: str,
        to_currency: str,
        quotes: Optional[Dict[str, Decimal]],
        fetch_error: Optional[str]
    ) -> PairRefreshOutcome:
        rate = rate_from_quotes(quotes, from_currency, to_currency) if quotes is not None else None
        
        if rate is None:
            error = fetch_error or f"No quote for {from_currency}->{to_currency}"
            await self._record_failure(from_currency, to_currency)
            return PairRefreshOutcome(from_currency, to_currency, success=False, error=error)
        
        fetched_at = self.clock()
        try:
            await self.rate_repository.upsert(
                from_currency,
                to_currency,
                rate,
                RateSourceConstants.API,
                fetched_at,
                fetched_at + self.cache_ttl,
                self._provider_name()
            )
            await self.db.commit()
        except SQLAlchemyError as ex:
            logger.error(f"Failed to store {from_currency}->{to_currency}: {ex}", exc_info=True)
            await self.db.rollback()
            return PairRefreshOutcome(from_currency, to_currency, success=False, error=str(ex))
        
        return PairRefreshOutcome(from_currency, to_currency, success=True, rate=rate)
    
    async def _record_failure(self, from_currency: str, to_currency: str) -> None:
        try:
            await self.rate_repository.increment_error_count(from_currency, to_currency)
            await self.db.commit()
        except SQLAlchemyError as ex:
            logger.error(f"Failed to record fetch failure for {from_currency}->{to_currency}: {ex}")
            await self.db.rollback()
    
    async def _refresh_targets(self, currencies: Optional[List[str]]) -> List[str]:
        targets: List[str] = []
        
        requested = currencies or await self.payment_method_repository.get_active_currencies()
        if not requested:
            requested = settings.default_refresh_currencies
        
        for currency in requested:
            code = currency.upper()
            if code not in targets:
                targets.append(code)
        
        # Always include the provider base
        if self.provider_base not in targets:
            targets.append(self.provider_base)
        
        return targets
    
    async def mark_stale_async(self) -> int:
        """Flag every expired row as stale. Idempotent; returns the number newly flagged."""
        count = await self.rate_repository.mark_expired_as_stale(self.clock())
        await self.db.commit()
        
        if count:
            logger.info(f"Marked {count} exchange rates as stale")
        return count
    
    async def is_cache_valid_async(self, from_currency: str, to_currency: str) -> bool:
        """Check whether a fresh cached row exists for a pair."""
        row = await self.rate_repository.lookup(from_currency.upper(), to_currency.upper())
        return row is not None and self._is_fresh(row, self.clock())
    
    async def get_all_rates_async(self, base_currency: str) -> Dict[str, Decimal]:
        """Get all fresh cached rates quoted from base_currency."""
        rows = await self.rate_repository.lookup_fresh_for_base(base_currency.upper(), self.clock())
        return {row.to_currency: Decimal(row.rate) for row in rows}
    
    async def set_manual_rate_async(
        self,
        from_currency: str,
        to_currency: str,
        rate: Decimal
    ) -> ManualRateResult:
        """
        Pin a manual rate for a pair. Manual rates never expire and are never marked stale.
        """
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()
        
        if from_currency == to_currency:
            return ManualRateResult(
                success=False,
                message="Manual rates require two different currencies",
                errors=["from_currency and to_currency must differ"],
                error_code=ErrorCode.VALIDATION_ERROR
            )
        
        if rate is None or rate <= 0:
            return ManualRateResult(
                success=False,
                message="Manual rate must be positive",
                errors=[f"Invalid rate: {rate}"],
                error_code=ErrorCode.VALIDATION_ERROR
            )
        
        try:
            row = await self.rate_repository.upsert(
                from_currency,
                to_currency,
                quantize_rate(Decimal(rate)),
                RateSourceConstants.MANUAL,
                self.clock(),
                None
            )
            await self.db.commit()
        except SQLAlchemyError as ex:
            await self.db.rollback()
            logger.error(f"Error setting manual rate {from_currency}->{to_currency}: {ex}", exc_info=True)
            return ManualRateResult(
                success=False,
                message="An error occurred while setting the manual rate",
                errors=[str(ex)],
                error_code=ErrorCode.INTERNAL_ERROR
            )
        
        logger.info(f"Manual rate set: {from_currency}->{to_currency} = {rate}")
        return ManualRateResult(
            success=True,
            message=f"Manual rate set for {from_currency}->{to_currency}",
            exchange_rate=row
        )
    
    def _is_fresh(self, row: ExchangeRate, now: datetime) -> bool:
        expires_at = as_utc(row.expires_at)
        if expires_at is None:
            return True
        return now < expires_at
    
    def _result_from_row(self, row: ExchangeRate, source: RateSource) -> RateResult:
        return RateResult(
            rate=Decimal(row.rate),
            source=source,
            fetched_at=as_utc(row.fetched_at),
            expires_at=as_utc(row.expires_at)
        )
    
    def _provider_name(self) -> Optional[str]:
        return self.provider.provider_name if self.provider is not None else None
