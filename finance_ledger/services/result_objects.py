"""Result objects for service layer operations."""
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Any


class ErrorCode(str, Enum):
    """Standardized error codes for service operations."""
    NONE = "none"
    NOT_FOUND = "not_found"
    NOT_ACCESSIBLE = "not_accessible"
    VALIDATION_ERROR = "validation_error"
    INVALID_TRANSFER = "invalid_transfer"
    RATE_UNAVAILABLE = "rate_unavailable"
    INTEGRITY_VIOLATION = "integrity_violation"
    FETCH_FAILURE = "fetch_failure"
    INTERNAL_ERROR = "internal_error"


class RateSource(str, Enum):
    """Where a resolved rate came from."""
    FRESH = "fresh"
    STALE = "stale"
    API = "api"
    NOT_FOUND = "not_found"


@dataclass
class ServiceResult:
    """Base result object for service operations."""
    success: bool
    message: str
    errors: list[str] = field(default_factory=list)
    error_code: ErrorCode = ErrorCode.NONE


# ==================== Exchange Rates ====================

@dataclass
class RateResult:
    """Outcome of a single rate resolution."""
    rate: Optional[Decimal]
    source: RateSource
    fetched_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    
    @property
    def found(self) -> bool:
        return self.source != RateSource.NOT_FOUND and self.rate is not None


@dataclass
class PairRefreshOutcome:
    """Per-pair outcome of a batch refresh."""
    from_currency: str
    to_currency: str
    success: bool
    rate: Optional[Decimal] = None
    error: Optional[str] = None


@dataclass
class RefreshRatesResult(ServiceResult):
    """Result for refresh_all: per-pair outcomes plus the stale sweep count."""
    currencies: list[str] = field(default_factory=list)
    outcomes: list[PairRefreshOutcome] = field(default_factory=list)
    marked_stale: int = 0
    
    @property
    def refreshed_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success)
    
    @property
    def failed_count(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.success)


@dataclass
class ManualRateResult(ServiceResult):
    """Result for set_manual_rate."""
    exchange_rate: Optional[Any] = None  # ExchangeRate model


# ==================== Transfers ====================

@dataclass
class TransferPair:
    """Both legs of a transfer, source (withdrawal) first."""
    source_transaction: Any  # Transaction model
    destination_transaction: Any  # Transaction model
    source_payment_method: Optional[Any] = None  # PaymentMethod model
    destination_payment_method: Optional[Any] = None  # PaymentMethod model
    source_amount: Decimal = Decimal("0")
    destination_amount: Decimal = Decimal("0")
    exchange_rate: Decimal = Decimal("1")
    transfer_date: Optional[date] = None
    description: Optional[str] = None


@dataclass
class TransferResult(ServiceResult):
    """Result for create_transfer_async."""
    source_transaction_id: Optional[int] = None
    destination_transaction_id: Optional[int] = None
    source_amount: Optional[Decimal] = None  # Native source currency, negative
    destination_amount: Optional[Decimal] = None  # Native destination currency, positive
    exchange_rate: Optional[Decimal] = None
    rate_source: Optional[RateSource] = None


@dataclass
class DeleteTransferResult(ServiceResult):
    """Result for delete_transfer_async. A missing transfer is a no-op, not a failure."""
    deleted_transaction_ids: list[int] = field(default_factory=list)


@dataclass
class GetTransferResult(ServiceResult):
    """Result for get_transfer_async."""
    transfer: Optional[TransferPair] = None


@dataclass
class ListTransfersResult(ServiceResult):
    """Result for list_transfers_async."""
    transfers: list[TransferPair] = field(default_factory=list)


@dataclass
class IntegrityViolation:
    """A transfer leg whose partner is missing or does not mirror it."""
    transaction_id: int
    linked_transaction_id: Optional[int]
    reason: str


@dataclass
class IntegrityCheckResult(ServiceResult):
    """Result for check_integrity_async; success is False when violations exist."""
    checked_count: int = 0
    violations: list[IntegrityViolation] = field(default_factory=list)


# ==================== Aggregation ====================

@dataclass
class BalanceResult(ServiceResult):
    """Result for get_balance_async (base currency)."""
    balance: Decimal = Decimal("0")
    base_currency: Optional[str] = None
    has_stale_rates: bool = False


@dataclass
class BudgetSpentResult(ServiceResult):
    """Result for get_budget_spent_async (base currency)."""
    spent: Decimal = Decimal("0")
    period_start: Optional[date] = None
    period_end: Optional[date] = None  # Exclusive
    base_currency: Optional[str] = None
    has_stale_rates: bool = False


@dataclass
class PaymentMethodBreakdownItem:
    """Budget spending attributed to one payment method."""
    payment_method_id: int
    payment_method_name: Optional[str]
    payment_method_currency: Optional[str]
    native_amount: Decimal
    converted_amount: Decimal
    percent_of_limit: Decimal
    transaction_count: int


@dataclass
class BudgetBreakdownResult(ServiceResult):
    """Result for get_breakdown_by_payment_method_async."""
    budget_id: Optional[int] = None
    budget_amount: Decimal = Decimal("0")
    total_spent: Decimal = Decimal("0")
    breakdown: list[PaymentMethodBreakdownItem] = field(default_factory=list)


@dataclass
class PaymentMethodBalanceResult(ServiceResult):
    """Result for get_payment_method_balance_async (native currency)."""
    payment_method_id: Optional[int] = None
    balance: Decimal = Decimal("0")
    currency: Optional[str] = None
