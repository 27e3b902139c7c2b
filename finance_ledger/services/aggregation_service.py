"""
Aggregation service for balances and budget spending.

All base-currency totals are sums of the amount stored on each transaction
at creation time. Live exchange rates are never used to recompute them; the
rate store is only consulted to report whether the owner's currencies have
stale rates.
"""
import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from finance_ledger.db.models.budget import next_period, normalize_period
from finance_ledger.db.models.transaction import Transaction, TransactionType
from finance_ledger.repositories.account_repository import AccountRepository
from finance_ledger.repositories.budget_repository import BudgetRepository
from finance_ledger.repositories.exchange_rate_repository import ExchangeRateRepository
from finance_ledger.repositories.payment_method_repository import PaymentMethodRepository
from finance_ledger.repositories.transaction_repository import TransactionRepository
from finance_ledger.services.currency_conversion_service import to_cents
from finance_ledger.services.exchange_rate_service import Clock, utc_now
from finance_ledger.services.result_objects import (
    BalanceResult,
    BudgetBreakdownResult,
    BudgetSpentResult,
    ErrorCode,
    PaymentMethodBalanceResult,
    PaymentMethodBreakdownItem,
)

logger = logging.getLogger(__name__)


def balance_sign(transaction_type: TransactionType) -> int:
    """
    Direction a transaction type moves a balance.

    Income and expense amounts are stored positive; transfer amounts carry
    their own sign. Every TransactionType must be handled here.
    """
    if transaction_type == TransactionType.INCOME:
        return 1
    if transaction_type == TransactionType.EXPENSE:
        return -1
    if transaction_type == TransactionType.TRANSFER:
        return 1
    raise ValueError(f"Unhandled transaction type: {transaction_type}")


def signed_total(sums_by_type: Dict[TransactionType, Decimal]) -> Decimal:
    """Combine per-type sums into a balance."""
    total = Decimal("0")
    for transaction_type, amount in sums_by_type.items():
        total += balance_sign(TransactionType(transaction_type)) * Decimal(amount)
    return to_cents(total)


class AggregationService:
    """Service computing balances, budget spending and payment method breakdowns."""

    def __init__(self, db: AsyncSession, clock: Clock = utc_now):
        self.db = db
        self.clock = clock
        self.account_repository = AccountRepository(db)
        self.budget_repository = BudgetRepository(db)
        self.payment_method_repository = PaymentMethodRepository(db)
        self.rate_repository = ExchangeRateRepository(db)
        self.transaction_repository = TransactionRepository(db)

    async def get_balance_async(self, account_id: int) -> BalanceResult:
        """
        Get an owner's total balance in their base currency.

        Args:
            account_id: Account ID from authenticated user

        Returns:
            BalanceResult with the balance and a staleness indicator
        """
        try:
            base_currency = await self.account_repository.get_base_currency(account_id)
            if base_currency is None:
                return BalanceResult(
                    success=False,
                    message=f"Account {account_id} not found",
                    errors=["Account not found"],
                    error_code=ErrorCode.NOT_FOUND
                )

            sums = await self.transaction_repository.sum_amount_by_type(account_id)
            balance = signed_total(sums)
            has_stale_rates = await self._has_stale_rates(account_id, base_currency)
        except Exception as e:
            logger.error(f"Error computing balance for account {account_id}: {e}", exc_info=True)
            return BalanceResult(
                success=False,
                message="An error occurred while computing the balance",
                errors=[str(e)],
                error_code=ErrorCode.INTERNAL_ERROR
            )

        return BalanceResult(
            success=True,
            message="Balance computed",
            balance=balance,
            base_currency=base_currency,
            has_stale_rates=has_stale_rates
        )

    async def get_budget_spent_async(
        self,
        account_id: int,
        period: date,
        category_id: Optional[int] = None,
        tag_id: Optional[int] = None
    ) -> BudgetSpentResult:
        """
        Get spending against a category or tag for the month containing period.

        Only expense rows count, so transfers and income are never spending.

        Args:
            account_id: Account ID from authenticated user
            period: Any date within the budget month
            category_id: Category to match (exclusive with tag_id)
            tag_id: Tag to match (exclusive with category_id)

        Returns:
            BudgetSpentResult with the base-currency total and period bounds
        """
        if (category_id is None) == (tag_id is None):
            return BudgetSpentResult(
                success=False,
                message="Exactly one of category_id or tag_id is required",
                errors=["Provide either category_id or tag_id"],
                error_code=ErrorCode.VALIDATION_ERROR
            )

        period_start = normalize_period(period)
        period_end = next_period(period_start)

        try:
            base_currency = await self.account_repository.get_base_currency(account_id)
            if base_currency is None:
                return BudgetSpentResult(
                    success=False,
                    message=f"Account {account_id} not found",
                    errors=["Account not found"],
                    error_code=ErrorCode.NOT_FOUND
                )

            expenses = await self.transaction_repository.get_budget_expenses(
                account_id, period_start, period_end, category_id=category_id, tag_id=tag_id
            )
            spent = to_cents(sum((Decimal(tx.amount) for tx in expenses), Decimal("0")))
            has_stale_rates = await self._has_stale_rates(account_id, base_currency)
        except Exception as e:
            logger.error(f"Error computing budget spending for account {account_id}: {e}", exc_info=True)
            return BudgetSpentResult(
                success=False,
                message="An error occurred while computing budget spending",
                errors=[str(e)],
                error_code=ErrorCode.INTERNAL_ERROR
            )

        return BudgetSpentResult(
            success=True,
            message=f"Spent {spent} {base_currency} from {period_start} to {period_end}",
            spent=spent,
            period_start=period_start,
            period_end=period_end,
            base_currency=base_currency,
            has_stale_rates=has_stale_rates
        )

    async def get_breakdown_by_payment_method_async(
        self,
        budget_id: int,
        account_id: int
    ) -> BudgetBreakdownResult:
        """
        Split a budget's spending by payment method, largest first.

        Args:
            budget_id: Budget to break down
            account_id: Account ID from authenticated user

        Returns:
            BudgetBreakdownResult with one item per payment method used
        """
        try:
            budget = await self.budget_repository.get_for_account(budget_id, account_id)
            if budget is None:
                return BudgetBreakdownResult(
                    success=False,
                    message=f"Budget {budget_id} not found or not accessible",
                    errors=["Budget not found or does not belong to this account"],
                    error_code=ErrorCode.NOT_FOUND
                )

            period_start = normalize_period(budget.period)
            expenses = await self.transaction_repository.get_budget_expenses(
                account_id,
                period_start,
                next_period(period_start),
                category_id=budget.category_id,
                tag_id=budget.tag_id
            )
            payment_methods = await self.payment_method_repository.get_by_ids(
                list({tx.payment_method_id for tx in expenses})
            )
        except Exception as e:
            logger.error(f"Error computing breakdown for budget {budget_id}: {e}", exc_info=True)
            return BudgetBreakdownResult(
                success=False,
                message="An error occurred while computing the budget breakdown",
                errors=[str(e)],
                error_code=ErrorCode.INTERNAL_ERROR
            )

        budget_amount = Decimal(budget.amount)
        breakdown = self._group_by_payment_method(expenses, payment_methods, budget_amount)

        return BudgetBreakdownResult(
            success=True,
            message=f"Breakdown across {len(breakdown)} payment methods",
            budget_id=budget.id,
            budget_amount=budget_amount,
            total_spent=to_cents(sum((item.converted_amount for item in breakdown), Decimal("0"))),
            breakdown=breakdown
        )

    async def get_payment_method_balance_async(
        self,
        payment_method_id: int,
        account_id: int
    ) -> PaymentMethodBalanceResult:
        """Get a payment method's balance in its own currency, from native amounts only."""
        try:
            owned = await self.payment_method_repository.get_owned_by_ids(account_id, [payment_method_id])
            payment_method = owned.get(payment_method_id)

            if payment_method is None:
                return PaymentMethodBalanceResult(
                    success=False,
                    message=f"Payment method {payment_method_id} not found or not accessible",
                    errors=["Payment method not found or does not belong to this account"],
                    error_code=ErrorCode.NOT_FOUND
                )

            sums = await self.transaction_repository.sum_native_amount_by_type(payment_method_id)
        except Exception as e:
            logger.error(f"Error computing balance for payment method {payment_method_id}: {e}", exc_info=True)
            return PaymentMethodBalanceResult(
                success=False,
                message="An error occurred while computing the payment method balance",
                errors=[str(e)],
                error_code=ErrorCode.INTERNAL_ERROR
            )

        return PaymentMethodBalanceResult(
            success=True,
            message="Balance computed",
            payment_method_id=payment_method_id,
            balance=signed_total(sums),
            currency=payment_method.currency
        )

    @staticmethod
    def _group_by_payment_method(
        expenses: Iterable[Transaction],
        payment_methods: Dict,
        budget_amount: Decimal
    ) -> List[PaymentMethodBreakdownItem]:
        native_totals: Dict[int, Decimal] = defaultdict(Decimal)
        converted_totals: Dict[int, Decimal] = defaultdict(Decimal)
        counts: Dict[int, int] = defaultdict(int)

        for tx in expenses:
            native_totals[tx.payment_method_id] += Decimal(tx.native_amount)
            converted_totals[tx.payment_method_id] += Decimal(tx.amount)
            counts[tx.payment_method_id] += 1

        items = []
        for pm_id, converted in converted_totals.items():
            payment_method = payment_methods.get(pm_id)
            converted = to_cents(converted)
            items.append(PaymentMethodBreakdownItem(
                payment_method_id=pm_id,
                payment_method_name=payment_method.name if payment_method else None,
                payment_method_currency=payment_method.currency if payment_method else None,
                native_amount=to_cents(native_totals[pm_id]),
                converted_amount=converted,
                percent_of_limit=to_cents(converted / budget_amount * 100) if budget_amount > 0 else Decimal("0"),
                transaction_count=counts[pm_id]
            ))

        items.sort(key=lambda item: (-item.converted_amount, item.payment_method_id))
        return items

    async def _has_stale_rates(self, account_id: int, base_currency: str) -> bool:
        currencies = await self.payment_method_repository.get_currencies_for_account(account_id)
        return await self.rate_repository.has_stale_rates(currencies, base_currency, self.clock())
