from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query

from finance_ledger.api.dependencies import (
    get_aggregation_service,
    get_current_account_id,
    status_for_error,
)
from finance_ledger.services.aggregation_service import AggregationService
from finance_ledger.schemas.aggregation import (
    BalanceApiResponse,
    BudgetBreakdownApiResponse,
    BudgetSpentApiResponse,
    PaymentMethodBalanceApiResponse,
    PaymentMethodBreakdownDto,
)

router = APIRouter(prefix="/api", tags=["balances"])


@router.get("/balances", response_model=BalanceApiResponse)
async def get_balance(
    account_id: int = Depends(get_current_account_id),
    service: AggregationService = Depends(get_aggregation_service)
):
    """
    Get the caller's total balance in their base currency.
    
    hasStaleRates warns that some of the caller's currencies only have
    expired rates; the balance itself uses amounts frozen at creation.
    """
    result = await service.get_balance_async(account_id)
    
    if not result.success:
        raise HTTPException(status_code=status_for_error(result.error_code), detail=result.message)
    
    return BalanceApiResponse(
        account_id=account_id,
        balance=result.balance,
        base_currency=result.base_currency,
        has_stale_rates=result.has_stale_rates
    )


@router.get("/balances/payment-methods/{payment_method_id}", response_model=PaymentMethodBalanceApiResponse)
async def get_payment_method_balance(
    payment_method_id: int,
    account_id: int = Depends(get_current_account_id),
    service: AggregationService = Depends(get_aggregation_service)
):
    """Get one payment method's balance in its own currency."""
    result = await service.get_payment_method_balance_async(payment_method_id, account_id)
    
    if not result.success:
        raise HTTPException(status_code=status_for_error(result.error_code), detail=result.message)
    
    return PaymentMethodBalanceApiResponse(
        payment_method_id=payment_method_id,
        balance=result.balance,
        currency=result.currency
    )


@router.get("/budgets/spent", response_model=BudgetSpentApiResponse)
async def get_budget_spent(
    period: date,
    category_id: Optional[int] = Query(None, alias="categoryId"),
    tag_id: Optional[int] = Query(None, alias="tagId"),
    account_id: int = Depends(get_current_account_id),
    service: AggregationService = Depends(get_aggregation_service)
):
    """
    Get spending for a category or tag in the month containing period.
    
    Responses:
        200: Spending computed
        400: Neither or both of categoryId and tagId given
        404: Account not found
    """
    result = await service.get_budget_spent_async(account_id, period, category_id=category_id, tag_id=tag_id)
    
    if not result.success:
        raise HTTPException(status_code=status_for_error(result.error_code), detail=result.message)
    
    return BudgetSpentApiResponse(
        category_id=category_id,
        tag_id=tag_id,
        spent=result.spent,
        period_start=result.period_start,
        period_end=result.period_end,
        base_currency=result.base_currency,
        has_stale_rates=result.has_stale_rates
    )


@router.get("/budgets/{budget_id}/breakdown", response_model=BudgetBreakdownApiResponse)
async def get_budget_breakdown(
    budget_id: int,
    account_id: int = Depends(get_current_account_id),
    service: AggregationService = Depends(get_aggregation_service)
):
    """Split a budget's spending by payment method, largest first."""
    result = await service.get_breakdown_by_payment_method_async(budget_id, account_id)
    
    if not result.success:
        raise HTTPException(status_code=status_for_error(result.error_code), detail=result.message)
    
    return BudgetBreakdownApiResponse(
        budget_id=result.budget_id,
        budget_amount=result.budget_amount,
        total_spent=result.total_spent,
        breakdown=[
            PaymentMethodBreakdownDto(
                payment_method_id=item.payment_method_id,
                payment_method_name=item.payment_method_name,
                payment_method_currency=item.payment_method_currency,
                native_amount=item.native_amount,
                converted_amount=item.converted_amount,
                percent_of_limit=item.percent_of_limit,
                transaction_count=item.transaction_count
            )
            for item in result.breakdown
        ]
    )
