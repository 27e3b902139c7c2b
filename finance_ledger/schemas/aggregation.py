"""Pydantic schemas for balance and budget API responses."""
from pydantic import BaseModel, Field, ConfigDict
from datetime import date
from decimal import Decimal
from typing import Optional


class BalanceApiResponse(BaseModel):
    account_id: int = Field(alias="accountId")
    balance: Decimal
    base_currency: str = Field(alias="baseCurrency")
    has_stale_rates: bool = Field(alias="hasStaleRates")
    
    model_config = ConfigDict(populate_by_name=True)


class PaymentMethodBalanceApiResponse(BaseModel):
    payment_method_id: int = Field(alias="paymentMethodId")
    balance: Decimal
    currency: str
    
    model_config = ConfigDict(populate_by_name=True)


class BudgetSpentApiResponse(BaseModel):
    category_id: Optional[int] = Field(None, alias="categoryId")
    tag_id: Optional[int] = Field(None, alias="tagId")
    spent: Decimal
    period_start: date = Field(alias="periodStart")
    period_end: date = Field(alias="periodEnd")
    base_currency: str = Field(alias="baseCurrency")
    has_stale_rates: bool = Field(alias="hasStaleRates")
    
    model_config = ConfigDict(populate_by_name=True)


class PaymentMethodBreakdownDto(BaseModel):
    payment_method_id: int = Field(alias="paymentMethodId")
    payment_method_name: Optional[str] = Field(None, alias="paymentMethodName")
    payment_method_currency: Optional[str] = Field(None, alias="paymentMethodCurrency")
    native_amount: Decimal = Field(alias="nativeAmount")
    converted_amount: Decimal = Field(alias="convertedAmount")
    percent_of_limit: Decimal = Field(alias="percentOfLimit")
    transaction_count: int = Field(alias="transactionCount")
    
    model_config = ConfigDict(populate_by_name=True)


class BudgetBreakdownApiResponse(BaseModel):
    budget_id: int = Field(alias="budgetId")
    budget_amount: Decimal = Field(alias="budgetAmount")
    total_spent: Decimal = Field(alias="totalSpent")
    breakdown: list[PaymentMethodBreakdownDto]
    
    model_config = ConfigDict(populate_by_name=True)
