"""Pydantic schemas for Exchange Rate API requests and responses."""
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from decimal import Decimal
from typing import Optional


class ExchangeRateApiResponse(BaseModel):
    from_currency: str = Field(alias="fromCurrency")
    to_currency: str = Field(alias="toCurrency")
    rate: Optional[Decimal] = None
    source: str
    fetched_at: Optional[datetime] = Field(None, alias="fetchedAt")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")
    
    model_config = ConfigDict(populate_by_name=True)


class ConversionApiResponse(BaseModel):
    from_currency: str = Field(alias="fromCurrency")
    to_currency: str = Field(alias="toCurrency")
    amount: Decimal
    converted_amount: Decimal = Field(alias="convertedAmount")
    rate: Decimal
    source: str
    
    model_config = ConfigDict(populate_by_name=True)


class AllRatesApiResponse(BaseModel):
    base_currency: str = Field(alias="baseCurrency")
    rates: dict[str, Decimal]
    count: int
    
    model_config = ConfigDict(populate_by_name=True)


class ManualRateApiRequest(BaseModel):
    from_currency: str = Field(min_length=3, max_length=3, alias="fromCurrency")
    to_currency: str = Field(min_length=3, max_length=3, alias="toCurrency")
    rate: Decimal
    
    model_config = ConfigDict(populate_by_name=True)


class ManualRateApiResponse(BaseModel):
    success: bool
    message: str
    errors: Optional[list[str]] = None
    from_currency: str = Field(alias="fromCurrency")
    to_currency: str = Field(alias="toCurrency")
    rate: Optional[Decimal] = None
    
    model_config = ConfigDict(populate_by_name=True)


class PairRefreshDto(BaseModel):
    from_currency: str = Field(alias="fromCurrency")
    to_currency: str = Field(alias="toCurrency")
    success: bool
    rate: Optional[Decimal] = None
    error: Optional[str] = None
    
    model_config = ConfigDict(populate_by_name=True)


class RefreshRatesApiResponse(BaseModel):
    success: bool
    message: str
    errors: Optional[list[str]] = None
    currencies: list[str]
    refreshed_count: int = Field(alias="refreshedCount")
    failed_count: int = Field(alias="failedCount")
    marked_stale: int = Field(alias="markedStale")
    outcomes: list[PairRefreshDto]
    
    model_config = ConfigDict(populate_by_name=True)
