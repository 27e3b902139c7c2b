"""Pydantic schemas for Transfer API requests and responses."""
from pydantic import BaseModel, Field, ConfigDict
from datetime import date
from decimal import Decimal
from typing import Optional


class CreateTransferApiRequest(BaseModel):
    source_payment_method_id: int = Field(alias="sourcePaymentMethodId")
    destination_payment_method_id: int = Field(alias="destinationPaymentMethodId")
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    transfer_date: date = Field(alias="date")
    description: Optional[str] = Field(None, max_length=500)
    
    model_config = ConfigDict(populate_by_name=True)


class CreateTransferApiResponse(BaseModel):
    success: bool
    message: str
    errors: Optional[list[str]] = None
    source_transaction_id: Optional[int] = Field(None, alias="sourceTransactionId")
    destination_transaction_id: Optional[int] = Field(None, alias="destinationTransactionId")
    source_amount: Optional[Decimal] = Field(None, alias="sourceAmount")
    destination_amount: Optional[Decimal] = Field(None, alias="destinationAmount")
    exchange_rate: Optional[Decimal] = Field(None, alias="exchangeRate")
    rate_source: Optional[str] = Field(None, alias="rateSource")
    
    model_config = ConfigDict(populate_by_name=True)


class PaymentMethodInfo(BaseModel):
    id: int
    name: str
    currency: str


class TransferDto(BaseModel):
    source_transaction_id: int = Field(alias="sourceTransactionId")
    destination_transaction_id: int = Field(alias="destinationTransactionId")
    source_payment_method: Optional[PaymentMethodInfo] = Field(None, alias="sourcePaymentMethod")
    destination_payment_method: Optional[PaymentMethodInfo] = Field(None, alias="destinationPaymentMethod")
    source_amount: Decimal = Field(alias="sourceAmount")
    destination_amount: Decimal = Field(alias="destinationAmount")
    exchange_rate: Decimal = Field(alias="exchangeRate")
    transfer_date: date = Field(alias="date")
    description: Optional[str] = None
    
    model_config = ConfigDict(populate_by_name=True)


class TransferListResponse(BaseModel):
    account_id: int = Field(alias="accountId")
    transfers: list[TransferDto]
    total_transfers: int = Field(alias="totalTransfers")
    
    model_config = ConfigDict(populate_by_name=True)


class DeleteTransferApiResponse(BaseModel):
    success: bool
    message: str
    errors: Optional[list[str]] = None
    deleted_transaction_ids: list[int] = Field(default_factory=list, alias="deletedTransactionIds")
    
    model_config = ConfigDict(populate_by_name=True)


class IntegrityViolationDto(BaseModel):
    transaction_id: int = Field(alias="transactionId")
    linked_transaction_id: Optional[int] = Field(None, alias="linkedTransactionId")
    reason: str
    
    model_config = ConfigDict(populate_by_name=True)


class IntegrityReportApiResponse(BaseModel):
    success: bool
    message: str
    checked_count: int = Field(alias="checkedCount")
    violations: list[IntegrityViolationDto]
    
    model_config = ConfigDict(populate_by_name=True)
