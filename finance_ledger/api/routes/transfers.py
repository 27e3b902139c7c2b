import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from finance_ledger.api.dependencies import (
    get_current_account_id,
    get_transfer_service,
    status_for_error,
)
from finance_ledger.services.result_objects import ErrorCode, TransferPair
from finance_ledger.services.transfer_service import TransferService
from finance_ledger.schemas.transfer import (
    CreateTransferApiRequest,
    CreateTransferApiResponse,
    DeleteTransferApiResponse,
    IntegrityReportApiResponse,
    IntegrityViolationDto,
    PaymentMethodInfo,
    TransferDto,
    TransferListResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/transfers", tags=["transfers"])


def _payment_method_info(payment_method) -> Optional[PaymentMethodInfo]:
    if payment_method is None:
        return None
    return PaymentMethodInfo(
        id=payment_method.id,
        name=payment_method.name,
        currency=payment_method.currency
    )


def _to_dto(pair: TransferPair) -> TransferDto:
    return TransferDto(
        source_transaction_id=pair.source_transaction.id,
        destination_transaction_id=pair.destination_transaction.id,
        source_payment_method=_payment_method_info(pair.source_payment_method),
        destination_payment_method=_payment_method_info(pair.destination_payment_method),
        source_amount=pair.source_amount,
        destination_amount=pair.destination_amount,
        exchange_rate=pair.exchange_rate,
        transfer_date=pair.transfer_date,
        description=pair.description
    )


@router.post("", response_model=CreateTransferApiResponse, status_code=status.HTTP_201_CREATED)
async def create_transfer(
    request: CreateTransferApiRequest,
    account_id: int = Depends(get_current_account_id),
    service: TransferService = Depends(get_transfer_service)
):
    """
    Move money between two of the caller's payment methods.
    
    Args:
        request: CreateTransferApiRequest; amount is in the source currency
        account_id: Account ID from authenticated user (automatic)
        
    Returns:
        CreateTransferApiResponse with both leg ids and the rate used
        
    Responses:
        201: Transfer created
        400: Same payment method, non-positive amount, or payment method not usable
        503: No exchange rate available for the currencies involved
        500: Internal server error
    """
    result = await service.create_transfer_async(
        account_id,
        request.source_payment_method_id,
        request.destination_payment_method_id,
        request.amount,
        request.transfer_date,
        request.description
    )
    
    response = CreateTransferApiResponse(
        success=result.success,
        message=result.message,
        errors=result.errors if result.errors else None,
        source_transaction_id=result.source_transaction_id,
        destination_transaction_id=result.destination_transaction_id,
        source_amount=result.source_amount,
        destination_amount=result.destination_amount,
        exchange_rate=result.exchange_rate,
        rate_source=result.rate_source.value if result.rate_source else None
    )
    
    if not result.success:
        return JSONResponse(
            status_code=status_for_error(result.error_code),
            content=response.model_dump(by_alias=True, mode="json")
        )
    
    return response


@router.get("", response_model=TransferListResponse)
async def list_transfers(
    account_id: int = Depends(get_current_account_id),
    service: TransferService = Depends(get_transfer_service)
):
    """List the caller's transfers, newest first."""
    result = await service.list_transfers_async(account_id)
    transfers = [_to_dto(pair) for pair in result.transfers]
    
    return TransferListResponse(
        account_id=account_id,
        transfers=transfers,
        total_transfers=len(transfers)
    )


@router.get("/integrity", response_model=IntegrityReportApiResponse)
async def check_integrity(
    account_id: int = Depends(get_current_account_id),
    service: TransferService = Depends(get_transfer_service)
):
    """
    Report transfer legs whose partner is missing or inconsistent.
    
    Always 200; success is False when violations were found.
    """
    result = await service.check_integrity_async(account_id)
    
    return IntegrityReportApiResponse(
        success=result.success,
        message=result.message,
        checked_count=result.checked_count,
        violations=[
            IntegrityViolationDto(
                transaction_id=v.transaction_id,
                linked_transaction_id=v.linked_transaction_id,
                reason=v.reason
            )
            for v in result.violations
        ]
    )


@router.get("/{transaction_id}", response_model=TransferDto)
async def get_transfer(
    transaction_id: int,
    account_id: int = Depends(get_current_account_id),
    service: TransferService = Depends(get_transfer_service)
):
    """
    Get a transfer by the id of either leg.
    
    Responses:
        200: Transfer found
        404: Not found or not accessible
        409: Transfer legs are inconsistent
    """
    result = await service.get_transfer_async(transaction_id, account_id)
    
    if not result.success:
        raise HTTPException(
            status_code=status_for_error(result.error_code),
            detail=result.message
        )
    
    return _to_dto(result.transfer)


@router.delete("/{transaction_id}", response_model=DeleteTransferApiResponse)
async def delete_transfer(
    transaction_id: int,
    account_id: int = Depends(get_current_account_id),
    service: TransferService = Depends(get_transfer_service)
):
    """
    Delete both legs of a transfer.
    
    Deleting an id that does not exist (or was already deleted) is a no-op
    and returns 200 with an empty deletedTransactionIds.
    
    Responses:
        200: Deleted, or nothing to delete
        400: Transaction is not a transfer
        409: Transfer legs are inconsistent
        500: Internal server error
    """
    result = await service.delete_transfer_async(transaction_id, account_id)
    
    response = DeleteTransferApiResponse(
        success=result.success,
        message=result.message,
        errors=result.errors if result.errors else None,
        deleted_transaction_ids=result.deleted_transaction_ids
    )
    
    if not result.success:
        return JSONResponse(
            status_code=status_for_error(result.error_code),
            content=response.model_dump(by_alias=True, mode="json")
        )
    
    if result.error_code == ErrorCode.NOT_FOUND:
        logger.info(f"Delete of missing transfer {transaction_id} ignored")
    
    return response
