"""Business logic service for transfers between an owner's payment methods."""
import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from finance_ledger.core.constants import MoneyConstants
from finance_ledger.core.telemetry import get_instruments, get_tracer
from finance_ledger.db.models.payment_method import PaymentMethod
from finance_ledger.db.models.transaction import Transaction, TransactionType
from finance_ledger.repositories.account_repository import AccountRepository
from finance_ledger.repositories.payment_method_repository import PaymentMethodRepository
from finance_ledger.repositories.transaction_repository import TransactionRepository
from finance_ledger.services.currency_conversion_service import calculate_base_amount, to_cents
from finance_ledger.services.exchange_rate_service import ExchangeRateService, quantize_rate
from finance_ledger.services.result_objects import (
    DeleteTransferResult,
    ErrorCode,
    GetTransferResult,
    IntegrityCheckResult,
    IntegrityViolation,
    ListTransfersResult,
    TransferPair,
    TransferResult,
)

logger = logging.getLogger(__name__)


def _sign(value: Decimal) -> int:
    if value > 0:
        return 1
    if value < 0:
        return -1
    return 0


class TransferService:
    """
    Service layer for transfer pairs.

    A transfer is two transaction rows of type transfer pointing at each
    other: a negative (withdrawal) leg on the source payment method and a
    positive (deposit) leg on the destination. Both legs are written and
    linked in one commit, and deleted together.
    """

    def __init__(self, db: AsyncSession, rate_service: ExchangeRateService):
        self.db = db
        self.rate_service = rate_service
        self.account_repository = AccountRepository(db)
        self.payment_method_repository = PaymentMethodRepository(db)
        self.transaction_repository = TransactionRepository(db)

    async def create_transfer_async(
        self,
        account_id: int,
        source_payment_method_id: int,
        destination_payment_method_id: int,
        amount: Decimal,
        transfer_date: date,
        description: Optional[str] = None
    ) -> TransferResult:
        """
        Move amount (in the source currency) from one payment method to another.

        Every rate the two legs need is resolved before anything is written;
        a missing rate fails the transfer instead of defaulting to 1.

        Args:
            account_id: Account ID from authenticated user
            source_payment_method_id: Payment method money leaves
            destination_payment_method_id: Payment method money arrives in
            amount: Positive amount in the source payment method's currency
            transfer_date: Date of both legs
            description: Optional note; defaults to "Transfer to/from <name>"

        Returns:
            TransferResult with both leg ids, native amounts and the rate used
        """
        with get_tracer().start_as_current_span("transfer_service.create_transfer") as span:
            span.set_attribute("transfer.account_id", account_id)

            if source_payment_method_id == destination_payment_method_id:
                return self._rejected("Source and destination payment methods must differ")

            if amount is None or not amount.is_finite() or abs(amount) >= MoneyConstants.MAX_AMOUNT:
                return self._rejected(f"Transfer amount must be a finite value below {MoneyConstants.MAX_AMOUNT}, got {amount}")

            if to_cents(amount) <= 0:
                return self._rejected(f"Transfer amount must be positive, got {amount}")

            amount = to_cents(amount)

            base_currency = await self.account_repository.get_base_currency(account_id)
            if base_currency is None:
                return TransferResult(
                    success=False,
                    message=f"Account {account_id} not found",
                    errors=["Account not found"],
                    error_code=ErrorCode.NOT_FOUND
                )

            payment_methods = await self.payment_method_repository.get_owned_by_ids(
                account_id, [source_payment_method_id, destination_payment_method_id]
            )
            source_pm = payment_methods.get(source_payment_method_id)
            destination_pm = payment_methods.get(destination_payment_method_id)

            for pm_id, pm in ((source_payment_method_id, source_pm), (destination_payment_method_id, destination_pm)):
                if pm is None:
                    return self._rejected(f"Payment method {pm_id} not found or not accessible")
                if not pm.is_active:
                    return self._rejected(f"Payment method {pm_id} is inactive")

            # Resolve every rate before the write unit opens
            transfer_rate = await self.rate_service.get_rate_async(
                source_pm.currency, destination_pm.currency, transfer_date
            )
            source_base_rate = await self.rate_service.get_rate_async(
                source_pm.currency, base_currency, transfer_date
            )
            destination_base_rate = await self.rate_service.get_rate_async(
                destination_pm.currency, base_currency, transfer_date
            )

            missing = [
                pair for pair, result in (
                    (f"{source_pm.currency}->{destination_pm.currency}", transfer_rate),
                    (f"{source_pm.currency}->{base_currency}", source_base_rate),
                    (f"{destination_pm.currency}->{base_currency}", destination_base_rate),
                )
                if not result.found
            ]
            if missing:
                logger.warning(f"Transfer rejected, no exchange rate for {', '.join(missing)}")
                return TransferResult(
                    success=False,
                    message="Exchange rate unavailable",
                    errors=[f"No exchange rate available for {pair}" for pair in missing],
                    error_code=ErrorCode.RATE_UNAVAILABLE
                )

            source_native = -amount
            destination_native = to_cents(amount * transfer_rate.rate)
            source_base = calculate_base_amount(source_native, source_base_rate.rate)
            destination_base = calculate_base_amount(destination_native, destination_base_rate.rate)

            if destination_native <= 0 or source_base == 0 or destination_base == 0:
                return self._rejected(
                    f"Transfer of {amount} {source_pm.currency} is too small to convert"
                )

            if any(abs(value) >= MoneyConstants.MAX_AMOUNT for value in (destination_native, source_base, destination_base)):
                return self._rejected(
                    f"Transfer of {amount} {source_pm.currency} is too large to convert"
                )

            source_leg = Transaction(
                account_id=account_id,
                payment_method_id=source_pm.id,
                category_id=None,
                type=TransactionType.TRANSFER,
                date=transfer_date,
                description=description or f"Transfer to {destination_pm.name}",
                native_amount=source_native,
                amount=source_base,
                exchange_rate=source_base_rate.rate,
                base_currency=base_currency
            )
            destination_leg = Transaction(
                account_id=account_id,
                payment_method_id=destination_pm.id,
                category_id=None,
                type=TransactionType.TRANSFER,
                date=transfer_date,
                description=description or f"Transfer from {source_pm.name}",
                native_amount=destination_native,
                amount=destination_base,
                exchange_rate=destination_base_rate.rate,
                base_currency=base_currency
            )

            try:
                self.db.add_all([source_leg, destination_leg])
                await self.db.flush()
                await self.transaction_repository.link_pair(source_leg, destination_leg)
                await self.db.commit()
            except Exception as e:
                await self.db.rollback()
                logger.error(f"Failed to write transfer for account {account_id}: {e}", exc_info=True)
                return TransferResult(
                    success=False,
                    message="An error occurred while creating the transfer",
                    errors=[str(e)],
                    error_code=ErrorCode.INTERNAL_ERROR
                )

            span.set_attribute("transfer.source_transaction_id", source_leg.id)
            span.set_attribute("transfer.destination_transaction_id", destination_leg.id)

        get_instruments().record_transfer(source_pm.currency == destination_pm.currency)

        logger.info(
            f"Transfer {source_leg.id}/{destination_leg.id}: {amount} {source_pm.currency} -> "
            f"{destination_native} {destination_pm.currency} at {transfer_rate.rate} ({transfer_rate.source.value})"
        )

        return TransferResult(
            success=True,
            message=f"Transferred {amount} {source_pm.currency} to {destination_pm.name}",
            source_transaction_id=source_leg.id,
            destination_transaction_id=destination_leg.id,
            source_amount=source_native,
            destination_amount=destination_native,
            exchange_rate=transfer_rate.rate,
            rate_source=transfer_rate.source
        )

    async def delete_transfer_async(self, transaction_id: int, account_id: int) -> DeleteTransferResult:
        """
        Delete a transfer through either of its legs.

        An id that no longer exists is a no-op: the result is successful with
        error_code NOT_FOUND. A leg whose partner is broken is reported as an
        integrity violation and nothing is deleted.

        Args:
            transaction_id: Id of either leg
            account_id: Account ID from authenticated user

        Returns:
            DeleteTransferResult listing the deleted ids
        """
        transaction = await self.transaction_repository.get_for_account(transaction_id, account_id)

        if transaction is None:
            return DeleteTransferResult(
                success=True,
                message=f"Transfer {transaction_id} not found, nothing to delete",
                error_code=ErrorCode.NOT_FOUND
            )

        if transaction.type != TransactionType.TRANSFER:
            return DeleteTransferResult(
                success=False,
                message=f"Transaction {transaction_id} is not a transfer",
                errors=[f"Transaction type is {transaction.type.value}"],
                error_code=ErrorCode.INVALID_TRANSFER
            )

        partner, reason = await self._load_partner(transaction)
        if reason is not None:
            logger.error(f"Refusing to delete transfer {transaction_id}: {reason}")
            return DeleteTransferResult(
                success=False,
                message=f"Transfer {transaction_id} is inconsistent",
                errors=[reason],
                error_code=ErrorCode.INTEGRITY_VIOLATION
            )

        try:
            await self.transaction_repository.delete_pair(transaction.id, partner.id)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to delete transfer {transaction_id}: {e}", exc_info=True)
            return DeleteTransferResult(
                success=False,
                message="An error occurred while deleting the transfer",
                errors=[str(e)],
                error_code=ErrorCode.INTERNAL_ERROR
            )

        logger.info(f"Deleted transfer legs {transaction.id} and {partner.id}")
        return DeleteTransferResult(
            success=True,
            message="Transfer deleted",
            deleted_transaction_ids=[transaction.id, partner.id]
        )

    async def get_transfer_async(self, transaction_id: int, account_id: int) -> GetTransferResult:
        """Get a transfer pair by either leg id."""
        transaction = await self.transaction_repository.get_for_account(transaction_id, account_id)

        if transaction is None or transaction.type != TransactionType.TRANSFER:
            return GetTransferResult(
                success=False,
                message=f"Transfer {transaction_id} not found or not accessible",
                errors=["Transfer not found or does not belong to this account"],
                error_code=ErrorCode.NOT_FOUND
            )

        partner, reason = await self._load_partner(transaction)
        if reason is not None:
            return GetTransferResult(
                success=False,
                message=f"Transfer {transaction_id} is inconsistent",
                errors=[reason],
                error_code=ErrorCode.INTEGRITY_VIOLATION
            )

        payment_methods = await self.payment_method_repository.get_by_ids(
            [transaction.payment_method_id, partner.payment_method_id]
        )
        return GetTransferResult(
            success=True,
            message="Transfer found",
            transfer=self._build_pair(transaction, partner, payment_methods)
        )

    async def list_transfers_async(self, account_id: int) -> ListTransfersResult:
        """List complete transfer pairs for an owner, newest first. Broken legs are skipped."""
        legs = await self.transaction_repository.get_transfers(account_id)
        by_id = {leg.id: leg for leg in legs}
        payment_methods = await self.payment_method_repository.get_by_ids(
            list({leg.payment_method_id for leg in legs})
        )

        transfers: List[TransferPair] = []
        for leg in legs:
            if Decimal(leg.native_amount) >= 0:
                continue
            partner = by_id.get(leg.linked_transaction_id)
            if partner is None or self._partner_problem(leg, partner) is not None:
                continue
            transfers.append(self._build_pair(leg, partner, payment_methods))

        return ListTransfersResult(
            success=True,
            message=f"Found {len(transfers)} transfers",
            transfers=transfers
        )

    async def check_integrity_async(self, account_id: Optional[int] = None) -> IntegrityCheckResult:
        """
        Scan transfer legs for partners that are missing or do not mirror them.

        Args:
            account_id: Restrict the scan to one owner; None scans everything

        Returns:
            IntegrityCheckResult; success is False when any violation is found
        """
        legs = await self.transaction_repository.get_transfers(account_id)
        by_id: Dict[int, Transaction] = {leg.id: leg for leg in legs}

        outside_ids = [
            leg.linked_transaction_id for leg in legs
            if leg.linked_transaction_id is not None and leg.linked_transaction_id not in by_id
        ]
        by_id.update(await self.transaction_repository.get_by_ids(outside_ids))

        violations: List[IntegrityViolation] = []
        for leg in legs:
            if leg.linked_transaction_id is None:
                reason = "Transfer has no linked transaction"
            else:
                partner = by_id.get(leg.linked_transaction_id)
                reason = (
                    "Linked transaction does not exist" if partner is None
                    else self._partner_problem(leg, partner)
                )

            if reason is not None:
                violations.append(IntegrityViolation(leg.id, leg.linked_transaction_id, reason))

        if violations:
            for violation in violations:
                logger.error(
                    f"Transfer integrity violation on {violation.transaction_id} "
                    f"(linked {violation.linked_transaction_id}): {violation.reason}"
                )
            return IntegrityCheckResult(
                success=False,
                message=f"Found {len(violations)} integrity violations in {len(legs)} transfer legs",
                errors=[v.reason for v in violations],
                error_code=ErrorCode.INTEGRITY_VIOLATION,
                checked_count=len(legs),
                violations=violations
            )

        return IntegrityCheckResult(
            success=True,
            message=f"All {len(legs)} transfer legs are consistent",
            checked_count=len(legs)
        )

    async def _load_partner(self, transaction: Transaction):
        """Return (partner, None) for a sound pair, or (partner_or_None, reason)."""
        if transaction.linked_transaction_id is None:
            return None, "Transfer has no linked transaction"

        partners = await self.transaction_repository.get_by_ids([transaction.linked_transaction_id])
        partner = partners.get(transaction.linked_transaction_id)

        if partner is None:
            return None, "Linked transaction does not exist"

        return partner, self._partner_problem(transaction, partner)

    @staticmethod
    def _partner_problem(leg: Transaction, partner: Transaction) -> Optional[str]:
        if partner.type != TransactionType.TRANSFER:
            return "Linked transaction is not a transfer"
        if partner.linked_transaction_id != leg.id:
            return "Linked transaction does not link back"
        if partner.account_id != leg.account_id:
            return "Linked transaction belongs to another account"
        if _sign(Decimal(leg.native_amount)) == _sign(Decimal(partner.native_amount)):
            return "Transfer legs do not have opposite signs"
        return None

    @staticmethod
    def _build_pair(
        leg: Transaction,
        partner: Transaction,
        payment_methods: Dict[int, PaymentMethod]
    ) -> TransferPair:
        source, destination = (leg, partner) if Decimal(leg.native_amount) < 0 else (partner, leg)
        source_amount = -Decimal(source.native_amount)
        destination_amount = Decimal(destination.native_amount)

        return TransferPair(
            source_transaction=source,
            destination_transaction=destination,
            source_payment_method=payment_methods.get(source.payment_method_id),
            destination_payment_method=payment_methods.get(destination.payment_method_id),
            source_amount=source_amount,
            destination_amount=destination_amount,
            exchange_rate=quantize_rate(destination_amount / source_amount) if source_amount else Decimal("0"),
            transfer_date=source.date,
            description=source.description
        )

    @staticmethod
    def _rejected(reason: str) -> TransferResult:
        logger.warning(f"Transfer rejected: {reason}")
        return TransferResult(
            success=False,
            message=reason,
            errors=[reason],
            error_code=ErrorCode.INVALID_TRANSFER
        )
