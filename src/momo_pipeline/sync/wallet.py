"""
Wallet crediting for received payments.

The token wallet is an external ledger. Crediting is keyed by the record id
so that a credit repeated after a crash is recognised as a duplicate, and the
record's wallet-credit flag is set with a compare-and-set afterwards.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal

from momo_pipeline.core.models import TransactionRecord
from momo_pipeline.observability.logger import get_logger
from momo_pipeline.observability.metrics import increment_counter, wallet_credits_total
from momo_pipeline.store import TransactionStore

logger = get_logger(__name__)

SOURCE_TYPE_SMS_RECEIVED = "SMS_RECEIVED"


@dataclass(frozen=True)
class WalletCreditResult:
    """Result of one add_token call."""

    success: bool
    duplicate: bool = False
    entry_id: str | None = None
    error: str | None = None


class TokenWallet(ABC):

    @abstractmethod
    def add_token(
        self,
        amount: Decimal,
        currency: str,
        source_reference: str,
        source_type: str = SOURCE_TYPE_SMS_RECEIVED,
    ) -> WalletCreditResult:
        """
        Credit the wallet.

        Implementations must treat a repeated source_reference as a
        duplicate and not credit twice.

        Args:
            amount: Amount to credit
            currency: ISO 4217 code
            source_reference: Idempotency key (the TransactionRecord id)
            source_type: Kind of source that produced the credit

        Returns:
            WalletCreditResult
        """
        pass


class InMemoryTokenWallet(TokenWallet):
    """Reference ledger keeping balances per currency."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: dict[str, dict] = {}
        self.balances: dict[str, Decimal] = {}

    def add_token(
        self,
        amount: Decimal,
        currency: str,
        source_reference: str,
        source_type: str = SOURCE_TYPE_SMS_RECEIVED,
    ) -> WalletCreditResult:
        if amount <= 0:
            return WalletCreditResult(success=False, error="Amount must be positive")

        with self._lock:
            if source_reference in self._entries:
                return WalletCreditResult(success=True, duplicate=True, entry_id=source_reference)

            self._entries[source_reference] = {
                "amount": amount,
                "currency": currency,
                "source_type": source_type,
            }
            self.balances[currency] = self.balances.get(currency, Decimal("0")) + amount

        return WalletCreditResult(success=True, entry_id=source_reference)

    @property
    def credit_count(self) -> int:
        with self._lock:
            return len(self._entries)


class WalletCreditor:
    """Applies wallet credits for synced received payments."""

    def __init__(self, store: TransactionStore, wallet: TokenWallet):
        self.store = store
        self.wallet = wallet

    def credit(self, record: TransactionRecord) -> bool:
        """
        Credit the wallet for a record, at most once.

        Args:
            record: A received payment

        Returns:
            True if this call set the record's wallet-credit flag

        Raises:
            PersistenceError: If the store cannot be read or written
        """
        if not record.is_received_payment:
            return False

        current = self.store.get(record.id) or record
        if current.wallet_credited:
            return False

        try:
            result = self.wallet.add_token(
                current.parsed.amount,
                current.parsed.currency,
                source_reference=current.id,
                source_type=SOURCE_TYPE_SMS_RECEIVED,
            )
        except Exception as e:
            result = WalletCreditResult(success=False, error=str(e))

        if not result.success:
            increment_counter(wallet_credits_total, result="failed")
            logger.warning(
                "Wallet credit failed",
                extra={"record_id": current.id, "error_message": result.error},
            )
            return False

        marked = self.store.mark_wallet_credited(current.id)
        outcome = "duplicate" if result.duplicate or not marked else "credited"
        increment_counter(wallet_credits_total, result=outcome)
        logger.info(
            "Wallet credit applied",
            extra={
                "record_id": current.id,
                "amount": str(current.parsed.amount),
                "currency": current.parsed.currency,
                "status": outcome,
            },
        )
        return marked

    def credit_pending(self) -> int:
        """
        Recovery sweep over synced received payments never credited.

        Returns:
            Number of records whose flag was set by this sweep
        """
        credited = 0
        for record in self.store.list_uncredited_received():
            if self.credit(record):
                credited += 1
        return credited
