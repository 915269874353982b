"""
Unit tests for wallet crediting of received payments.
"""

from decimal import Decimal

import pytest

from momo_pipeline.core.models import DeliveryState, Direction
from momo_pipeline.sync import InMemoryTokenWallet, TokenWallet, WalletCreditor, WalletCreditResult


class FlakyWallet(TokenWallet):
    """Wallet whose first call raises"""

    def __init__(self):
        self.inner = InMemoryTokenWallet()
        self.calls = 0

    def add_token(self, amount, currency, source_reference, source_type="SMS_RECEIVED"):
        self.calls += 1
        if self.calls == 1:
            raise ConnectionError("ledger unavailable")
        return self.inner.add_token(amount, currency, source_reference, source_type)


def _synced(store, record):
    record_id = store.enqueue(record)
    return store.update_state(record_id, DeliveryState.SYNCED, retry_count=1, remote_id=f"r-{record_id}")


@pytest.mark.unit
class TestInMemoryTokenWallet:
    """Tests for InMemoryTokenWallet"""

    def test_credit_updates_balance(self):
        """Test that a credit adds to the currency balance"""
        wallet = InMemoryTokenWallet()
        result = wallet.add_token(Decimal("100"), "RWF", "rec-1")

        assert result == WalletCreditResult(success=True, entry_id="rec-1")
        assert wallet.balances == {"RWF": Decimal("100")}

    def test_repeated_reference_is_duplicate(self):
        """Test that the same source reference is never credited twice"""
        wallet = InMemoryTokenWallet()
        wallet.add_token(Decimal("100"), "RWF", "rec-1")
        result = wallet.add_token(Decimal("100"), "RWF", "rec-1")

        assert result.success and result.duplicate
        assert wallet.balances["RWF"] == Decimal("100")
        assert wallet.credit_count == 1

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
    def test_non_positive_amount(self, amount):
        """Test that zero and negative credits are refused"""
        result = InMemoryTokenWallet().add_token(amount, "RWF", "rec-1")
        assert not result.success
        assert result.error


@pytest.mark.unit
class TestWalletCreditor:
    """Tests for WalletCreditor"""

    def test_credit_sets_flag(self, memory_store, make_record):
        """Test that a synced received payment is credited and flagged"""
        record = _synced(memory_store, make_record(amount="2500"))
        wallet = InMemoryTokenWallet()

        assert WalletCreditor(memory_store, wallet).credit(record) is True
        assert memory_store.get(record.id).wallet_credited is True
        assert wallet.balances["RWF"] == Decimal("2500")

    def test_at_most_once(self, memory_store, make_record):
        """Test that repeated credit calls for one record credit once"""
        record = _synced(memory_store, make_record(amount="2500"))
        wallet = InMemoryTokenWallet()
        creditor = WalletCreditor(memory_store, wallet)

        results = [creditor.credit(record) for _ in range(3)]

        assert results == [True, False, False]
        assert wallet.credit_count == 1
        assert wallet.balances["RWF"] == Decimal("2500")

    def test_crash_between_credit_and_flag(self, memory_store, make_record):
        """Test recovery when the wallet was credited but the flag never set"""
        record = _synced(memory_store, make_record(amount="700"))
        wallet = InMemoryTokenWallet()
        wallet.add_token(Decimal("700"), "RWF", record.id)

        creditor = WalletCreditor(memory_store, wallet)

        assert creditor.credit_pending() == 1
        assert wallet.credit_count == 1
        assert wallet.balances["RWF"] == Decimal("700")
        assert memory_store.get(record.id).wallet_credited is True

    def test_sent_payment_not_credited(self, memory_store, make_record):
        """Test that outgoing payments never credit the wallet"""
        record = _synced(memory_store, make_record(direction=Direction.SENT))
        wallet = InMemoryTokenWallet()

        assert WalletCreditor(memory_store, wallet).credit(record) is False
        assert wallet.credit_count == 0

    def test_wallet_failure_leaves_flag_unset(self, memory_store, make_record):
        """Test that a wallet error is absorbed and retried by the sweep"""
        record = _synced(memory_store, make_record(amount="900"))
        wallet = FlakyWallet()
        creditor = WalletCreditor(memory_store, wallet)

        assert creditor.credit(record) is False
        assert memory_store.get(record.id).wallet_credited is False

        assert creditor.credit_pending() == 1
        assert wallet.inner.credit_count == 1
        assert memory_store.get(record.id).wallet_credited is True

    def test_credit_pending_sweep(self, memory_store, make_record):
        """Test that the sweep covers every uncredited synced payment"""
        for amount in ("100", "200", "300"):
            _synced(memory_store, make_record(amount=amount))
        memory_store.enqueue(make_record(amount="400"))
        wallet = InMemoryTokenWallet()
        creditor = WalletCreditor(memory_store, wallet)

        assert creditor.credit_pending() == 3
        assert wallet.balances["RWF"] == Decimal("600")
        assert creditor.credit_pending() == 0
