"""
Balance ledger: the only code allowed to write ``Account.balance``.

Amounts are positive 2-digit Decimals; the sign comes from the movement
kind (INCOME adds, EXPENSE subtracts). ``apply`` and ``reverse`` join the
caller's atomic block and refuse to run outside one.
"""
import logging
from decimal import Decimal
from typing import Optional, Tuple

from django.db import transaction as db_transaction
from django.db.transaction import TransactionManagementError

from backend.ledger.models import KIND_INCOME, KIND_EXPENSE
from backend.ledger.repos import (
    CENTS,
    DjangoAccountsRepo,
    NotFoundError,
    ValidationError,
    normalize_amount,
)

logger = logging.getLogger(__name__)


def signed_amount(amount, kind: str) -> Decimal:
    """+amount for INCOME, -amount for EXPENSE."""
    magnitude = abs(normalize_amount(amount))
    if kind == KIND_INCOME:
        return magnitude
    if kind == KIND_EXPENSE:
        return -magnitude
    raise ValidationError(f"Invalid movement kind: {kind}")


class BalanceLedger:
    def __init__(self, accounts_repo: Optional[DjangoAccountsRepo] = None):
        self.accounts_repo = accounts_repo or DjangoAccountsRepo()

    def _ensure_atomic(self, operation: str):
        if not db_transaction.get_connection().in_atomic_block:
            raise TransactionManagementError(
                f"BalanceLedger.{operation} must run inside the caller's transaction.atomic() block"
            )

    def _write(self, account_id: int, delta: Decimal) -> Decimal:
        account = self.accounts_repo.get_for_update(account_id)
        if account is None:
            raise NotFoundError("Account", account_id)
        old_balance = account.balance
        account.balance = (old_balance + delta).quantize(CENTS)
        self.accounts_repo.save_balance(account)
        logger.debug("Account %s balance %s -> %s (%+.2f)", account_id, old_balance, account.balance, delta)
        return account.balance

    def apply(self, account_id: int, amount, kind: str) -> Decimal:
        """Record one movement on ``account_id`` and return the new balance."""
        self._ensure_atomic("apply")
        return self._write(account_id, signed_amount(amount, kind))

    def reverse(self, account_id: int, amount, kind: str) -> Decimal:
        """Undo a movement previously recorded with ``apply(account_id, amount, kind)``."""
        self._ensure_atomic("reverse")
        return self._write(account_id, -signed_amount(amount, kind))

    def move(self, from_account_id: int, to_account_id: int, amount) -> Tuple[Decimal, Decimal]:
        """Debit ``from_account_id`` and credit ``to_account_id`` by the same amount."""
        amount = normalize_amount(amount)
        if amount <= 0:
            raise ValidationError("Amount must be positive")
        if from_account_id == to_account_id:
            raise ValidationError("Source and destination accounts must differ")
        # savepoint when nested, own transaction otherwise: both legs or neither
        with db_transaction.atomic():
            from_balance = self.apply(from_account_id, amount, KIND_EXPENSE)
            to_balance = self.apply(to_account_id, amount, KIND_INCOME)
        return from_balance, to_balance
