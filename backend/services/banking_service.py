"""
Banking operations and their reconciliation with narrative transactions.

A banking operation moves money between the bank account it is attached
to and the single cash account: WITHDRAWAL debits bank / credits cash,
DEPOSIT debits cash / credits bank.

An EXPENSE transaction whose description carries a check token
(``CHQ-<number>`` by default) is "banking-linked": paying by check means
the money first leaves the bank for the cash register (the banking
operation) and then leaves the cash register as the expense itself (the
narrative leg). Both legs are kept in step here.
"""
import logging
import re
from typing import Any, Dict, Optional

from django.conf import settings
from django.db import transaction as db_transaction

from backend.ledger.models import Account, BankingOperation, Transaction, KIND_EXPENSE
from backend.ledger.repos import (
    ConflictError,
    DjangoAccountsRepo,
    DjangoBankingOperationsRepo,
    DjangoTransactionsRepo,
    FailedPreconditionError,
    NotFoundError,
    ValidationError,
    normalize_amount,
    parse_date,
)
from backend.services.ledger_service import BalanceLedger

logger = logging.getLogger(__name__)

DIRECTIONS = (BankingOperation.WITHDRAWAL, BankingOperation.DEPOSIT)
CHECK_NUMBER_MAX_LENGTH = BankingOperation._meta.get_field("check_number").max_length


def _check_number_pattern():
    return re.compile(settings.LEDGER["CHECK_NUMBER_PATTERN"])


def extract_check_number(description: Optional[str]) -> Optional[str]:
    """Return the check number embedded in ``description`` or None."""
    if not description:
        return None
    match = _check_number_pattern().search(description)
    if not match:
        return None
    return _check_length(match.group(1))


def is_banking_linked(description: Optional[str], kind: str, account_kind: str = Account.CASH) -> bool:
    """A check-paid expense recorded on the cash register."""
    return (
        kind == KIND_EXPENSE
        and account_kind == Account.CASH
        and extract_check_number(description) is not None
    )


def _check_length(check_number: str) -> str:
    if len(check_number) > CHECK_NUMBER_MAX_LENGTH:
        raise ValidationError(f"Check number longer than {CHECK_NUMBER_MAX_LENGTH} characters")
    return check_number


def _clean_check_number(raw) -> Optional[str]:
    if raw is None:
        return None
    value = str(raw).strip()
    return _check_length(value) if value else None


class BankingReconciler:
    def __init__(
        self,
        repository: Optional[DjangoBankingOperationsRepo] = None,
        accounts_repo: Optional[DjangoAccountsRepo] = None,
        transactions_repo: Optional[DjangoTransactionsRepo] = None,
        ledger: Optional[BalanceLedger] = None,
    ):
        self.repository = repository or DjangoBankingOperationsRepo()
        self.accounts_repo = accounts_repo or DjangoAccountsRepo()
        self.transactions_repo = transactions_repo or DjangoTransactionsRepo()
        self.ledger = ledger or BalanceLedger(self.accounts_repo)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _require_cash_account(self) -> Account:
        cash = self.accounts_repo.get_cash_account()
        if cash is None:
            raise FailedPreconditionError("No cash account configured")
        return cash

    def _require_bank_account(self) -> Account:
        bank = self.accounts_repo.get_bank_account()
        if bank is None:
            raise FailedPreconditionError("No bank account configured")
        return bank

    def _apply_pair(self, direction: str, bank_id: int, cash_id: int, amount) -> None:
        if direction == BankingOperation.DEPOSIT:
            self.ledger.move(cash_id, bank_id, amount)
        else:
            self.ledger.move(bank_id, cash_id, amount)

    def _reverse_pair(self, direction: str, bank_id: int, cash_id: int, amount) -> None:
        if direction == BankingOperation.DEPOSIT:
            self.ledger.move(bank_id, cash_id, amount)
        else:
            self.ledger.move(cash_id, bank_id, amount)

    def _ensure_check_number_free(self, check_number: str, exclude_pk: Optional[int] = None) -> None:
        if self.repository.check_number_exists(check_number, exclude_pk=exclude_pk):
            raise ConflictError(f"Check number {check_number} already exists")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_operation(self, operation_id: int) -> BankingOperation:
        operation = self.repository.get(operation_id)
        if operation is None:
            raise NotFoundError("Banking operation", operation_id)
        return operation

    def list_operations(self, **filters):
        return self.repository.list(**filters)

    # ------------------------------------------------------------------
    # Standalone operations
    # ------------------------------------------------------------------
    def create_operation(self, data: Dict[str, Any]) -> BankingOperation:
        missing = [f for f in ("account_id", "date", "amount", "direction") if data.get(f) in (None, "")]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        amount = normalize_amount(data["amount"])
        if amount <= 0:
            raise ValidationError("Amount must be positive")
        direction = data["direction"]
        if direction not in DIRECTIONS:
            raise ValidationError(f"Invalid direction: {direction}")
        op_date = parse_date(data["date"])
        check_number = _clean_check_number(data.get("check_number"))
        if direction == BankingOperation.WITHDRAWAL and not check_number:
            raise ValidationError("A check number is required for a withdrawal")

        with db_transaction.atomic():
            bank = self.accounts_repo.get_for_update(data["account_id"])
            if bank is None:
                raise NotFoundError("Bank account", data["account_id"])
            if bank.kind != Account.BANK:
                raise ValidationError(f"Account {bank.name} is not a bank account")
            if check_number:
                self._ensure_check_number_free(check_number)
            cash = self._require_cash_account()

            if settings.LEDGER.get("ENFORCE_SUFFICIENT_FUNDS", True):
                debited = cash if direction == BankingOperation.DEPOSIT else bank
                if debited.balance < amount:
                    raise ValidationError(
                        f"Insufficient balance on {debited.name} ({debited.balance}) for {direction.lower()} of {amount}"
                    )

            operation = self.repository.create(
                account=bank,
                date=op_date,
                description=data.get("description") or "",
                amount=amount,
                direction=direction,
                check_number=check_number,
            )
            self._apply_pair(direction, bank.pk, cash.pk, amount)

        logger.info(
            "Banking operation %s created: %s %s (check %s) bank=%s cash=%s",
            operation.pk, direction, amount, check_number or "-", bank.pk, cash.pk,
        )
        return self.repository.get(operation.pk)

    def update_operation(self, operation_id: int, patch: Dict[str, Any]) -> BankingOperation:
        with db_transaction.atomic():
            existing = self.repository.get_for_update(operation_id)
            if existing is None:
                raise NotFoundError("Banking operation", operation_id)

            new_direction = patch.get("direction") or existing.direction
            if new_direction not in DIRECTIONS:
                raise ValidationError(f"Invalid direction: {new_direction}")
            if patch.get("amount") not in (None, ""):
                new_amount = normalize_amount(patch["amount"])
                if new_amount <= 0:
                    raise ValidationError("Amount must be positive")
            else:
                new_amount = existing.amount
            if "check_number" in patch:
                new_check = _clean_check_number(patch["check_number"])
            else:
                new_check = existing.check_number
            if new_direction == BankingOperation.WITHDRAWAL and not new_check:
                raise ValidationError("A check number is required for a withdrawal")
            if new_check and new_check != existing.check_number:
                self._ensure_check_number_free(new_check, exclude_pk=existing.pk)
            cash = self._require_cash_account()

            changes = {
                "direction": new_direction,
                "amount": new_amount,
                "check_number": new_check,
            }
            if patch.get("date"):
                changes["date"] = parse_date(patch["date"])
            if "description" in patch:
                changes["description"] = patch["description"] or ""

            self._reverse_pair(existing.direction, existing.account_id, cash.pk, existing.amount)
            self._apply_pair(new_direction, existing.account_id, cash.pk, new_amount)
            updated = self.repository.update(existing, changes)

        logger.info("Banking operation %s updated: %s %s", operation_id, new_direction, new_amount)
        return updated

    def delete_operation(self, operation_id: int) -> None:
        with db_transaction.atomic():
            operation = self.repository.get_for_update(operation_id)
            if operation is None:
                raise NotFoundError("Banking operation", operation_id)
            cash = self._require_cash_account()
            self._reverse_pair(operation.direction, operation.account_id, cash.pk, operation.amount)
            self.repository.delete(operation)
        logger.info("Banking operation %s deleted, balances restored", operation_id)

    # ------------------------------------------------------------------
    # Transaction-linked operations
    # ------------------------------------------------------------------
    def find_linked_operation(self, tx: Transaction) -> Optional[BankingOperation]:
        """Explicit link first, check number in the description for older rows."""
        if tx.banking_operation_id:
            operation = self.repository.get_for_update(tx.banking_operation_id)
            if operation is not None:
                return operation
        check_number = extract_check_number(tx.description)
        if not check_number:
            return None
        operation = self.repository.get_by_check_number(check_number)
        if operation is None:
            return None
        return self.repository.get_for_update(operation.pk)

    def reconcile_transaction_create(
        self, description, kind, amount, op_date, account_kind=Account.CASH
    ) -> Optional[BankingOperation]:
        """Open the banking operation for a new check-paid expense, None when not banking-linked.

        Must run inside the caller's atomic block, before the narrative leg is applied.
        """
        if not is_banking_linked(description, kind, account_kind):
            return None
        check_number = extract_check_number(description)
        cash = self._require_cash_account()
        bank = self._require_bank_account()
        self._ensure_check_number_free(check_number)

        operation = self.repository.create(
            account=bank,
            date=op_date,
            description=description,
            amount=amount,
            direction=BankingOperation.WITHDRAWAL,
            check_number=check_number,
        )
        self._apply_pair(BankingOperation.WITHDRAWAL, bank.pk, cash.pk, amount)
        logger.info("Check %s: banking operation %s opened for %s", check_number, operation.pk, amount)
        return operation

    def reconcile_transaction_update(self, old: Transaction, changes: Dict[str, Any]) -> Optional[Transaction]:
        """Apply ``changes`` to a transaction whose old or new state is banking-linked.

        Returns the updated transaction, or None when the old state is
        banking-linked but its operation cannot be found; the caller then
        treats the edit as a plain transaction edit.
        """
        new_description = changes.get("description", old.description)
        new_kind = changes.get("kind", old.kind)
        new_amount = changes.get("amount", old.amount)
        new_date = changes.get("date", old.date)
        new_account = changes.get("account", old.account)
        old_linked = is_banking_linked(old.description, old.kind, old.account.kind)
        new_linked = is_banking_linked(new_description, new_kind, new_account.kind)
        new_check = extract_check_number(new_description) if new_linked else None

        operation = None
        if old_linked:
            operation = self.find_linked_operation(old)
            if operation is None:
                logger.warning(
                    "Transaction %s references check %s but no banking operation exists; "
                    "updating it as a plain transaction",
                    old.pk, extract_check_number(old.description),
                )
                return None

        cash = self._require_cash_account()
        if new_linked:
            current_check = operation.check_number if operation is not None else None
            if new_check != current_check:
                self._ensure_check_number_free(new_check, exclude_pk=operation.pk if operation else None)
            bank_id = operation.account_id if operation is not None else self._require_bank_account().pk

        changes = dict(changes)

        # banking leg: undo the old pair-movement, then record the new one
        if operation is not None:
            self._reverse_pair(operation.direction, operation.account_id, cash.pk, operation.amount)

        if new_linked:
            if operation is not None and operation.check_number == new_check:
                operation = self.repository.update(operation, {
                    "amount": new_amount,
                    "description": new_description or "",
                    "date": new_date,
                })
            else:
                if operation is not None:
                    self.repository.delete(operation)
                    logger.info("Check changed %s -> %s, banking operation recreated", current_check, new_check)
                operation = self.repository.create(
                    account_id=bank_id,
                    date=new_date,
                    description=new_description or "",
                    amount=new_amount,
                    direction=BankingOperation.WITHDRAWAL,
                    check_number=new_check,
                )
            self._apply_pair(BankingOperation.WITHDRAWAL, operation.account_id, cash.pk, new_amount)
            changes["banking_operation"] = operation
        elif operation is not None:
            logger.info("Transaction %s no longer paid by check, banking operation %s removed", old.pk, operation.pk)
            self.repository.delete(operation)
            changes["banking_operation"] = None

        # narrative leg: undo the old expense, persist, record the new one
        self.ledger.reverse(old.account_id, old.amount, old.kind)
        updated = self.transactions_repo.update(old, changes)
        new_balance = self.ledger.apply(updated.account_id, updated.amount, updated.kind)

        logger.info(
            "Banking-linked transaction %s updated: %s %s, account %s balance %s",
            updated.pk, updated.kind, updated.amount, updated.account_id, new_balance,
        )
        return updated

    def reconcile_transaction_delete(self, tx: Transaction) -> bool:
        """Undo and remove the banking operation of a transaction about to be deleted."""
        if not is_banking_linked(tx.description, tx.kind, tx.account.kind):
            return False
        operation = self.find_linked_operation(tx)
        if operation is None:
            logger.warning(
                "Transaction %s references check %s but no banking operation exists; deleting it as a plain transaction",
                tx.pk, extract_check_number(tx.description),
            )
            return False
        cash = self._require_cash_account()
        self._reverse_pair(operation.direction, operation.account_id, cash.pk, operation.amount)
        self.repository.delete(operation)
        logger.info("Banking operation %s removed with transaction %s", operation.pk, tx.pk)
        return True
