"""
Transaction lifecycle: create / update / delete a Transaction while keeping
its account balance in step with it.

Each operation is one ``transaction.atomic()`` unit. Plain transactions are
handled here; as soon as the old or the new state of a transaction is
banking-linked (check-paid expense) the whole balance adjustment is handed
to the BankingReconciler.
"""
import logging
from typing import Any, Dict, Optional

from django.db import transaction as db_transaction

from backend.ledger.models import Category, SubCategory, Transaction, KIND_CHOICES, KIND_EXPENSE
from backend.ledger.repos import (
    DjangoAccountsRepo,
    DjangoCategoriesRepo,
    DjangoTransactionsRepo,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    normalize_amount,
    parse_date,
)
from backend.services.actor import Actor
from backend.services.banking_service import BankingReconciler, is_banking_linked
from backend.services.ledger_service import BalanceLedger
from backend.services.reporting_service import ReportingService

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("category_id", "sub_category_id", "account_id", "date", "amount", "kind")
KINDS = [k for k, _ in KIND_CHOICES]
DEFAULT_LIST_LIMIT = 50


def validate_category_assignment(category: Category, sub_category: SubCategory, kind: str) -> None:
    """Sub-category must belong to the category and the category must accept ``kind``."""
    if sub_category.category_id != category.pk:
        raise ValidationError(
            f"Sub-category '{sub_category.name}' does not belong to category '{category.name}'"
        )
    if not category.accepts(kind):
        raise ValidationError(
            f"Category '{category.name}' only accepts {category.kind} transactions, got {kind}"
        )


def _validate_amount(raw):
    amount = normalize_amount(raw)
    if amount <= 0:
        raise ValidationError("Amount must be positive")
    return amount


def _validate_kind(kind):
    if kind not in KINDS:
        raise ValidationError(f"Invalid transaction kind: {kind}")
    return kind


class TransactionService:
    def __init__(
        self,
        repository: Optional[DjangoTransactionsRepo] = None,
        categories_repo: Optional[DjangoCategoriesRepo] = None,
        accounts_repo: Optional[DjangoAccountsRepo] = None,
        ledger: Optional[BalanceLedger] = None,
        reconciler: Optional[BankingReconciler] = None,
    ):
        self.repository = repository or DjangoTransactionsRepo()
        self.categories_repo = categories_repo or DjangoCategoriesRepo()
        self.accounts_repo = accounts_repo or DjangoAccountsRepo()
        self.ledger = ledger or BalanceLedger(self.accounts_repo)
        self.reconciler = reconciler or BankingReconciler(
            accounts_repo=self.accounts_repo,
            transactions_repo=self.repository,
            ledger=self.ledger,
        )

    def _get_category(self, category_id):
        category = self.categories_repo.get(category_id)
        if category is None:
            raise NotFoundError("Category", category_id)
        return category

    def _get_sub_category(self, sub_category_id):
        sub_category = self.categories_repo.get_sub_category(sub_category_id)
        if sub_category is None:
            raise NotFoundError("Sub-category", sub_category_id)
        return sub_category

    def _get_account(self, account_id):
        account = self.accounts_repo.get(account_id)
        if account is None:
            raise NotFoundError("Account", account_id)
        return account

    def _check_own_transaction(self, actor: Actor, tx: Transaction) -> None:
        if actor.is_secretary and tx.account_id != actor.restricted_account_id:
            raise PermissionDeniedError("Secretaries can only manage transactions of their own account")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def create_transaction(self, actor: Actor, data: Dict[str, Any]) -> Transaction:
        missing = [f for f in REQUIRED_FIELDS if data.get(f) in (None, "")]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        amount = _validate_amount(data["amount"])
        kind = _validate_kind(data["kind"])
        tx_date = parse_date(data["date"])
        description = data.get("description")

        if actor.is_secretary:
            if kind != KIND_EXPENSE:
                raise PermissionDeniedError("Secretaries can only record expenses")
            if int(data["account_id"]) != actor.restricted_account_id:
                raise PermissionDeniedError("Secretaries can only record transactions on their own account")

        with db_transaction.atomic():
            category = self._get_category(data["category_id"])
            sub_category = self._get_sub_category(data["sub_category_id"])
            account = self._get_account(data["account_id"])
            validate_category_assignment(category, sub_category, kind)

            operation = self.reconciler.reconcile_transaction_create(
                description, kind, amount, tx_date, account.kind
            )
            tx = self.repository.create(
                category=category,
                sub_category=sub_category,
                account=account,
                date=tx_date,
                description=description,
                amount=amount,
                kind=kind,
                created_by_id=actor.id,
                banking_operation=operation,
            )
            new_balance = self.ledger.apply(account.pk, amount, kind)

        logger.info(
            "Transaction %s created: %s %s on account %s (balance %s)%s",
            tx.pk, kind, amount, account.pk, new_balance,
            f", banking operation {operation.pk}" if operation else "",
        )
        return self.repository.get(tx.pk)

    def update_transaction(self, actor: Actor, transaction_id: int, patch: Dict[str, Any]) -> Transaction:
        with db_transaction.atomic():
            old = self.repository.get_for_update(transaction_id)
            if old is None:
                raise NotFoundError("Transaction", transaction_id)
            self._check_own_transaction(actor, old)

            changes: Dict[str, Any] = {}
            if patch.get("category_id") not in (None, ""):
                changes["category"] = self._get_category(patch["category_id"])
            if patch.get("sub_category_id") not in (None, ""):
                changes["sub_category"] = self._get_sub_category(patch["sub_category_id"])
            if patch.get("account_id") not in (None, ""):
                if actor.is_secretary and int(patch["account_id"]) != actor.restricted_account_id:
                    raise PermissionDeniedError("Secretaries cannot move a transaction to another account")
                changes["account"] = self._get_account(patch["account_id"])
            if patch.get("amount") not in (None, ""):
                changes["amount"] = _validate_amount(patch["amount"])
            if patch.get("kind") not in (None, ""):
                changes["kind"] = _validate_kind(patch["kind"])
                if actor.is_secretary and changes["kind"] != KIND_EXPENSE:
                    raise PermissionDeniedError("Secretaries can only record expenses")
            if patch.get("date") not in (None, ""):
                changes["date"] = parse_date(patch["date"])
            if "description" in patch:
                changes["description"] = patch["description"]

            if {"category", "sub_category", "kind"} & changes.keys():
                validate_category_assignment(
                    changes.get("category", old.category),
                    changes.get("sub_category", old.sub_category),
                    changes.get("kind", old.kind),
                )

            updated = None
            new_description = changes.get("description", old.description)
            new_kind = changes.get("kind", old.kind)
            new_account = changes.get("account", old.account)
            if (
                is_banking_linked(old.description, old.kind, old.account.kind)
                or is_banking_linked(new_description, new_kind, new_account.kind)
            ):
                updated = self.reconciler.reconcile_transaction_update(old, changes)

            if updated is None:
                old_account_id, old_amount, old_kind = old.account_id, old.amount, old.kind
                self.ledger.reverse(old_account_id, old_amount, old_kind)
                updated = self.repository.update(old, changes)
                new_balance = self.ledger.apply(updated.account_id, updated.amount, updated.kind)
                logger.info(
                    "Transaction %s updated: %s %s -> %s %s, account %s -> %s (balance %s)",
                    updated.pk, old_kind, old_amount, updated.kind, updated.amount,
                    old_account_id, updated.account_id, new_balance,
                )

        return updated

    def delete_transaction(self, actor: Actor, transaction_id: int) -> None:
        with db_transaction.atomic():
            tx = self.repository.get_for_update(transaction_id)
            if tx is None:
                raise NotFoundError("Transaction", transaction_id)
            self._check_own_transaction(actor, tx)

            self.reconciler.reconcile_transaction_delete(tx)
            new_balance = self.ledger.reverse(tx.account_id, tx.amount, tx.kind)
            self.repository.delete(tx)

        logger.info(
            "Transaction %s deleted: %s %s reversed on account %s (balance %s)",
            transaction_id, tx.kind, tx.amount, tx.account_id, new_balance,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_transaction(self, actor: Actor, transaction_id: int) -> Transaction:
        tx = self.repository.get(transaction_id)
        if tx is None:
            raise NotFoundError("Transaction", transaction_id)
        self._check_own_transaction(actor, tx)
        return tx

    def list_transactions(self, actor: Actor, **filters):
        filters.setdefault("limit", DEFAULT_LIST_LIMIT)
        if actor.is_secretary:
            if actor.restricted_account_id is None:
                return []
            filters["account_id"] = actor.restricted_account_id
        for key in ("date_from", "date_to"):
            if filters.get(key):
                filters[key] = parse_date(filters[key], key)
        if filters.get("kind"):
            _validate_kind(filters["kind"])
        return self.repository.list(**filters)

    def recapitulate(self, actor: Actor, date_from, date_to) -> Dict[str, Any]:
        return ReportingService(self.repository).recapitulation(actor, date_from, date_to)
