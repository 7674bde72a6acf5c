from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import List, Optional, Dict, Any
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from django.db import IntegrityError, transaction as db_transaction

from .models import Account, Category, SubCategory, Transaction, BankingOperation

CENTS = Decimal("0.01")


# Exceptii pentru layer ledger

class LedgerError(Exception):
    """Base ledger exception. ``code`` is stable and used by the HTTP boundary."""

    code = "ledger_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError):
    """Malformed or semantically invalid input."""

    code = "validation_error"


class NotFoundError(LedgerError):
    """Entity not found in repository."""

    code = "not_found"

    def __init__(self, entity: str, pk: Any = None):
        message = f"{entity} not found" if pk is None else f"{entity} {pk} not found"
        super().__init__(message)
        self.entity = entity
        self.pk = pk


class ConflictError(LedgerError):
    """Uniqueness violation (check number, account or category name)."""

    code = "conflict"


class FailedPreconditionError(LedgerError):
    """A required singleton entity (the cash account) is missing."""

    code = "failed_precondition"


class PermissionDeniedError(LedgerError):
    """The actor's role does not allow the operation."""

    code = "permission_denied"


def normalize_amount(raw) -> Decimal:
    """Coerce ``raw`` to a 2-digit Decimal. Floats go through ``str`` to avoid binary noise."""
    if isinstance(raw, bool):
        raise ValidationError(f"Invalid amount value: {raw}")
    try:
        d = Decimal(str(raw).strip())
        if not d.is_finite():
            raise ValidationError(f"Invalid amount value: {raw}")
        return d.quantize(CENTS)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid amount value: {raw}") from e


def parse_date(raw, field_name: str = "date") -> date:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    s = (str(raw) if raw is not None else "").strip()
    if not s:
        raise ValidationError(f"Missing required field: {field_name}")
    for fmt in ("%Y-%m-%d", "%d/%m/%Y"):
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(s).date()
    except ValueError:
        raise ValidationError(f"Invalid {field_name}: {raw}")


@contextmanager
def translate_integrity_errors(message: str):
    """Turn unique-constraint races caught by the database into ConflictError."""
    try:
        with db_transaction.atomic():
            yield
    except IntegrityError as e:
        raise ConflictError(message) from e


# Interfata Repositories

class AccountsRepoInterface(ABC):
    @abstractmethod
    def create(self, name: str, kind: str) -> Any:
        """Create and return an account object"""
        raise NotImplementedError

    @abstractmethod
    def get(self, pk: int) -> Optional[Any]:
        """Return account by primary key or None"""
        raise NotImplementedError

    @abstractmethod
    def get_for_update(self, pk: int) -> Optional[Any]:
        """Return account by primary key with its row locked, or None"""
        raise NotImplementedError

    @abstractmethod
    def save_balance(self, account: Any) -> None:
        """Persist ``account.balance``; the only balance write path."""
        raise NotImplementedError

    @abstractmethod
    def get_by_name(self, name: str) -> Optional[Any]:
        """Return account by name or None."""
        raise NotImplementedError

    @abstractmethod
    def list(self, kind: Optional[str] = None) -> List[Any]:
        """Return list of all accounts ordered by name."""
        raise NotImplementedError


class TransactionsRepoInterface(ABC):
    @abstractmethod
    def create(self, **fields) -> Any:
        raise NotImplementedError

    @abstractmethod
    def get(self, pk: int) -> Optional[Any]:
        """Return transaction by pk (with related entities resolved)."""
        raise NotImplementedError

    @abstractmethod
    def list(self, **filters) -> List[Any]:
        """List transactions with simple filters (date range, account, category, kind)."""
        raise NotImplementedError


class BankingOperationsRepoInterface(ABC):
    @abstractmethod
    def create(self, **fields) -> Any:
        raise NotImplementedError

    @abstractmethod
    def get(self, pk: int) -> Optional[Any]:
        raise NotImplementedError

    @abstractmethod
    def get_by_check_number(self, check_number: str) -> Optional[Any]:
        raise NotImplementedError


# Django implementations

class DjangoAccountsRepo(AccountsRepoInterface):
    def create(self, name: str, kind: str) -> Account:
        with translate_integrity_errors(f"Account name '{name}' already exists"):
            return Account.objects.create(name=name, kind=kind)

    def get(self, pk: int) -> Optional[Account]:
        return Account.objects.filter(pk=pk).first()

    def get_for_update(self, pk: int) -> Optional[Account]:
        return Account.objects.select_for_update().filter(pk=pk).first()

    def save_balance(self, account: Account) -> None:
        account.save(update_fields=["balance", "updated_at"])

    def get_by_name(self, name: str) -> Optional[Account]:
        return Account.objects.filter(name=name).first()

    def get_cash_account(self) -> Optional[Account]:
        return Account.objects.filter(kind=Account.CASH).order_by("pk").first()

    def get_bank_account(self) -> Optional[Account]:
        return Account.objects.filter(kind=Account.BANK).order_by("pk").first()

    def list(self, kind: Optional[str] = None) -> List[Account]:
        qs = Account.objects.all()
        if kind:
            qs = qs.filter(kind=kind)
        return list(qs.order_by("name"))

    def update(self, account: Account, **fields) -> Account:
        for key, value in fields.items():
            setattr(account, key, value)
        with translate_integrity_errors(f"Account name '{account.name}' already exists"):
            account.save(update_fields=list(fields) + ["updated_at"])
        return account

    def delete(self, account: Account) -> None:
        account.delete()

    def has_movements(self, account: Account) -> bool:
        return (
            Transaction.objects.filter(account=account).exists()
            or BankingOperation.objects.filter(account=account).exists()
        )


class DjangoCategoriesRepo:
    def create(self, **fields) -> Category:
        with translate_integrity_errors(f"Category '{fields.get('name')}' already exists"):
            return Category.objects.create(**fields)

    def get(self, pk: int) -> Optional[Category]:
        return Category.objects.filter(pk=pk).first()

    def get_by_name(self, name: str) -> Optional[Category]:
        return Category.objects.filter(name=name).first()

    def get_by_budget_code(self, budget_code: str) -> Optional[Category]:
        return Category.objects.filter(budget_code=budget_code).first()

    def list(self, kind: Optional[str] = None, status: Optional[str] = None) -> List[Category]:
        qs = Category.objects.all()
        if kind:
            qs = qs.filter(kind=kind)
        if status:
            qs = qs.filter(status=status)
        return list(qs.order_by("name"))

    def create_sub_category(self, category: Category, name: str) -> SubCategory:
        with translate_integrity_errors(f"Sub-category '{name}' already exists in '{category.name}'"):
            return SubCategory.objects.create(category=category, name=name)

    def get_sub_category(self, pk: int) -> Optional[SubCategory]:
        return SubCategory.objects.select_related("category").filter(pk=pk).first()

    def get_sub_category_by_name(self, category: Category, name: str) -> Optional[SubCategory]:
        return SubCategory.objects.filter(category=category, name=name).first()

    def list_sub_categories(self, category_id: Optional[int] = None) -> List[SubCategory]:
        qs = SubCategory.objects.select_related("category")
        if category_id:
            qs = qs.filter(category_id=category_id)
        return list(qs.order_by("category__name", "name"))


class DjangoTransactionsRepo(TransactionsRepoInterface):
    RELATED = ("category", "sub_category", "account", "created_by", "banking_operation")

    def create(self, **fields) -> Transaction:
        return Transaction.objects.create(**fields)

    def get(self, pk: int) -> Optional[Transaction]:
        return Transaction.objects.select_related(*self.RELATED).filter(pk=pk).first()

    def get_for_update(self, pk: int) -> Optional[Transaction]:
        return Transaction.objects.select_for_update().filter(pk=pk).first()

    def update(self, tx: Transaction, fields: Dict[str, Any]) -> Transaction:
        for key, value in fields.items():
            setattr(tx, key, value)
        tx.save()
        return self.get(tx.pk)

    def delete(self, tx: Transaction) -> None:
        tx.delete()

    def list(self, **filters) -> List[Transaction]:
        qs = Transaction.objects.select_related(*self.RELATED).all()
        date_from = filters.get("date_from")
        date_to = filters.get("date_to")
        account_id = filters.get("account_id")
        category_id = filters.get("category_id")
        sub_category_id = filters.get("sub_category_id")
        kind = filters.get("kind")
        exclude_account_kind = filters.get("exclude_account_kind")
        limit = filters.get("limit")

        if date_from:
            qs = qs.filter(date__gte=date_from)
        if date_to:
            qs = qs.filter(date__lte=date_to)
        if account_id:
            qs = qs.filter(account__pk=account_id)
        if category_id:
            qs = qs.filter(category__pk=category_id)
        if sub_category_id:
            qs = qs.filter(sub_category__pk=sub_category_id)
        if kind:
            qs = qs.filter(kind=kind)
        if exclude_account_kind:
            qs = qs.exclude(account__kind=exclude_account_kind)

        qs = qs.order_by("-date", "-transactionID")
        if limit:
            qs = qs[: int(limit)]
        return list(qs)


class DjangoBankingOperationsRepo(BankingOperationsRepoInterface):
    def create(self, **fields) -> BankingOperation:
        check_number = fields.get("check_number")
        with translate_integrity_errors(f"Check number {check_number} already exists"):
            return BankingOperation.objects.create(**fields)

    def get(self, pk: int) -> Optional[BankingOperation]:
        return BankingOperation.objects.select_related("account").filter(pk=pk).first()

    def get_for_update(self, pk: int) -> Optional[BankingOperation]:
        return BankingOperation.objects.select_for_update().select_related("account").filter(pk=pk).first()

    def get_by_check_number(self, check_number: str) -> Optional[BankingOperation]:
        if not check_number:
            return None
        return BankingOperation.objects.select_related("account").filter(check_number=check_number).first()

    def check_number_exists(self, check_number: str, exclude_pk: Optional[int] = None) -> bool:
        qs = BankingOperation.objects.filter(check_number=check_number)
        if exclude_pk is not None:
            qs = qs.exclude(pk=exclude_pk)
        return qs.exists()

    def update(self, operation: BankingOperation, fields: Dict[str, Any]) -> BankingOperation:
        for key, value in fields.items():
            setattr(operation, key, value)
        with translate_integrity_errors(f"Check number {operation.check_number} already exists"):
            operation.save()
        return self.get(operation.pk)

    def delete(self, operation: BankingOperation) -> None:
        operation.delete()

    def list(self, **filters) -> List[BankingOperation]:
        qs = BankingOperation.objects.select_related("account").all()
        if filters.get("account_id"):
            qs = qs.filter(account__pk=filters["account_id"])
        if filters.get("direction"):
            qs = qs.filter(direction=filters["direction"])
        if filters.get("date_from"):
            qs = qs.filter(date__gte=filters["date_from"])
        if filters.get("date_to"):
            qs = qs.filter(date__lte=filters["date_to"])
        return list(qs.order_by("-date", "-operationID"))
