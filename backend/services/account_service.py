import logging
from datetime import date
from typing import Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction as db_transaction

from backend.ledger.models import Account, Transaction, UserProfile, KIND_INCOME, KIND_EXPENSE
from backend.ledger.repos import (
    ConflictError,
    DjangoAccountsRepo,
    DjangoTransactionsRepo,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    normalize_amount,
    parse_date,
)
from backend.services.actor import Actor
from backend.services.category_service import CategoryService
from backend.services.ledger_service import BalanceLedger
from backend.services.reporting_service import ReportingService

logger = logging.getLogger(__name__)

ACCOUNT_KINDS = [k for k, _ in Account.ACCOUNT_KIND_CHOICES]


def _require_admin(actor: Actor, what: str) -> None:
    if not actor.is_admin:
        raise PermissionDeniedError(f"Only administrators can {what}")


class AccountService:
    def __init__(self, repository: Optional[DjangoAccountsRepo] = None):
        self.repository = repository or DjangoAccountsRepo()

    def create_account(self, actor: Actor, name, kind) -> Account:
        _require_admin(actor, "create accounts")
        name = (name or "").strip()
        if not name:
            raise ValidationError("Account name is required")
        if kind not in ACCOUNT_KINDS:
            raise ValidationError(f"Invalid account kind: {kind}")
        if self.repository.get_by_name(name):
            raise ConflictError(f"Account name '{name}' already exists")
        # reconciliation relies on a single cash register
        if kind == Account.CASH and self.repository.get_cash_account() is not None:
            raise ConflictError("A cash account already exists")

        account = self.repository.create(name=name, kind=kind)
        logger.info("Account %s created: %s (%s)", account.pk, name, kind)
        return account

    def get_account(self, actor: Actor, account_id) -> Account:
        account = self.repository.get(account_id)
        if account is None:
            raise NotFoundError("Account", account_id)
        if actor.is_secretary and account.pk != actor.restricted_account_id:
            raise PermissionDeniedError("Secretaries can only consult their own account")
        return account

    def list_accounts(self, actor: Actor, kind=None):
        if actor.is_secretary:
            account = self.repository.get(actor.restricted_account_id) if actor.restricted_account_id else None
            return [account] if account else []
        return self.repository.list(kind=kind)

    def update_account(self, actor: Actor, account_id, name) -> Account:
        """Rename an account. Kind and balance are not editable."""
        _require_admin(actor, "update accounts")
        account = self.get_account(actor, account_id)
        name = (name or "").strip()
        if not name:
            raise ValidationError("Account name is required")
        existing = self.repository.get_by_name(name)
        if existing and existing.pk != account.pk:
            raise ConflictError(f"Account name '{name}' already exists")
        return self.repository.update(account, name=name)

    def delete_account(self, actor: Actor, account_id) -> None:
        _require_admin(actor, "delete accounts")
        account = self.get_account(actor, account_id)
        if self.repository.has_movements(account):
            raise ValidationError(f"Account {account.name} has transactions or banking operations and cannot be deleted")
        self.repository.delete(account)
        logger.info("Account %s deleted: %s", account_id, account.name)

    def account_movements(self, actor: Actor, account_id, date_from=None, date_to=None):
        return ReportingService(accounts_repo=self.repository).account_movements(actor, account_id, date_from, date_to)


class SecretaryAccountService:
    """Per-secretary sub-accounts, funded from and emptied into the main accounts."""

    def __init__(
        self,
        accounts_repo: Optional[DjangoAccountsRepo] = None,
        transactions_repo: Optional[DjangoTransactionsRepo] = None,
        categories: Optional[CategoryService] = None,
        ledger: Optional[BalanceLedger] = None,
    ):
        self.accounts_repo = accounts_repo or DjangoAccountsRepo()
        self.transactions_repo = transactions_repo or DjangoTransactionsRepo()
        self.categories = categories or CategoryService()
        self.ledger = ledger or BalanceLedger(self.accounts_repo)

    def _funding_category(self, kind):
        conf = settings.LEDGER["SECRETARY_FUNDING_CATEGORIES"][kind]
        return self.categories.ensure_category(conf["budget_code"], conf["name"], kind, conf["sub_category"])

    def _trace(self, actor: Actor, account: Account, kind, amount, when, description) -> Transaction:
        # the move already changed both balances, trace rows only record it
        category, sub_category = self._funding_category(kind)
        return self.transactions_repo.create(
            category=category,
            sub_category=sub_category,
            account=account,
            date=when,
            description=description,
            amount=amount,
            kind=kind,
            created_by_id=actor.id,
        )

    def _transfer(self, actor: Actor, source: Account, target: Account, amount, when, description):
        self.ledger.move(source.pk, target.pk, amount)
        self._trace(actor, source, KIND_EXPENSE, amount, when, description)
        self._trace(actor, target, KIND_INCOME, amount, when, description)

    def create_secretary_account(self, actor: Actor, username, password, account_name=None):
        _require_admin(actor, "create secretary accounts")
        username = (username or "").strip()
        if not username or not password:
            raise ValidationError("Username and password are required")
        User = get_user_model()
        if User.objects.filter(username=username).exists():
            raise ConflictError(f"User '{username}' already exists")
        account_name = (account_name or f"Secretary - {username}").strip()

        with db_transaction.atomic():
            account = AccountService(self.accounts_repo).create_account(actor, account_name, Account.SECRETARY)
            user = User.objects.create_user(username=username, password=password)
            profile, _ = UserProfile.objects.get_or_create(user=user)
            profile.role = UserProfile.SECRETARY
            profile.secretary_account = account
            profile.save()

        logger.info("Secretary %s created with account %s", username, account.pk)
        return user, account

    def fund(self, actor: Actor, secretary_account_id, amount, source_account_id=None, when=None, description=None):
        _require_admin(actor, "fund secretary accounts")
        amount = normalize_amount(amount)
        if amount <= 0:
            raise ValidationError("Amount must be positive")
        when = parse_date(when) if when else date.today()

        with db_transaction.atomic():
            target = self.accounts_repo.get_for_update(secretary_account_id)
            if target is None:
                raise NotFoundError("Secretary account", secretary_account_id)
            if target.kind != Account.SECRETARY:
                raise ValidationError(f"Account {target.name} is not a secretary account")
            if source_account_id:
                source = self.accounts_repo.get_for_update(source_account_id)
                if source is None:
                    raise NotFoundError("Account", source_account_id)
            else:
                source = self.accounts_repo.get_cash_account()
                if source is None:
                    raise NotFoundError("Cash account")
            if source.kind == Account.SECRETARY:
                raise ValidationError("A secretary account cannot fund another secretary account")
            if settings.LEDGER.get("ENFORCE_SUFFICIENT_FUNDS", True) and source.balance < amount:
                raise ValidationError(f"Insufficient balance on {source.name} ({source.balance}) to fund {amount}")

            self._transfer(actor, source, target, amount, when, description or f"Funding {target.name}")

        logger.info("Secretary account %s funded with %s from account %s", target.pk, amount, source.pk)
        return self.accounts_repo.get(target.pk)

    def transfer_remainder(self, actor: Actor, destination_account_id, when=None, description=None):
        """Move the whole positive balance of the secretary's own account to ``destination_account_id``."""
        if not actor.is_secretary or actor.restricted_account_id is None:
            raise PermissionDeniedError("Only a secretary can transfer the remainder of their account")
        when = parse_date(when) if when else date.today()

        with db_transaction.atomic():
            source = self.accounts_repo.get_for_update(actor.restricted_account_id)
            if source is None:
                raise NotFoundError("Secretary account", actor.restricted_account_id)
            target = self.accounts_repo.get_for_update(destination_account_id)
            if target is None:
                raise NotFoundError("Account", destination_account_id)
            if target.pk == source.pk:
                raise ValidationError("Destination must differ from the secretary account")
            if source.balance <= 0:
                raise ValidationError(f"Nothing to transfer, balance of {source.name} is {source.balance}")

            amount = source.balance
            self._transfer(actor, source, target, amount, when, description or f"Remainder of {source.name}")

        logger.info("Remainder %s of secretary account %s transferred to account %s", amount, source.pk, target.pk)
        return amount
