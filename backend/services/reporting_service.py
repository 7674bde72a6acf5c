import logging
from collections import OrderedDict
from decimal import Decimal
from typing import Any, Dict, Optional

from django.db.models import Count, Q, Sum

from backend.ledger.models import Account, BankingOperation, Transaction, KIND_INCOME, KIND_EXPENSE
from backend.ledger.repos import (
    DjangoAccountsRepo,
    DjangoBankingOperationsRepo,
    DjangoTransactionsRepo,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    parse_date,
)
from backend.services.actor import Actor

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def _date_range(date_from, date_to):
    if not date_from or not date_to:
        raise ValidationError("Both date_from and date_to are required")
    start = parse_date(date_from, "date_from")
    end = parse_date(date_to, "date_to")
    if start > end:
        raise ValidationError("date_from must not be after date_to")
    return start, end


def _totals():
    return {"total_income": ZERO, "total_expense": ZERO, "net": ZERO}


def _add(bucket, kind, amount):
    if kind == KIND_INCOME:
        bucket["total_income"] += amount
    else:
        bucket["total_expense"] += amount
    bucket["net"] = bucket["total_income"] - bucket["total_expense"]


class ReportingService:
    """Read-only aggregations; nothing here touches a balance."""

    def __init__(
        self,
        repository: Optional[DjangoTransactionsRepo] = None,
        accounts_repo: Optional[DjangoAccountsRepo] = None,
        banking_repo: Optional[DjangoBankingOperationsRepo] = None,
    ):
        self.repository = repository or DjangoTransactionsRepo()
        self.accounts_repo = accounts_repo or DjangoAccountsRepo()
        self.banking_repo = banking_repo or DjangoBankingOperationsRepo()

    @staticmethod
    def _scope(actor: Actor) -> Dict[str, Any]:
        # secretaries see their own account, admins everything but the secretary sub-accounts
        if actor.is_secretary:
            return {"account_id": actor.restricted_account_id}
        return {"exclude_account_kind": Account.SECRETARY}

    def recapitulation(self, actor: Actor, date_from, date_to) -> Dict[str, Any]:
        """Group transactions of ``[date_from, date_to]`` by category then sub-category."""
        start, end = _date_range(date_from, date_to)
        report = {"date_from": start, "date_to": end, "categories": []}
        report.update(_totals())
        if actor.is_secretary and actor.restricted_account_id is None:
            return report

        transactions = self.repository.list(date_from=start, date_to=end, **self._scope(actor))
        categories: "OrderedDict[int, Dict[str, Any]]" = OrderedDict()
        for tx in sorted(transactions, key=lambda t: (t.category.name, t.sub_category.name, t.date, t.pk)):
            cat = categories.get(tx.category_id)
            if cat is None:
                cat = {"id": tx.category_id, "name": tx.category.name, "kind": tx.category.kind,
                       "budget_code": tx.category.budget_code, "sub_categories": OrderedDict()}
                cat.update(_totals())
                categories[tx.category_id] = cat
            sub = cat["sub_categories"].get(tx.sub_category_id)
            if sub is None:
                sub = {"id": tx.sub_category_id, "name": tx.sub_category.name, "transactions": []}
                sub.update(_totals())
                cat["sub_categories"][tx.sub_category_id] = sub

            sub["transactions"].append({
                "id": tx.pk,
                "date": tx.date,
                "description": tx.description,
                "amount": tx.amount,
                "kind": tx.kind,
                "account_id": tx.account_id,
            })
            _add(sub, tx.kind, tx.amount)
            _add(cat, tx.kind, tx.amount)
            _add(report, tx.kind, tx.amount)

        for cat in categories.values():
            cat["sub_categories"] = list(cat["sub_categories"].values())
        report["categories"] = list(categories.values())
        logger.debug("Recapitulation %s..%s: %d transactions", start, end, len(transactions))
        return report

    def transaction_stats(self, actor: Actor, date_from=None, date_to=None) -> Dict[str, Any]:
        qs = Transaction.objects.all()
        if actor.is_secretary:
            qs = qs.filter(account_id=actor.restricted_account_id)
        if date_from:
            qs = qs.filter(date__gte=parse_date(date_from, "date_from"))
        if date_to:
            qs = qs.filter(date__lte=parse_date(date_to, "date_to"))

        agg = qs.aggregate(
            total_income=Sum("amount", filter=Q(kind=KIND_INCOME)),
            income_count=Count("transactionID", filter=Q(kind=KIND_INCOME)),
            total_expense=Sum("amount", filter=Q(kind=KIND_EXPENSE)),
            expense_count=Count("transactionID", filter=Q(kind=KIND_EXPENSE)),
        )
        total_income = agg["total_income"] or ZERO
        total_expense = agg["total_expense"] or ZERO
        return {
            "total_income": total_income,
            "income_count": agg["income_count"],
            "total_expense": total_expense,
            "expense_count": agg["expense_count"],
            "net": total_income - total_expense,
        }

    def account_movements(self, actor: Actor, account_id: int, date_from=None, date_to=None) -> Dict[str, Any]:
        """Every movement that touched ``account_id``: its transactions and, for cash/bank, the banking legs."""
        account = self.accounts_repo.get(account_id)
        if account is None:
            raise NotFoundError("Account", account_id)
        if actor.is_secretary and account.pk != actor.restricted_account_id:
            raise PermissionDeniedError("Secretaries can only consult their own account")

        start = parse_date(date_from, "date_from") if date_from else None
        end = parse_date(date_to, "date_to") if date_to else None

        movements = []
        for tx in self.repository.list(account_id=account.pk, date_from=start, date_to=end):
            movements.append({
                "source": "transaction",
                "id": tx.pk,
                "date": tx.date,
                "description": tx.description,
                "kind": tx.kind,
                "amount": tx.amount,
            })

        operations = []
        if account.kind == Account.BANK:
            operations = self.banking_repo.list(account_id=account.pk, date_from=start, date_to=end)
        elif account.kind == Account.CASH:
            operations = self.banking_repo.list(date_from=start, date_to=end)
        for op in operations:
            # a withdrawal leaves the bank and lands in the cash register
            leaves_account = (op.direction == BankingOperation.WITHDRAWAL) == (account.kind == Account.BANK)
            movements.append({
                "source": "banking_operation",
                "id": op.pk,
                "date": op.date,
                "description": op.description,
                "kind": KIND_EXPENSE if leaves_account else KIND_INCOME,
                "amount": op.amount,
                "check_number": op.check_number,
            })

        movements.sort(key=lambda m: (m["date"], m["source"], m["id"]), reverse=True)
        result = {"account_id": account.pk, "name": account.name, "kind": account.kind,
                  "balance": account.balance, "movements": movements}
        result.update(_totals())
        for m in movements:
            _add(result, m["kind"], m["amount"])
        return result
