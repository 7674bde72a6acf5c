from decimal import Decimal

from django.db import transaction
from django.db.transaction import TransactionManagementError
from django.test import TestCase, TransactionTestCase

from backend.ledger.models import Account, KIND_INCOME, KIND_EXPENSE
from backend.ledger.repos import NotFoundError, ValidationError
from backend.services.ledger_service import BalanceLedger, signed_amount


class BalanceLedgerTests(TestCase):
    def setUp(self):
        self.ledger = BalanceLedger()
        self.cash = Account.objects.create(name="Caisse", kind=Account.CASH)
        self.bank = Account.objects.create(name="Banque", kind=Account.BANK, balance=Decimal("5000.00"))

    def test_apply_income_and_expense(self):
        self.assertEqual(self.ledger.apply(self.cash.pk, "1000", KIND_INCOME), Decimal("1000.00"))
        self.assertEqual(self.ledger.apply(self.cash.pk, Decimal("250.50"), KIND_EXPENSE), Decimal("749.50"))
        self.assertEqual(Account.objects.get(pk=self.cash.pk).balance, Decimal("749.50"))

    def test_apply_then_reverse_is_exact(self):
        Account.objects.filter(pk=self.cash.pk).update(balance=Decimal("0.30"))
        for _ in range(200):
            self.ledger.apply(self.cash.pk, 0.1, KIND_INCOME)
        for _ in range(200):
            self.ledger.reverse(self.cash.pk, 0.1, KIND_INCOME)
        self.assertEqual(Account.objects.get(pk=self.cash.pk).balance, Decimal("0.30"))

    def test_reverse_expense_adds_back(self):
        self.ledger.apply(self.bank.pk, "120.25", KIND_EXPENSE)
        self.assertEqual(self.ledger.reverse(self.bank.pk, "120.25", KIND_EXPENSE), Decimal("5000.00"))

    def test_unknown_account(self):
        with self.assertRaises(NotFoundError):
            self.ledger.apply(9999, "10", KIND_INCOME)

    def test_invalid_kind(self):
        with self.assertRaises(ValidationError):
            self.ledger.apply(self.cash.pk, "10", "TRANSFER")

    def test_signed_amount(self):
        self.assertEqual(signed_amount("12.5", KIND_INCOME), Decimal("12.50"))
        self.assertEqual(signed_amount("12.5", KIND_EXPENSE), Decimal("-12.50"))

    def test_move(self):
        from_balance, to_balance = self.ledger.move(self.bank.pk, self.cash.pk, "2000")
        self.assertEqual(from_balance, Decimal("3000.00"))
        self.assertEqual(to_balance, Decimal("2000.00"))

    def test_move_rejects_same_account_and_non_positive(self):
        with self.assertRaises(ValidationError):
            self.ledger.move(self.cash.pk, self.cash.pk, "10")
        with self.assertRaises(ValidationError):
            self.ledger.move(self.bank.pk, self.cash.pk, "0")

    def test_move_is_all_or_nothing(self):
        with self.assertRaises(NotFoundError):
            self.ledger.move(self.bank.pk, 9999, "100")
        self.assertEqual(Account.objects.get(pk=self.bank.pk).balance, Decimal("5000.00"))


class BalanceLedgerOutsideAtomicTests(TransactionTestCase):
    def test_apply_requires_an_atomic_block(self):
        account = Account.objects.create(name="Caisse", kind=Account.CASH)
        ledger = BalanceLedger()
        with self.assertRaises(TransactionManagementError):
            ledger.apply(account.pk, "10", KIND_INCOME)
        with transaction.atomic():
            ledger.apply(account.pk, "10", KIND_INCOME)
        self.assertEqual(Account.objects.get(pk=account.pk).balance, Decimal("10.00"))
