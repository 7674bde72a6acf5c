from decimal import Decimal

from django.test import SimpleTestCase, override_settings
from django.conf import settings

from backend.ledger.models import Account, BankingOperation, Transaction, KIND_INCOME, KIND_EXPENSE
from backend.ledger.repos import (
    ConflictError,
    FailedPreconditionError,
    NotFoundError,
    ValidationError,
)
from backend.services.banking_service import BankingReconciler, extract_check_number, is_banking_linked

from .base import ADMIN, LedgerTestCase


class CheckNumberTests(SimpleTestCase):
    def test_extract_check_number(self):
        self.assertEqual(extract_check_number("Paiement CHQ-002"), "002")
        self.assertEqual(extract_check_number("CHQ-A12-7 fournitures"), "A12-7")
        self.assertIsNone(extract_check_number("Paiement especes"))
        self.assertIsNone(extract_check_number(""))
        self.assertIsNone(extract_check_number(None))

    def test_only_expenses_are_banking_linked(self):
        self.assertTrue(is_banking_linked("CHQ-1", KIND_EXPENSE))
        self.assertFalse(is_banking_linked("CHQ-1", KIND_INCOME))
        self.assertFalse(is_banking_linked("cash", KIND_EXPENSE))
        self.assertFalse(is_banking_linked("CHQ-1", KIND_EXPENSE, Account.SECRETARY))
        self.assertFalse(is_banking_linked("CHQ-1", KIND_EXPENSE, Account.BANK))

    def test_over_long_check_number_is_rejected(self):
        with self.assertRaises(ValidationError):
            extract_check_number("Paiement CHQ-" + "9" * 51)
        self.assertEqual(extract_check_number("CHQ-" + "9" * 50), "9" * 50)

    def test_pattern_is_configurable(self):
        ledger_conf = dict(settings.LEDGER, CHECK_NUMBER_PATTERN=r"CHEQUE\s*#(\d+)")
        with override_settings(LEDGER=ledger_conf):
            self.assertEqual(extract_check_number("Reglement CHEQUE #4411"), "4411")
            self.assertIsNone(extract_check_number("CHQ-002"))


class StandaloneOperationTests(LedgerTestCase):
    def setUp(self):
        super().setUp()
        self.reconciler = BankingReconciler()
        self.set_balance(self.bank, "5000")

    def withdrawal(self, amount="2000", check_number="001", **overrides):
        data = {
            "account_id": self.bank.pk,
            "date": "2024-01-05",
            "amount": amount,
            "direction": BankingOperation.WITHDRAWAL,
            "check_number": check_number,
            "description": "Retrait",
        }
        data.update(overrides)
        return data

    def test_withdrawal_and_duplicate_check_number(self):
        op = self.reconciler.create_operation(self.withdrawal())
        self.assertEqual(op.check_number, "001")
        self.assertEqual(self.balance(self.bank), Decimal("3000.00"))
        self.assertEqual(self.balance(self.cash), Decimal("2000.00"))

        with self.assertRaises(ConflictError):
            self.reconciler.create_operation(self.withdrawal("10"))
        self.assertEqual(BankingOperation.objects.count(), 1)
        self.assertEqual(self.balance(self.bank), Decimal("3000.00"))

    def test_deposit_moves_cash_to_bank(self):
        self.set_balance(self.cash, "1000")
        self.reconciler.create_operation(
            self.withdrawal("400", check_number=None, direction=BankingOperation.DEPOSIT)
        )
        self.assertEqual(self.balance(self.cash), Decimal("600.00"))
        self.assertEqual(self.balance(self.bank), Decimal("5400.00"))

    def test_validation(self):
        with self.assertRaises(ValidationError):
            self.reconciler.create_operation(self.withdrawal(check_number=""))
        with self.assertRaises(ValidationError):
            self.reconciler.create_operation(self.withdrawal(account_id=self.cash.pk))
        with self.assertRaises(ValidationError):
            self.reconciler.create_operation(self.withdrawal(direction="SIDEWAYS"))
        with self.assertRaises(ValidationError):
            self.reconciler.create_operation(self.withdrawal("-1"))
        with self.assertRaises(ValidationError):
            self.reconciler.create_operation(self.withdrawal(check_number="7" * 51))
        with self.assertRaises(NotFoundError):
            self.reconciler.create_operation(self.withdrawal(account_id=9999))
        self.assertFalse(BankingOperation.objects.exists())

    def test_insufficient_funds(self):
        with self.assertRaises(ValidationError):
            self.reconciler.create_operation(self.withdrawal("6000"))
        with self.assertRaises(ValidationError):
            self.reconciler.create_operation(
                self.withdrawal("1", check_number=None, direction=BankingOperation.DEPOSIT)
            )
        self.assertEqual(self.balance(self.bank), Decimal("5000.00"))

    def test_missing_cash_account(self):
        Account.objects.filter(pk=self.cash.pk).delete()
        with self.assertRaises(FailedPreconditionError):
            self.reconciler.create_operation(self.withdrawal())
        self.assertEqual(self.balance(self.bank), Decimal("5000.00"))

    def test_update_reverses_then_reapplies(self):
        op = self.reconciler.create_operation(self.withdrawal("2000"))
        updated = self.reconciler.update_operation(op.pk, {"amount": "500", "description": "Retrait corrige"})
        self.assertEqual(updated.amount, Decimal("500.00"))
        self.assertEqual(updated.description, "Retrait corrige")
        self.assertEqual(self.balance(self.bank), Decimal("4500.00"))
        self.assertEqual(self.balance(self.cash), Decimal("500.00"))

        updated = self.reconciler.update_operation(op.pk, {"direction": BankingOperation.DEPOSIT})
        self.assertEqual(self.balance(self.bank), Decimal("5500.00"))
        self.assertEqual(self.balance(self.cash), Decimal("-500.00"))

    def test_update_validation(self):
        op = self.reconciler.create_operation(self.withdrawal("100"))
        self.reconciler.create_operation(self.withdrawal("100", check_number="002"))
        with self.assertRaises(ConflictError):
            self.reconciler.update_operation(op.pk, {"check_number": "002"})
        with self.assertRaises(ValidationError):
            self.reconciler.update_operation(op.pk, {"check_number": ""})
        with self.assertRaises(NotFoundError):
            self.reconciler.update_operation(9999, {"amount": "1"})
        self.assertEqual(self.balance(self.bank), Decimal("4800.00"))

    def test_create_then_delete_restores_balances(self):
        self.set_balance(self.cash, "12.34")
        op = self.reconciler.create_operation(self.withdrawal("1234.56"))
        self.reconciler.delete_operation(op.pk)
        self.assertFalse(BankingOperation.objects.exists())
        self.assertEqual(self.balance(self.bank), Decimal("5000.00"))
        self.assertEqual(self.balance(self.cash), Decimal("12.34"))

    def test_list_and_get(self):
        op = self.reconciler.create_operation(self.withdrawal("100"))
        self.set_balance(self.cash, "50")
        self.reconciler.create_operation(
            self.withdrawal("50", check_number=None, direction=BankingOperation.DEPOSIT, date="2024-02-01")
        )
        self.assertEqual(len(self.reconciler.list_operations()), 2)
        self.assertEqual(
            [o.pk for o in self.reconciler.list_operations(direction=BankingOperation.WITHDRAWAL)], [op.pk]
        )
        self.assertEqual(self.reconciler.get_operation(op.pk).check_number, "001")
        with self.assertRaises(NotFoundError):
            self.reconciler.get_operation(9999)


class BankingLinkedTransactionTests(LedgerTestCase):
    def setUp(self):
        super().setUp()
        self.set_balance(self.bank, "5000")

    def create_check_payment(self, amount="1500", check="002"):
        return self.tx_service.create_transaction(
            ADMIN, self.expense_data(amount, description=f"Paiement CHQ-{check}")
        )

    def test_check_payment_creates_banking_operation(self):
        tx = self.create_check_payment()
        op = BankingOperation.objects.get()
        self.assertEqual(op.check_number, "002")
        self.assertEqual(op.direction, BankingOperation.WITHDRAWAL)
        self.assertEqual(op.amount, Decimal("1500.00"))
        self.assertEqual(op.account_id, self.bank.pk)
        self.assertEqual(tx.banking_operation_id, op.pk)
        self.assertEqual(self.balance(self.cash), Decimal("0.00"))
        self.assertEqual(self.balance(self.bank), Decimal("3500.00"))

    def test_income_with_check_token_is_plain(self):
        self.tx_service.create_transaction(ADMIN, self.income_data("100", description="Don CHQ-777"))
        self.assertFalse(BankingOperation.objects.exists())
        self.assertEqual(self.balance(self.cash), Decimal("100.00"))

    def test_duplicate_check_number_conflicts(self):
        BankingReconciler().create_operation({
            "account_id": self.bank.pk, "date": "2024-01-01", "amount": "10",
            "direction": BankingOperation.WITHDRAWAL, "check_number": "002",
        })
        with self.assertRaises(ConflictError):
            self.create_check_payment()
        self.assertFalse(Transaction.objects.exists())
        self.assertEqual(self.balance(self.bank), Decimal("4990.00"))
        self.assertEqual(self.balance(self.cash), Decimal("10.00"))

    def test_missing_bank_account(self):
        Account.objects.filter(pk=self.bank.pk).delete()
        with self.assertRaises(FailedPreconditionError):
            self.create_check_payment()
        self.assertFalse(Transaction.objects.exists())

    def test_update_amount_updates_operation_in_place(self):
        tx = self.create_check_payment()
        op_id = tx.banking_operation_id
        updated = self.tx_service.update_transaction(ADMIN, tx.pk, {"amount": "1000"})
        op = BankingOperation.objects.get()
        self.assertEqual(op.pk, op_id)
        self.assertEqual(op.amount, Decimal("1000.00"))
        self.assertEqual(updated.amount, Decimal("1000.00"))
        self.assertEqual(self.balance(self.cash), Decimal("0.00"))
        self.assertEqual(self.balance(self.bank), Decimal("4000.00"))

    def test_check_number_change_recreates_operation(self):
        tx = self.create_check_payment()
        old_op_id = tx.banking_operation_id
        updated = self.tx_service.update_transaction(ADMIN, tx.pk, {"description": "Paiement CHQ-003"})
        op = BankingOperation.objects.get()
        self.assertNotEqual(op.pk, old_op_id)
        self.assertEqual(op.check_number, "003")
        self.assertEqual(updated.banking_operation_id, op.pk)
        self.assertEqual(self.balance(self.cash), Decimal("0.00"))
        self.assertEqual(self.balance(self.bank), Decimal("3500.00"))

    def test_check_number_change_to_used_number_conflicts(self):
        tx = self.create_check_payment()
        self.create_check_payment("100", check="005")
        with self.assertRaises(ConflictError):
            self.tx_service.update_transaction(ADMIN, tx.pk, {"description": "Paiement CHQ-005"})
        self.assertEqual(BankingOperation.objects.count(), 2)
        self.assertEqual(self.balance(self.bank), Decimal("3400.00"))
        self.assertEqual(self.balance(self.cash), Decimal("0.00"))

    def test_removing_check_token_removes_operation(self):
        tx = self.create_check_payment()
        updated = self.tx_service.update_transaction(ADMIN, tx.pk, {"description": "Paiement especes"})
        self.assertFalse(BankingOperation.objects.exists())
        self.assertIsNone(updated.banking_operation_id)
        self.assertEqual(self.balance(self.bank), Decimal("5000.00"))
        self.assertEqual(self.balance(self.cash), Decimal("-1500.00"))

    def test_adding_check_token_opens_operation(self):
        self.set_balance(self.cash, "1000")
        tx = self.tx_service.create_transaction(ADMIN, self.expense_data("200"))
        self.assertEqual(self.balance(self.cash), Decimal("800.00"))
        updated = self.tx_service.update_transaction(ADMIN, tx.pk, {"description": "Reglement CHQ-010"})
        op = BankingOperation.objects.get()
        self.assertEqual(op.check_number, "010")
        self.assertEqual(updated.banking_operation_id, op.pk)
        self.assertEqual(self.balance(self.cash), Decimal("1000.00"))
        self.assertEqual(self.balance(self.bank), Decimal("4800.00"))

    def test_missing_operation_degrades_to_plain_update(self):
        tx = self.create_check_payment()
        BankingOperation.objects.all().delete()
        with self.assertLogs("backend.services.banking_service", level="WARNING"):
            self.tx_service.update_transaction(ADMIN, tx.pk, {"amount": "1000"})
        self.assertEqual(self.balance(self.cash), Decimal("500.00"))
        self.assertEqual(self.balance(self.bank), Decimal("3500.00"))

    def test_legacy_row_found_by_check_number(self):
        tx = self.create_check_payment()
        Transaction.objects.filter(pk=tx.pk).update(banking_operation=None)
        self.tx_service.update_transaction(ADMIN, tx.pk, {"amount": "1000"})
        self.assertEqual(BankingOperation.objects.get().amount, Decimal("1000.00"))
        self.assertEqual(self.balance(self.bank), Decimal("4000.00"))

    def test_delete_restores_both_accounts(self):
        self.set_balance(self.cash, "42.00")
        tx = self.create_check_payment()
        self.tx_service.delete_transaction(ADMIN, tx.pk)
        self.assertFalse(BankingOperation.objects.exists())
        self.assertFalse(Transaction.objects.exists())
        self.assertEqual(self.balance(self.cash), Decimal("42.00"))
        self.assertEqual(self.balance(self.bank), Decimal("5000.00"))

    def test_delete_with_missing_operation_reverses_narrative_only(self):
        tx = self.create_check_payment()
        BankingOperation.objects.all().delete()
        with self.assertLogs("backend.services.banking_service", level="WARNING"):
            self.tx_service.delete_transaction(ADMIN, tx.pk)
        self.assertFalse(Transaction.objects.exists())
        self.assertEqual(self.balance(self.cash), Decimal("1500.00"))
        self.assertEqual(self.balance(self.bank), Decimal("3500.00"))

    def test_check_payment_from_secretary_account_is_plain(self):
        account, secretary = self.make_secretary()
        self.set_balance(account, "100")
        tx = self.tx_service.create_transaction(
            secretary, self.expense_data("50", account_id=account.pk, description="Paiement CHQ-900")
        )
        self.assertIsNone(tx.banking_operation_id)
        self.assertFalse(BankingOperation.objects.exists())
        self.assertEqual(self.balance(account), Decimal("50.00"))
        self.assertEqual(self.balance(self.cash), Decimal("0.00"))
        self.assertEqual(self.balance(self.bank), Decimal("5000.00"))

    def test_moving_check_payment_off_cash_removes_operation(self):
        tx = self.create_check_payment()
        self.tx_service.update_transaction(ADMIN, tx.pk, {"account_id": self.bank.pk})
        self.assertFalse(BankingOperation.objects.exists())
        self.assertEqual(self.balance(self.cash), Decimal("0.00"))
        self.assertEqual(self.balance(self.bank), Decimal("3500.00"))
