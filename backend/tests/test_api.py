from decimal import Decimal

from django.contrib.auth import get_user_model
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from backend.ledger.models import Account, BankingOperation, Category, SubCategory, UserProfile, KIND_INCOME, KIND_EXPENSE


class LedgerApiTests(APITestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(username="tresorier", password="secret")
        self.client.force_authenticate(self.user)
        self.cash = Account.objects.create(name="Caisse", kind=Account.CASH)
        self.bank = Account.objects.create(name="Banque", kind=Account.BANK, balance=Decimal("5000.00"))
        self.income = Category.objects.create(name="Dons", budget_code="REC-003", kind=KIND_INCOME)
        self.income_sub = SubCategory.objects.create(category=self.income, name="General")
        self.expense = Category.objects.create(name="Fournitures", budget_code="DEP-004", kind=KIND_EXPENSE)
        self.expense_sub = SubCategory.objects.create(category=self.expense, name="Bureau")

    def payload(self, **overrides):
        data = {
            "category_id": self.income.pk,
            "sub_category_id": self.income_sub.pk,
            "account_id": self.cash.pk,
            "date": "2024-01-10",
            "amount": "1000.00",
            "kind": KIND_INCOME,
            "description": "Offrande",
        }
        data.update(overrides)
        return data

    def test_create_update_delete_transaction(self):
        response = self.client.post(reverse("transaction-list-create"), self.payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["amount"], "1000.00")
        self.assertEqual(response.data["category_name"], "Dons")
        tx_id = response.data["transactionID"]

        response = self.client.patch(
            reverse("transaction-detail", args=[tx_id]), {"amount": "400"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Account.objects.get(pk=self.cash.pk).balance, Decimal("400.00"))

        response = self.client.get(reverse("transaction-list-create"))
        self.assertEqual(response.data["count"], 1)

        response = self.client.delete(reverse("transaction-detail", args=[tx_id]))
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertEqual(Account.objects.get(pk=self.cash.pk).balance, Decimal("0.00"))

    def test_validation_error_is_400(self):
        response = self.client.post(
            reverse("transaction-list-create"),
            self.payload(sub_category_id=self.expense_sub.pk),
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"]["code"], "validation_error")

    def test_not_found_is_404(self):
        response = self.client.get(reverse("transaction-detail", args=[9999]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["error"]["code"], "not_found")

    def test_duplicate_check_number_is_409(self):
        body = {
            "account_id": self.bank.pk, "date": "2024-01-05", "amount": "2000",
            "direction": BankingOperation.WITHDRAWAL, "check_number": "001",
        }
        response = self.client.post(reverse("banking-operation-list-create"), body, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.post(reverse("banking-operation-list-create"), body, format="json")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["error"]["code"], "conflict")

    def test_missing_cash_account_is_500(self):
        Account.objects.filter(pk=self.cash.pk).delete()
        body = {
            "account_id": self.bank.pk, "date": "2024-01-05", "amount": "20",
            "direction": BankingOperation.WITHDRAWAL, "check_number": "001",
        }
        response = self.client.post(reverse("banking-operation-list-create"), body, format="json")
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data["error"]["code"], "failed_precondition")

    def test_secretary_permission_error_is_403(self):
        account = Account.objects.create(name="Secretariat", kind=Account.SECRETARY)
        UserProfile.objects.filter(user=self.user).update(role=UserProfile.SECRETARY, secretary_account=account)
        self.client.force_authenticate(get_user_model().objects.get(pk=self.user.pk))
        response = self.client.post(
            reverse("transaction-list-create"), self.payload(account_id=account.pk), format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data["error"]["code"], "permission_denied")

    def test_recapitulation_and_stats(self):
        self.client.post(reverse("transaction-list-create"), self.payload(), format="json")
        response = self.client.get(
            reverse("transaction-recapitulation"), {"date_from": "2024-01-01", "date_to": "2024-01-31"}
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["categories"][0]["name"], "Dons")
        response = self.client.get(reverse("transaction-stats"))
        self.assertEqual(response.data["income_count"], 1)

    def test_categories_and_accounts(self):
        response = self.client.post(
            reverse("category-list-create"),
            {"name": "Eau", "budget_code": "DEP-003", "kind": KIND_EXPENSE},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.post(
            reverse("sub-category-list-create", args=[response.data["categoryID"]]),
            {"name": "General"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.get(reverse("account-list-create"))
        self.assertEqual([a["name"] for a in response.data], ["Banque", "Caisse"])
        response = self.client.post(reverse("account-list-create"), {"name": "Banque", "kind": "BANK"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
