from decimal import Decimal

from django.conf import settings
from django.db import models

KIND_INCOME = "INCOME"
KIND_EXPENSE = "EXPENSE"
KIND_CHOICES = [
    (KIND_INCOME, "Income"),
    (KIND_EXPENSE, "Expense"),
]

STATUS_ACTIVE = "ACTIVE"
STATUS_INACTIVE = "INACTIVE"
STATUS_CHOICES = [
    (STATUS_ACTIVE, "Active"),
    (STATUS_INACTIVE, "Inactive"),
]


class Account(models.Model):
    """A pool of money. ``balance`` is only ever written by the BalanceLedger."""

    CASH = "CASH"
    BANK = "BANK"
    SECRETARY = "SECRETARY"
    ACCOUNT_KIND_CHOICES = [
        (CASH, "Cash register"),
        (BANK, "Bank account"),
        (SECRETARY, "Secretary sub-account"),
    ]

    accountID = models.AutoField(primary_key=True)
    name = models.CharField(max_length=100, unique=True)
    kind = models.CharField(max_length=20, choices=ACCOUNT_KIND_CHOICES)
    balance = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal("0.00"))
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.kind}) {self.balance}"


class Category(models.Model):
    categoryID = models.AutoField(primary_key=True)
    name = models.CharField(max_length=100, unique=True)
    budget_code = models.CharField(max_length=20, unique=True)
    kind = models.CharField(max_length=10, choices=KIND_CHOICES)
    # accepts both INCOME and EXPENSE transactions
    is_mixed = models.BooleanField(default=False)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "categories"

    def __str__(self):
        return f"{self.budget_code} {self.name}"

    def accepts(self, kind):
        return self.is_mixed or self.kind == kind


class SubCategory(models.Model):
    subcategoryID = models.AutoField(primary_key=True)
    category = models.ForeignKey(Category, on_delete=models.CASCADE, related_name="sub_categories")
    name = models.CharField(max_length=100)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "sub categories"
        unique_together = ["category", "name"]

    def __str__(self):
        return f"{self.category.name} / {self.name}"


class BankingOperation(models.Model):
    """A bank <-> cash movement, always attached to a BANK account."""

    WITHDRAWAL = "WITHDRAWAL"
    DEPOSIT = "DEPOSIT"
    DIRECTION_CHOICES = [
        (WITHDRAWAL, "Withdrawal (bank to cash)"),
        (DEPOSIT, "Deposit (cash to bank)"),
    ]

    operationID = models.AutoField(primary_key=True)
    account = models.ForeignKey(Account, on_delete=models.PROTECT, related_name="banking_operations")
    date = models.DateField()
    description = models.TextField(blank=True, default="")
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    direction = models.CharField(max_length=10, choices=DIRECTION_CHOICES)
    check_number = models.CharField(max_length=50, unique=True, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-date", "-operationID"]

    def __str__(self):
        return f"{self.date} {self.direction} {self.amount} ({self.check_number or '-'})"


class Transaction(models.Model):
    """User-facing monetary event. ``amount`` is always positive, ``kind`` carries the sign."""

    transactionID = models.AutoField(primary_key=True)
    category = models.ForeignKey(Category, on_delete=models.PROTECT, related_name="transactions")
    sub_category = models.ForeignKey(SubCategory, on_delete=models.PROTECT, related_name="transactions")
    account = models.ForeignKey(Account, on_delete=models.PROTECT, related_name="transactions")
    date = models.DateField()
    description = models.TextField(null=True, blank=True)
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    kind = models.CharField(max_length=10, choices=KIND_CHOICES)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="ledger_transactions",
    )
    banking_operation = models.ForeignKey(
        BankingOperation,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="linked_transactions",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-date", "-transactionID"]

    def __str__(self):
        return f"{self.date} - {self.kind} {self.amount} - {self.description or ''}"


class UserProfile(models.Model):
    """Role of a user inside the ledger and, for secretaries, their own sub-account."""

    ADMIN = "ADMIN"
    SECRETARY = "SECRETARY"
    ROLE_CHOICES = [
        (ADMIN, "Administrator"),
        (SECRETARY, "Secretary"),
    ]

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="ledger_profile")
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default=ADMIN)
    secretary_account = models.ForeignKey(
        Account,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="secretaries",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.user.username} ({self.role})"
