from rest_framework import serializers

from backend.ledger.models import (
    Account,
    BankingOperation,
    Category,
    SubCategory,
    Transaction,
    KIND_CHOICES,
    STATUS_CHOICES,
    STATUS_ACTIVE,
)


class AccountSerializer(serializers.ModelSerializer):
    kind_display = serializers.CharField(source="get_kind_display", read_only=True)

    class Meta:
        model = Account
        fields = ["accountID", "name", "kind", "kind_display", "balance", "created_at", "updated_at"]
        read_only_fields = fields


class AccountCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    kind = serializers.ChoiceField(choices=Account.ACCOUNT_KIND_CHOICES)


class AccountUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)


class SubCategorySerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source="category.name", read_only=True)

    class Meta:
        model = SubCategory
        fields = ["subcategoryID", "category", "category_name", "name", "status"]
        read_only_fields = fields


class CategorySerializer(serializers.ModelSerializer):
    sub_categories = SubCategorySerializer(many=True, read_only=True)

    class Meta:
        model = Category
        fields = ["categoryID", "name", "budget_code", "kind", "is_mixed", "status", "sub_categories"]
        read_only_fields = fields


class CategoryCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    budget_code = serializers.CharField(max_length=20)
    kind = serializers.ChoiceField(choices=KIND_CHOICES)
    is_mixed = serializers.BooleanField(default=False)
    status = serializers.ChoiceField(choices=STATUS_CHOICES, default=STATUS_ACTIVE)


class SubCategoryCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)


class BankingOperationSerializer(serializers.ModelSerializer):
    account_name = serializers.CharField(source="account.name", read_only=True)

    class Meta:
        model = BankingOperation
        fields = [
            "operationID", "account", "account_name", "date", "description",
            "amount", "direction", "check_number", "created_at", "updated_at",
        ]
        read_only_fields = fields


class TransactionSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source="category.name", read_only=True)
    sub_category_name = serializers.CharField(source="sub_category.name", read_only=True)
    account_name = serializers.CharField(source="account.name", read_only=True)
    created_by = serializers.CharField(source="created_by.username", read_only=True, default=None)
    check_number = serializers.CharField(source="banking_operation.check_number", read_only=True, default=None)

    class Meta:
        model = Transaction
        fields = [
            "transactionID", "date", "description", "amount", "kind",
            "category", "category_name", "sub_category", "sub_category_name",
            "account", "account_name", "banking_operation", "check_number",
            "created_by", "created_at", "updated_at",
        ]
        read_only_fields = fields


class TransactionInputSerializer(serializers.Serializer):
    """Input coercion only; business rules live in TransactionService."""

    category_id = serializers.IntegerField()
    sub_category_id = serializers.IntegerField()
    account_id = serializers.IntegerField()
    date = serializers.DateField()
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    amount = serializers.DecimalField(max_digits=15, decimal_places=2)
    kind = serializers.ChoiceField(choices=KIND_CHOICES)


class BankingOperationInputSerializer(serializers.Serializer):
    account_id = serializers.IntegerField()
    date = serializers.DateField()
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    amount = serializers.DecimalField(max_digits=15, decimal_places=2)
    direction = serializers.ChoiceField(choices=BankingOperation.DIRECTION_CHOICES)
    check_number = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=50)


class DateRangeSerializer(serializers.Serializer):
    date_from = serializers.DateField()
    date_to = serializers.DateField()


class SecretaryAccountCreateSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150)
    password = serializers.CharField(write_only=True)
    account_name = serializers.CharField(max_length=100, required=False)


class FundingSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=15, decimal_places=2)
    source_account_id = serializers.IntegerField(required=False)
    date = serializers.DateField(required=False)
    description = serializers.CharField(required=False, allow_blank=True)


class TransferRemainderSerializer(serializers.Serializer):
    destination_account_id = serializers.IntegerField()
    date = serializers.DateField(required=False)
    description = serializers.CharField(required=False, allow_blank=True)
