from django.urls import path

from .accounts import (
    account_detail,
    account_list_create,
    account_movements,
    category_list_create,
    secretary_account_create,
    secretary_account_fund,
    secretary_transfer_remainder,
    sub_category_list_create,
)
from .banking_operations import banking_operation_detail, banking_operation_list_create
from .transactions import recapitulation, transaction_detail, transaction_list_create, transaction_stats

urlpatterns = [
    # Account endpoints
    path('accounts/', account_list_create, name='account-list-create'),
    path('accounts/<int:account_id>/', account_detail, name='account-detail'),
    path('accounts/<int:account_id>/movements/', account_movements, name='account-movements'),

    # Category endpoints
    path('categories/', category_list_create, name='category-list-create'),
    path('categories/<int:category_id>/sub-categories/', sub_category_list_create, name='sub-category-list-create'),

    # Transaction endpoints
    path('transactions/', transaction_list_create, name='transaction-list-create'),
    path('transactions/stats/', transaction_stats, name='transaction-stats'),
    path('transactions/recapitulation/', recapitulation, name='transaction-recapitulation'),
    path('transactions/<int:transaction_id>/', transaction_detail, name='transaction-detail'),

    # Banking operation endpoints
    path('banking-operations/', banking_operation_list_create, name='banking-operation-list-create'),
    path('banking-operations/<int:operation_id>/', banking_operation_detail, name='banking-operation-detail'),

    # Secretary sub-accounts
    path('secretary-accounts/', secretary_account_create, name='secretary-account-create'),
    path('secretary-accounts/<int:account_id>/fund/', secretary_account_fund, name='secretary-account-fund'),
    path('secretary-accounts/transfer-remainder/', secretary_transfer_remainder, name='secretary-transfer-remainder'),
]
