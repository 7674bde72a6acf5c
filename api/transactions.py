from rest_framework import permissions, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from backend.services.actor import Actor
from backend.services.reporting_service import ReportingService
from backend.services.transaction_service import TransactionService

from .pagination import TransactionPagination
from .serializers import DateRangeSerializer, TransactionInputSerializer, TransactionSerializer

LIST_FILTERS = ("category_id", "sub_category_id", "account_id", "kind", "date_from", "date_to")


@api_view(["GET", "POST"])
@permission_classes([permissions.IsAuthenticated])
def transaction_list_create(request):
    """
    GET  /api/transactions/  list with filters (category_id, sub_category_id, account_id, kind, date_from, date_to, limit)
    POST /api/transactions/  create a transaction and update its account balance
    """
    actor = Actor.from_user(request.user)
    service = TransactionService()

    if request.method == "GET":
        filters = {key: request.query_params[key] for key in LIST_FILTERS if request.query_params.get(key)}
        if request.query_params.get("limit", "").isdigit():
            filters["limit"] = int(request.query_params["limit"])
        transactions = service.list_transactions(actor, **filters)
        paginator = TransactionPagination()
        page = paginator.paginate_queryset(transactions, request)
        return paginator.get_paginated_response(TransactionSerializer(page, many=True).data)

    serializer = TransactionInputSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    transaction = service.create_transaction(actor, serializer.validated_data)
    return Response(TransactionSerializer(transaction).data, status=status.HTTP_201_CREATED)


@api_view(["GET", "PATCH", "PUT", "DELETE"])
@permission_classes([permissions.IsAuthenticated])
def transaction_detail(request, transaction_id):
    """
    GET    /api/transactions/{id}/
    PATCH  /api/transactions/{id}/  partial update, balances re-synced
    DELETE /api/transactions/{id}/  balances restored
    """
    actor = Actor.from_user(request.user)
    service = TransactionService()

    if request.method == "GET":
        return Response(TransactionSerializer(service.get_transaction(actor, transaction_id)).data)

    if request.method == "DELETE":
        service.delete_transaction(actor, transaction_id)
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = TransactionInputSerializer(data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)
    transaction = service.update_transaction(actor, transaction_id, serializer.validated_data)
    return Response(TransactionSerializer(transaction).data)


@api_view(["GET"])
@permission_classes([permissions.IsAuthenticated])
def transaction_stats(request):
    """GET /api/transactions/stats/?date_from=&date_to="""
    actor = Actor.from_user(request.user)
    stats = ReportingService().transaction_stats(
        actor, request.query_params.get("date_from"), request.query_params.get("date_to")
    )
    return Response(stats)


@api_view(["GET"])
@permission_classes([permissions.IsAuthenticated])
def recapitulation(request):
    """GET /api/transactions/recapitulation/?date_from=&date_to= grouped by category and sub-category"""
    serializer = DateRangeSerializer(data=request.query_params)
    serializer.is_valid(raise_exception=True)
    actor = Actor.from_user(request.user)
    report = TransactionService().recapitulate(
        actor, serializer.validated_data["date_from"], serializer.validated_data["date_to"]
    )
    return Response(report)
