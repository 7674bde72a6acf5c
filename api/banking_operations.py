from rest_framework import permissions, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from backend.ledger.repos import PermissionDeniedError
from backend.services.actor import Actor
from backend.services.banking_service import BankingReconciler

from .pagination import StandardResultsSetPagination
from .serializers import BankingOperationInputSerializer, BankingOperationSerializer

LIST_FILTERS = ("account_id", "direction", "date_from", "date_to")


def _require_admin(request):
    if not Actor.from_user(request.user).is_admin:
        raise PermissionDeniedError("Only administrators can manage banking operations")


@api_view(["GET", "POST"])
@permission_classes([permissions.IsAuthenticated])
def banking_operation_list_create(request):
    """
    GET  /api/banking-operations/  list (account_id, direction, date_from, date_to)
    POST /api/banking-operations/  standalone deposit / withdrawal between bank and cash
    """
    _require_admin(request)
    reconciler = BankingReconciler()

    if request.method == "GET":
        filters = {key: request.query_params[key] for key in LIST_FILTERS if request.query_params.get(key)}
        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(reconciler.list_operations(**filters), request)
        return paginator.get_paginated_response(BankingOperationSerializer(page, many=True).data)

    serializer = BankingOperationInputSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    operation = reconciler.create_operation(serializer.validated_data)
    return Response(BankingOperationSerializer(operation).data, status=status.HTTP_201_CREATED)


@api_view(["GET", "PATCH", "PUT", "DELETE"])
@permission_classes([permissions.IsAuthenticated])
def banking_operation_detail(request, operation_id):
    _require_admin(request)
    reconciler = BankingReconciler()

    if request.method == "GET":
        return Response(BankingOperationSerializer(reconciler.get_operation(operation_id)).data)

    if request.method == "DELETE":
        reconciler.delete_operation(operation_id)
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = BankingOperationInputSerializer(data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)
    operation = reconciler.update_operation(operation_id, serializer.validated_data)
    return Response(BankingOperationSerializer(operation).data)
