from rest_framework import permissions, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from backend.ledger.repos import PermissionDeniedError
from backend.services.account_service import AccountService, SecretaryAccountService
from backend.services.actor import Actor
from backend.services.category_service import CategoryService

from .serializers import (
    AccountCreateSerializer,
    AccountSerializer,
    AccountUpdateSerializer,
    CategoryCreateSerializer,
    CategorySerializer,
    FundingSerializer,
    SecretaryAccountCreateSerializer,
    SubCategoryCreateSerializer,
    SubCategorySerializer,
    TransferRemainderSerializer,
)


@api_view(["GET", "POST"])
@permission_classes([permissions.IsAuthenticated])
def account_list_create(request):
    actor = Actor.from_user(request.user)
    service = AccountService()

    if request.method == "GET":
        accounts = service.list_accounts(actor, kind=request.query_params.get("kind"))
        return Response(AccountSerializer(accounts, many=True).data)

    serializer = AccountCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    account = service.create_account(actor, **serializer.validated_data)
    return Response(AccountSerializer(account).data, status=status.HTTP_201_CREATED)


@api_view(["GET", "PATCH", "PUT", "DELETE"])
@permission_classes([permissions.IsAuthenticated])
def account_detail(request, account_id):
    actor = Actor.from_user(request.user)
    service = AccountService()

    if request.method == "GET":
        return Response(AccountSerializer(service.get_account(actor, account_id)).data)

    if request.method == "DELETE":
        service.delete_account(actor, account_id)
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = AccountUpdateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    account = service.update_account(actor, account_id, serializer.validated_data["name"])
    return Response(AccountSerializer(account).data)


@api_view(["GET"])
@permission_classes([permissions.IsAuthenticated])
def account_movements(request, account_id):
    """GET /api/accounts/{id}/movements/?date_from=&date_to="""
    actor = Actor.from_user(request.user)
    movements = AccountService().account_movements(
        actor, account_id, request.query_params.get("date_from"), request.query_params.get("date_to")
    )
    return Response(movements)


@api_view(["GET", "POST"])
@permission_classes([permissions.IsAuthenticated])
def category_list_create(request):
    service = CategoryService()

    if request.method == "GET":
        categories = service.list_categories(
            kind=request.query_params.get("kind"), status=request.query_params.get("status")
        )
        return Response(CategorySerializer(categories, many=True).data)

    if not Actor.from_user(request.user).is_admin:
        raise PermissionDeniedError("Only administrators can create categories")
    serializer = CategoryCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    category = service.create_category(**serializer.validated_data)
    return Response(CategorySerializer(category).data, status=status.HTTP_201_CREATED)


@api_view(["GET", "POST"])
@permission_classes([permissions.IsAuthenticated])
def sub_category_list_create(request, category_id):
    service = CategoryService()

    if request.method == "GET":
        service.get_category(category_id)
        return Response(SubCategorySerializer(service.list_sub_categories(category_id), many=True).data)

    if not Actor.from_user(request.user).is_admin:
        raise PermissionDeniedError("Only administrators can create sub-categories")
    serializer = SubCategoryCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    sub_category = service.create_sub_category(category_id, serializer.validated_data["name"])
    return Response(SubCategorySerializer(sub_category).data, status=status.HTTP_201_CREATED)


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated])
def secretary_account_create(request):
    """POST /api/secretary-accounts/ creates the secretary user and their sub-account"""
    serializer = SecretaryAccountCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    user, account = SecretaryAccountService().create_secretary_account(
        Actor.from_user(request.user), **serializer.validated_data
    )
    return Response(
        {"user_id": user.pk, "username": user.username, "account": AccountSerializer(account).data},
        status=status.HTTP_201_CREATED,
    )


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated])
def secretary_account_fund(request, account_id):
    serializer = FundingSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    account = SecretaryAccountService().fund(
        Actor.from_user(request.user),
        account_id,
        data["amount"],
        source_account_id=data.get("source_account_id"),
        when=data.get("date"),
        description=data.get("description"),
    )
    return Response(AccountSerializer(account).data)


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated])
def secretary_transfer_remainder(request):
    serializer = TransferRemainderSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    amount = SecretaryAccountService().transfer_remainder(
        Actor.from_user(request.user),
        data["destination_account_id"],
        when=data.get("date"),
        description=data.get("description"),
    )
    return Response({"transferred": str(amount)})
