import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from backend.ledger.repos import LedgerError

logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "permission_denied": status.HTTP_403_FORBIDDEN,
    "not_found": status.HTTP_404_NOT_FOUND,
    "conflict": status.HTTP_409_CONFLICT,
    "failed_precondition": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def ledger_exception_handler(exc, context):
    """Map ledger errors to ``{"error": {"code", "message"}}``; anything else goes to DRF."""
    if isinstance(exc, LedgerError):
        http_status = STATUS_BY_CODE.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        view = context.get("view")
        level = logging.ERROR if http_status >= 500 else logging.INFO
        logger.log(level, "%s in %s: %s", exc.code, view.__class__.__name__ if view else "?", exc.message)
        return Response({"error": {"code": exc.code, "message": exc.message}}, status=http_status)
    return exception_handler(exc, context)
