"""Error taxonomy for the ranking core.

Every error is a DRF ``APIException`` so the API layer maps the kind to a
status code without extra plumbing.
"""
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler


class RankingError(APIException):
    kind = "Internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Ranking error."

    def __init__(self, detail=None):
        super().__init__(detail=detail)
        self.message = str(self.detail)

    def __str__(self) -> str:
        return self.message


class NotFound(RankingError):
    kind = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Resource not found."


class Conflict(RankingError):
    kind = "Conflict"
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict with existing data."


class BadRequest(RankingError):
    kind = "BadRequest"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request."


class Internal(RankingError):
    kind = "Internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal ranking error."


def ranking_exception_handler(exc, context):
    """DRF exception handler that adds the error kind to the body."""
    response = exception_handler(exc, context)
    if response is not None and isinstance(exc, RankingError):
        response.data = {"detail": exc.message, "kind": exc.kind}
    return response
