"""Error taxonomy for the Beer Mile API."""

from __future__ import annotations

import logging

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class BeerMileError(exceptions.APIException):
    """Base class. ``code`` is the machine-readable error kind."""

    code = "INTERNAL_SERVER_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "An unexpected error occurred."

    def __init__(self, detail=None, details: dict | None = None):
        super().__init__(detail or self.default_detail, self.code)
        self.details = details


class AuthenticationRequired(BeerMileError):
    code = "AUTHENTICATION_REQUIRED"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "You must be logged in."


class AuthorizationError(BeerMileError):
    code = "AUTHORIZATION_ERROR"
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You do not have permission to perform this action."


class ValidationError(BeerMileError):
    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input."


class ResourceNotFound(BeerMileError):
    code = "RESOURCE_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."


class Conflict(BeerMileError):
    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The request conflicts with the current state."


_DRF_EQUIVALENTS = (
    (exceptions.NotAuthenticated, AuthenticationRequired),
    (exceptions.AuthenticationFailed, AuthenticationRequired),
    (exceptions.PermissionDenied, AuthorizationError),
    (exceptions.NotFound, ResourceNotFound),
    (exceptions.ValidationError, ValidationError),
    (exceptions.ParseError, ValidationError),
)


def _translate(exc: Exception) -> BeerMileError | None:
    if isinstance(exc, BeerMileError):
        return exc
    if isinstance(exc, Http404):
        return ResourceNotFound()
    if isinstance(exc, DjangoPermissionDenied):
        return AuthorizationError()
    for drf_class, ours in _DRF_EQUIVALENTS:
        if isinstance(exc, drf_class):
            if isinstance(exc, exceptions.ValidationError):
                return ours("Invalid input.", details=exc.detail)
            return ours(str(exc.detail))
    return None


def api_exception_handler(exc, context):
    """Render errors as ``{"error": {"code", "message", "status_code"}}``."""

    error = _translate(exc)
    if error is None:
        return exception_handler(exc, context)

    body = {
        "code": error.code,
        "message": str(error.detail),
        "status_code": error.status_code,
    }
    if error.details:
        body["details"] = error.details
    if error.status_code >= 500:
        logger.error("%s: %s", error.code, error.detail)
    response = Response({"error": body}, status=error.status_code)
    if isinstance(error, AuthenticationRequired):
        response["WWW-Authenticate"] = 'Basic realm="api"'
    return response
