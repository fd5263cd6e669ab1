"""Error taxonomy shared by every handler.

Services raise these; ``register_error_handlers`` renders them through the
``fail()`` envelope so each response carries a terse message and a stable code.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status as http
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from membership.config import get_settings
from membership.schemas.common import fail

MSG_INVALID_INPUT = "入力が不正です"


class MembershipError(Exception):
    status_code: int = http.HTTP_400_BAD_REQUEST
    code: str = "ERROR"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        clear_session: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.clear_session = clear_session
        self.details = details


class ValidationError(MembershipError):
    status_code = http.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class ExpiredError(MembershipError):
    status_code = http.HTTP_400_BAD_REQUEST
    code = "EXPIRED"


class AuthError(MembershipError):
    status_code = http.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"


class ForbiddenError(MembershipError):
    status_code = http.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class NotFoundError(MembershipError):
    status_code = http.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class ConflictError(MembershipError):
    status_code = http.HTTP_409_CONFLICT
    code = "CONFLICT"


def membership_error_handler(request: Request, exc: MembershipError) -> JSONResponse:
    response = fail(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
    )
    if exc.clear_session:
        # Imported lazily: core.security depends on this module.
        from membership.core.security import clear_session_cookie

        clear_session_cookie(response)
    return response


def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = None
    if get_settings().DEBUG_ERRORS:
        details = {"errors": exc.errors()}
    return fail(
        code=ValidationError.code,
        message=MSG_INVALID_INPUT,
        status_code=http.HTTP_400_BAD_REQUEST,
        details=details,
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MembershipError, membership_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
