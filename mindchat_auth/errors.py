"""Error taxonomy for the auth API.

Each subclass maps to one HTTP status. The `message` is what the client sees,
so it must never carry upstream details (those go to the log instead).
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse

from mindchat_auth.security.headers import security_headers
from mindchat_auth.util.time import utcnow_iso


def error_response(
    status_code: int,
    error: str,
    message: str,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    body: Dict[str, Any] = {
        "error": error,
        "message": message,
        "statusCode": int(status_code),
        "timestamp": utcnow_iso(),
    }
    return JSONResponse(
        content=body,
        status_code=int(status_code),
        headers={**security_headers(), **(headers or {})},
    )


def success_response(data: Any, status_code: int = 200, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(
        content=data,
        status_code=int(status_code),
        headers={**security_headers(), **(headers or {})},
    )


class AuthError(Exception):
    status_code: int = 500
    error: str = "Internal Server Error"

    def __init__(self, message: str, *, headers: Optional[Dict[str, str]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.headers = dict(headers or {})

    def to_response(self) -> JSONResponse:
        return error_response(self.status_code, self.error, self.message, self.headers)


class ValidationFailed(AuthError):
    status_code = 400
    error = "Bad Request"


class AuthenticationFailed(AuthError):
    status_code = 401
    error = "Unauthorized"


class AuthorizationDenied(AuthError):
    status_code = 403
    error = "Forbidden: Access denied"


class RateLimited(AuthError):
    status_code = 429
    error = "Too Many Requests"


class UpstreamFailure(AuthError):
    status_code = 500


class UnexpectedFailure(AuthError):
    status_code = 500
