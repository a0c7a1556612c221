"""Numeric event codes for auth logging.

Codes are grouped by thousands so a log pipeline can filter by category:

    1xxx auth events, 2xxx validation, 3xxx security, 4xxx identity backend,
    5xxx system, 6xxx request, 7xxx billing
"""

from __future__ import annotations

import logging
from enum import IntEnum


class AuthEvent(IntEnum):
    REGISTRATION_SUCCESS = 1001
    LOGIN_SUCCESS = 1002
    LOGOUT_SUCCESS = 1003
    EMAIL_VERIFICATION_SENT = 1004
    EMAIL_VERIFIED = 1005
    PASSWORD_RESET_REQUESTED = 1006
    PASSWORD_RESET_SUCCESS = 1007
    SESSION_REFRESHED = 1008

    REGISTRATION_FAILED = 1101
    LOGIN_FAILED = 1102
    LOGOUT_FAILED = 1103
    EMAIL_VERIFICATION_FAILED = 1104
    PASSWORD_RESET_FAILED = 1105
    SESSION_REFRESH_FAILED = 1106
    INVALID_SESSION = 1107


class ValidationEvent(IntEnum):
    EMAIL_INVALID = 2001
    PASSWORD_TOO_SHORT = 2002
    PASSWORD_NO_UPPERCASE = 2003
    PASSWORD_NO_LOWERCASE = 2004
    PASSWORD_NO_NUMBER = 2005
    PASSWORD_NO_SPECIAL = 2006
    REQUIRED_FIELD_MISSING = 2007
    EMAIL_TOO_LONG = 2008
    FORM_DATA_INVALID = 2009
    INPUT_SANITIZATION_FAILED = 2010


class SecurityEvent(IntEnum):
    RATE_LIMIT_EXCEEDED = 3001
    INVALID_USER_AGENT = 3002
    REQUEST_TOO_LARGE = 3003
    INVALID_CONTENT_TYPE = 3004
    SUSPICIOUS_ACTIVITY = 3005
    BRUTE_FORCE_ATTEMPT = 3006
    IP_BLOCKED = 3007
    CSRF_DETECTED = 3008
    INVALID_ORIGIN = 3009
    MALFORMED_REQUEST = 3010


class IdentityEvent(IntEnum):
    CONNECTION_FAILED = 4001
    USER_NOT_FOUND = 4002
    USER_ALREADY_EXISTS = 4003
    EMAIL_NOT_CONFIRMED = 4004
    INVALID_CREDENTIALS = 4005
    SESSION_EXPIRED = 4006
    DATABASE_ERROR = 4007
    AUTH_ERROR = 4008
    SIGNUP_DISABLED = 4009
    WEAK_PASSWORD = 4010
    UNKNOWN_ROLE = 4011


class SystemEvent(IntEnum):
    ENVIRONMENT_VALIDATION_FAILED = 5001
    INTERNAL_SERVER_ERROR = 5002
    SERVICE_UNAVAILABLE = 5003
    TIMEOUT = 5004
    CONFIGURATION_ERROR = 5005
    MEMORY_LIMIT_EXCEEDED = 5006
    DEPENDENCY_FAILURE = 5007


class RequestEvent(IntEnum):
    MALFORMED = 6001
    MISSING_HEADERS = 6002
    INVALID_METHOD = 6003
    SERIALIZATION_FAILED = 6004
    DESERIALIZATION_FAILED = 6005
    CONTENT_TYPE_MISMATCH = 6006


class BillingEvent(IntEnum):
    CLIENT_INITIALIZED = 7001
    CHECKOUT_SESSION_CREATED = 7002
    CHECKOUT_SESSION_FAILED = 7003
    PORTAL_SESSION_CREATED = 7004
    PORTAL_SESSION_FAILED = 7005
    CUSTOMER_CREATION_ERROR = 7006
    PROFILE_RETRIEVAL_FAILED = 7007
    DATABASE_UPDATE_FAILED = 7008
    WEBHOOK_VALIDATED = 7009
    WEBHOOK_VERIFICATION_FAILED = 7010


_CATEGORIES = (
    (1000, "auth"),
    (2000, "validation"),
    (3000, "security"),
    (4000, "supabase"),
    (5000, "system"),
    (6000, "request"),
    (7000, "billing"),
)

_CRITICAL = {
    SystemEvent.INTERNAL_SERVER_ERROR,
    SystemEvent.SERVICE_UNAVAILABLE,
    SystemEvent.MEMORY_LIMIT_EXCEEDED,
    IdentityEvent.CONNECTION_FAILED,
}

_FAILURES = {
    AuthEvent.REGISTRATION_FAILED,
    AuthEvent.LOGIN_FAILED,
    AuthEvent.EMAIL_VERIFICATION_FAILED,
    AuthEvent.PASSWORD_RESET_FAILED,
    BillingEvent.CHECKOUT_SESSION_FAILED,
    BillingEvent.PORTAL_SESSION_FAILED,
    BillingEvent.CUSTOMER_CREATION_ERROR,
    BillingEvent.PROFILE_RETRIEVAL_FAILED,
    BillingEvent.DATABASE_UPDATE_FAILED,
    BillingEvent.WEBHOOK_VERIFICATION_FAILED,
}


def event_category(code: int) -> str:
    """Map a code to its category name (falls back to "system")."""
    for base, name in _CATEGORIES:
        if base <= int(code) < base + 1000:
            return name
    return "system"


def event_level(code: int) -> int:
    """Map a code to a stdlib logging level."""
    code = int(code)
    if code in _CRITICAL:
        return logging.CRITICAL
    if 3000 <= code < 4000:
        return logging.ERROR
    if code in _FAILURES:
        return logging.ERROR
    if 2000 <= code < 3000 or 4000 <= code < 5000:
        return logging.WARNING
    if 5000 <= code < 6000:
        return logging.ERROR
    return logging.INFO
