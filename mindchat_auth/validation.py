"""Credential validation.

Two stages:

1. Structural (`parse_request_body` + `validate_structure`): the body parses
   and email/password are strings. The email is trimmed and NFC-normalized;
   the password is never touched.
2. Semantic (`validate_semantics`): pydantic models enforce email shape and
   length plus password complexity. The first violated rule is reported.
"""

from __future__ import annotations

import json
import re
import unicodedata
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional
from urllib.parse import parse_qs

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

from mindchat_auth.errors import ValidationFailed
from mindchat_auth.log_codes import ValidationEvent
from mindchat_auth.security.request_checks import JSON_CONTENT_TYPE


EMAIL_MAX_LENGTH = 254
PASSWORD_MIN_LENGTH = 8

# local@domain.tld with no whitespace; the identity backend does the
# authoritative check.
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_SPECIAL_RE = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")


class CredentialKind(str, Enum):
    REGISTRATION = "registration"
    LOGIN = "login"


class CredentialError(ValueError):
    """A single violated rule, tagged with its log code."""

    def __init__(self, message: str, code: int) -> None:
        super().__init__(message)
        self.code = int(code)


@dataclass(frozen=True)
class RawFields:
    email: str
    password: str
    confirm_password: Optional[str] = None


@dataclass(frozen=True)
class Credentials:
    email: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(email={self.email!r}, password='***')"


def sanitize_input(value: str) -> str:
    return unicodedata.normalize("NFC", value.strip())


# -----------------------------
# Structural stage
# -----------------------------


def parse_request_body(content_type: str, body: bytes) -> Dict[str, Any]:
    """Decode a JSON or form-encoded body into a plain dict."""
    try:
        text = body.decode("utf-8")
        if JSON_CONTENT_TYPE in (content_type or "").lower():
            data = json.loads(text) if text.strip() else {}
            if not isinstance(data, dict):
                raise ValueError("expected a JSON object")
            return data
        parsed = parse_qs(text, keep_blank_values=True)
        return {k: v[0] for k, v in parsed.items() if v}
    except (UnicodeDecodeError, ValueError) as e:
        raise ValidationFailed("Invalid form data: malformed request body") from e


def validate_structure(raw: Dict[str, Any]) -> RawFields:
    email = raw.get("email")
    password = raw.get("password")
    if not isinstance(email, str) or not isinstance(password, str):
        raise ValidationFailed("Invalid form data: Email and password must be provided as strings")

    confirm = raw.get("confirmPassword")
    return RawFields(
        email=sanitize_input(email),
        password=password,  # do not trim or alter passwords
        confirm_password=confirm if isinstance(confirm, str) and confirm else None,
    )


# -----------------------------
# Semantic stage
# -----------------------------


def _check_email(v: str) -> str:
    if not _EMAIL_RE.match(v):
        raise CredentialError("Please provide a valid email address", ValidationEvent.EMAIL_INVALID)
    if len(v) > EMAIL_MAX_LENGTH:
        raise CredentialError("Email address is too long", ValidationEvent.EMAIL_TOO_LONG)
    return v.lower()


def _check_password_strength(v: str) -> str:
    if len(v) < PASSWORD_MIN_LENGTH:
        raise CredentialError(
            f"Password must be at least {PASSWORD_MIN_LENGTH} characters long",
            ValidationEvent.PASSWORD_TOO_SHORT,
        )
    if not re.search(r"[a-z]", v):
        raise CredentialError(
            "Password must contain at least one lowercase letter", ValidationEvent.PASSWORD_NO_LOWERCASE
        )
    if not re.search(r"[A-Z]", v):
        raise CredentialError(
            "Password must contain at least one uppercase letter", ValidationEvent.PASSWORD_NO_UPPERCASE
        )
    if not re.search(r"\d", v):
        raise CredentialError("Password must contain at least one number", ValidationEvent.PASSWORD_NO_NUMBER)
    if not _SPECIAL_RE.search(v):
        raise CredentialError(
            "Password must contain at least one special character", ValidationEvent.PASSWORD_NO_SPECIAL
        )
    return v


class SignInInput(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: str
    password: str

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return _check_email(v)

    @field_validator("password")
    @classmethod
    def _password(cls, v: str) -> str:
        if not v:
            raise CredentialError("Password is required", ValidationEvent.REQUIRED_FIELD_MISSING)
        return v


class RegisterInput(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    email: str
    password: str
    confirm_password: Optional[str] = Field(default=None, alias="confirmPassword")

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return _check_email(v)

    @field_validator("password")
    @classmethod
    def _password(cls, v: str) -> str:
        return _check_password_strength(v)

    @field_validator("confirm_password")
    @classmethod
    def _confirm(cls, v: Optional[str], info: ValidationInfo) -> Optional[str]:
        # Only compared when supplied and the password itself passed.
        if v is not None and "password" in info.data and v != info.data["password"]:
            raise CredentialError("Passwords don't match", ValidationEvent.FORM_DATA_INVALID)
        return v


_SEMANTIC_LABEL = {
    CredentialKind.REGISTRATION: "Invalid registration data",
    CredentialKind.LOGIN: "Invalid login data",
}


class SemanticValidationFailed(ValidationFailed):
    def __init__(self, message: str, *, field: str, code: int) -> None:
        super().__init__(message)
        self.field = field
        self.code = code


def validate_semantics(kind: CredentialKind, fields: RawFields) -> Credentials:
    kind = CredentialKind(kind)
    try:
        if kind is CredentialKind.REGISTRATION:
            model: BaseModel = RegisterInput(
                email=fields.email,
                password=fields.password,
                confirmPassword=fields.confirm_password,
            )
        else:
            model = SignInInput(email=fields.email, password=fields.password)
    except ValidationError as e:
        first = e.errors(include_url=False)[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or "input"
        cause = (first.get("ctx") or {}).get("error")
        if isinstance(cause, CredentialError):
            message, code = str(cause), cause.code
        else:
            message, code = str(first.get("msg", "Invalid value")), int(ValidationEvent.FORM_DATA_INVALID)
        raise SemanticValidationFailed(
            f"{_SEMANTIC_LABEL[kind]}: {message} ({field})", field=field, code=code
        ) from None  # the pydantic error echoes input values

    return Credentials(email=model.email, password=model.password)  # type: ignore[attr-defined]
