"""Purpose-tagged payloads carried with an OTP record.

A signup code carries the profile fields needed to create the user once
the code is verified; a signin code carries nothing.  The two shapes are
a discriminated union keyed by ``purpose``.
"""

from __future__ import annotations

from datetime import date
from enum import StrEnum
from typing import Annotated, Any, Literal

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from otp_auth.exceptions import InputValidationError

MIN_AGE = 13
MAX_AGE = 120
MAX_NAME_LENGTH = 100


class Purpose(StrEnum):
    SIGNUP = "signup"
    SIGNIN = "signin"


class SignupPayload(BaseModel):
    """Pending profile for a user who does not exist yet."""

    model_config = ConfigDict(frozen=True)

    purpose: Literal["signup"] = "signup"
    full_name: str
    date_of_birth: date

    @field_validator("full_name")
    @classmethod
    def full_name_valid(cls, v: str) -> str:
        v = " ".join(v.split())
        if not v:
            raise ValueError("Full name is required")
        if len(v) > MAX_NAME_LENGTH:
            raise ValueError(f"Full name must be at most {MAX_NAME_LENGTH} characters")
        return v

    @field_validator("date_of_birth")
    @classmethod
    def age_valid(cls, v: date) -> date:
        today = date.today()
        age = today.year - v.year - ((today.month, today.day) < (v.month, v.day))
        if age < MIN_AGE or age > MAX_AGE:
            raise ValueError(f"Age must be between {MIN_AGE} and {MAX_AGE} years")
        return v


class SigninPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    purpose: Literal["signin"] = "signin"


OTPPayload = Annotated[SignupPayload | SigninPayload, Field(discriminator="purpose")]

_payload_adapter: TypeAdapter[SignupPayload | SigninPayload] = TypeAdapter(OTPPayload)


def build_payload(
    purpose: Purpose | str, data: dict[str, Any] | None = None
) -> SignupPayload | SigninPayload:
    """Validate raw request data into the payload variant for *purpose*."""
    try:
        purpose = Purpose(purpose)
    except ValueError:
        raise InputValidationError(f"Unknown purpose: {purpose!r}") from None

    fields = dict(data or {}) if purpose is Purpose.SIGNUP else {}
    fields["purpose"] = purpose.value
    try:
        return _payload_adapter.validate_python(fields)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        message = first.get("msg", "Invalid payload").removeprefix("Value error, ")
        raise InputValidationError(message) from exc


def normalize_email(email: str) -> str:
    """Validate *email* syntactically and return its lowercase form."""
    try:
        info = validate_email((email or "").strip(), check_deliverability=False)
    except EmailNotValidError as exc:
        raise InputValidationError("Please provide a valid email address") from exc
    return info.normalized.lower()
