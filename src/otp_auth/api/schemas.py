"""Request and response bodies for the auth endpoints.

Field names are camelCase on the wire (``fullName``, ``dateOfBirth``) to
match the web client; snake_case is accepted too.  Emails arrive as plain
strings; the auth core validates and normalises them.
"""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SignupOTPRequest(CamelModel):
    email: str
    full_name: str
    date_of_birth: str


class SigninOTPRequest(CamelModel):
    email: str


class VerifyOTPRequest(CamelModel):
    email: str
    otp: str


class MessageResponse(CamelModel):
    message: str


class OTPSentResponse(CamelModel):
    message: str
    email: str
    expires_in_minutes: int


class UserResponse(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    id: int
    email: str
    full_name: str
    date_of_birth: date
    created_at: datetime


class AuthResponse(CamelModel):
    message: str
    token: str
    expires_at: datetime
    user: UserResponse


class ProfileResponse(CamelModel):
    user: UserResponse
