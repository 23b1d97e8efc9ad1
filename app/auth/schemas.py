import re
from pydantic import BaseModel, SecretStr, field_validator
from typing import List

from app.profiles.schemas import User
from app.sessions.schemas import Session


"""
auth/register
"""


class UserRegistrationModel(BaseModel):
    email: str
    full_name: str
    password: SecretStr

    @field_validator("email")
    @classmethod
    def validate_email(cls, email: str) -> str:
        if not re.match(r"^[^@\s]+@[^@\s]+\.[^@\s]+$", email.strip()):
            raise ValueError("Please enter a valid email address.")
        return email.strip().lower()

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, full_name: str) -> str:
        if not full_name.strip():
            raise ValueError("Please enter your name.")
        return " ".join(full_name.split())

    @field_validator("password")
    @classmethod
    def validate_password(cls, password: SecretStr) -> SecretStr:
        # Minimum length of 6 characters, the auth service's own floor
        if len(password.get_secret_value()) < 6:
            raise ValueError("Password must be at least 6 characters long.")
        return password


class UserRegistrationResponseModel(BaseModel):
    id: str
    email: str
    full_name: str
    profile_complete: bool


"""
auth/login
"""


class UserLoginModel(BaseModel):
    email: str
    password: SecretStr


class UserLoginResponseModel(BaseModel):
    access_token: str
    expires_in: int
    user_id: str
    email: str
    profile_complete: bool


"""
auth/access
"""


class AccessTokenResponseModel(BaseModel):
    access_token: str


"""
auth/me
"""


class MeResponseModel(BaseModel):
    profile: User
    profile_complete: bool
    hosted_sessions: List[Session]
    joined_sessions: List[Session]
