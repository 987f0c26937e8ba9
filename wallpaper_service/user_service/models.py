from datetime import datetime
from typing import Any, Dict
from pydantic import Field, field_validator
from uuid import uuid4

from wallpaper_service.image_service.models import CamelModel

def new_user_id() -> str:
    """Generates a new unique user ID."""
    return str(uuid4())

class RegisterRequest(CamelModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    @field_validator("name", "email")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

class LoginRequest(CamelModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

class ProfileUpdate(CamelModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)

    @field_validator("name", "email")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

class UserPublic(CamelModel):
    """Account as exposed over the API. The password hash never leaves the service."""
    user_id: str = Field(alias="id")
    name: str
    email: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "UserPublic":
        return cls.model_validate({k: v for k, v in item.items() if k != "password_hash"})

class AuthResponse(CamelModel):
    message: str
    token: str
    user: UserPublic

class MessageResponse(CamelModel):
    message: str
