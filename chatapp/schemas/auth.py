"""Authentication and user schemas."""
from typing import List

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema serialized with camelCase keys, as the web client expects."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class UserPublic(CamelModel):
    """Public projection of a user (never carries the password hash)."""
    id: str
    username: str
    email: str
    profile_pic: str = ""


class RegisterRequest(BaseModel):
    """Registration request body."""
    username: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    """Login request body."""
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class AuthResponse(BaseModel):
    """Response containing the signed credential and the user."""
    success: bool = True
    token: str
    user: UserPublic


class UserResponse(BaseModel):
    success: bool = True
    user: UserPublic


class UserListResponse(BaseModel):
    success: bool = True
    users: List[UserPublic]
