"""Schemas for authentication endpoints."""

from pydantic import BaseModel, Field, constr

from app.schemas.users import UserRead


class SignupRequest(BaseModel):
    """Payload for creating a new account."""

    username: constr(strip_whitespace=True, min_length=3, max_length=20) = Field(
        ..., description="Unique username consisting of 3-20 characters"
    )
    password: constr(min_length=6, max_length=128) = Field(
        ..., description="Plain text password that will be hashed before storing"
    )


class LoginRequest(BaseModel):
    """Payload for user login."""

    username: constr(strip_whitespace=True, min_length=1, max_length=20) = Field(..., description="Username")
    password: constr(min_length=1, max_length=128) = Field(..., description="User password")


class AuthResponse(BaseModel):
    """Identity token returned after signup or login."""

    access_token: str = Field(..., description="Signed JWT identity claim")
    token_type: str = Field(default="bearer", description="Token type, always 'bearer'")
    user: UserRead
