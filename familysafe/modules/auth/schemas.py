from pydantic import BaseModel, EmailStr, model_validator
from typing import Literal, Optional

Role = Literal["parent", "child"]
OAuthProvider = Literal["google", "line"]

MIN_PASSWORD_LENGTH = 6


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    email: str


class RegisterRequest(BaseModel):
    name: str
    email: EmailStr
    password: str
    confirm_password: str
    role: Role = "parent"
    phone: Optional[str] = None

    @model_validator(mode="after")
    def check_form(self):
        if not self.name.strip():
            raise ValueError("Name is required")
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        if len(self.password) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        return self


class RegisterResponse(BaseModel):
    user_id: str
    email: str
    role: Role
    message: str


class OAuthRequest(BaseModel):
    provider: OAuthProvider
    redirect_to: Optional[str] = None


class OAuthResponse(BaseModel):
    provider: OAuthProvider
    url: str


class CompleteProfileRequest(BaseModel):
    name: str
    role: Role = "parent"
    phone: Optional[str] = None
