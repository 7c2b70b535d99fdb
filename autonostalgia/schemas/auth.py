from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class SignupRole(str, Enum):
    customer = "customer"
    assessor = "assessor"


class ContactMethod(str, Enum):
    email = "email"
    phone = "phone"
    sms = "sms"
    whatsapp = "whatsapp"


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    full_name: str = Field(min_length=1, max_length=255)
    phone: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    contact_method: Optional[ContactMethod] = None
    role: SignupRole = SignupRole.customer
    # assessor applications only
    experience: Optional[str] = None

    @field_validator("full_name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("full_name is required")
        return v


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class MeResponse(BaseModel):
    id: str
    email: EmailStr
    full_name: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    contact_method: Optional[str] = None
    role: str
    account_status: str
    permissions: List[str] = []
    features: List[str] = []


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    phone: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    contact_method: Optional[ContactMethod] = None


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(min_length=8)


class PasswordForgot(BaseModel):
    email: EmailStr


class PasswordReset(BaseModel):
    token: str
    new_password: str = Field(min_length=8)
