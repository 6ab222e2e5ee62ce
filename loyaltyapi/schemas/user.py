from pydantic import BaseModel, EmailStr, Field, field_validator
from datetime import datetime
from typing import Optional

from loyaltyapi.models.user import UserRole


class User(BaseModel):
    id: str
    email: EmailStr
    nickname: str
    referral_code: str
    referred_by_id: Optional[str] = None
    created_at: Optional[datetime] = None
    is_active: bool = True
    role: UserRole = UserRole.USER

    class Config:
        from_attributes = True

    @property
    def is_admin(self) -> bool:
        return UserRole.is_admin(self.role)


class UserCreate(BaseModel):
    email: EmailStr
    nickname: str = Field(..., min_length=2, max_length=50)
    referral_code: Optional[str] = Field(None, max_length=16, description="추천인 코드")

    @field_validator("nickname")
    @classmethod
    def nickname_must_not_be_empty(cls, v: str) -> str:
        if v.strip() == "":
            raise ValueError("Nickname cannot be empty")
        return v.strip()


class UserRegisterResponse(BaseModel):
    user: User
    access_token: str
    token_type: str = "bearer"
    signup_bonus: int = 0
