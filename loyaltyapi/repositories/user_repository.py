from typing import Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from loyaltyapi.models.user import User as UserModel
from loyaltyapi.schemas.user import User as UserSchema
from loyaltyapi.repositories.base import BaseRepository


class UserRepository(BaseRepository[UserModel, UserSchema]):
    """사용자 리포지토리"""

    def __init__(self, db: Session):
        super().__init__(UserModel, UserSchema, db)

    def get_by_email(self, email: str) -> Optional[UserSchema]:
        """이메일로 사용자 조회"""
        return self.get_by_field("email", email)

    def get_model_by_referral_code(self, code: str) -> Optional[UserModel]:
        """추천 코드로 사용자 조회 (대소문자 무시)"""
        return (
            self.db.query(self.model_class)
            .filter(func.upper(self.model_class.referral_code) == code.strip().upper())
            .first()
        )

    def referral_code_exists(self, code: str) -> bool:
        return self.exists({"referral_code": code})

    def get_referrer_id(self, user_id: str) -> Optional[str]:
        """직속 추천인 ID"""
        row = (
            self.db.query(self.model_class.referred_by_id)
            .filter(self.model_class.id == user_id)
            .first()
        )
        return row[0] if row else None

    def create_user(
        self,
        user_id: str,
        email: str,
        nickname: str,
        referral_code: str,
        referred_by_id: Optional[str] = None,
        role: str = "user",
    ) -> UserModel:
        """사용자 생성 후 flush"""
        return self.create(
            id=user_id,
            email=email,
            nickname=nickname,
            referral_code=referral_code,
            referred_by_id=referred_by_id,
            role=role,
            is_active=True,
        )
