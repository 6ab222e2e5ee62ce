import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from sqlalchemy.orm import Session

from loyaltyapi.config import Settings
from loyaltyapi.core.exceptions import AuthenticationError
from loyaltyapi.repositories.user_repository import UserRepository
from loyaltyapi.schemas.auth import TokenData
from loyaltyapi.schemas.user import User as UserSchema

logger = logging.getLogger(__name__)


class AuthService:
    """JWT 발급/검증 서비스 (외부 인증 제공자가 발급한 사용자 ID를 토큰에 담는다)"""

    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.user_repo = UserRepository(db)

    def create_access_token(
        self, user: UserSchema, expires_delta: Optional[timedelta] = None
    ) -> str:
        """액세스 토큰 생성"""
        expire = datetime.now(timezone.utc) + (
            expires_delta
            or timedelta(minutes=self.settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        to_encode = {"sub": user.email, "user_id": user.id, "exp": expire}
        return jwt.encode(
            to_encode, self.settings.SECRET_KEY, algorithm=self.settings.JWT_ALGORITHM
        )

    def verify_token(self, token: str) -> Optional[TokenData]:
        """토큰 검증"""
        try:
            payload = jwt.decode(
                token, self.settings.SECRET_KEY, algorithms=[self.settings.JWT_ALGORITHM]
            )
        except JWTError as e:
            logger.warning(f"Token verification failed: {str(e)}")
            return None

        email_val = payload.get("sub")
        user_id_val = payload.get("user_id")
        if not isinstance(email_val, str) or not isinstance(user_id_val, str):
            return None
        return TokenData(email=email_val, user_id=user_id_val)

    def get_current_user(self, token: str) -> Optional[UserSchema]:
        """토큰으로 현재 사용자 조회"""
        token_data = self.verify_token(token)
        if not token_data or not token_data.user_id:
            return None

        user = self.user_repo.get_by_id(token_data.user_id)
        if user is None:
            raise AuthenticationError("User not found")
        return user
