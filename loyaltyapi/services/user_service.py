import logging
import secrets
import string
import uuid
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from loyaltyapi.config import Settings
from loyaltyapi.core.exceptions import ConflictError, NotFoundError, ValidationError
from loyaltyapi.models.points import PointsCause, TransactionKind
from loyaltyapi.models.user import User
from loyaltyapi.repositories.user_repository import UserRepository
from loyaltyapi.schemas.user import User as UserSchema, UserCreate
from loyaltyapi.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)

REFERRAL_CODE_ALPHABET = string.ascii_uppercase + string.digits
REFERRAL_CODE_LENGTH = 8


class UserService:
    """사용자 가입 및 조회 서비스"""

    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.user_repo = UserRepository(db)
        self.ledger = LedgerService(db, settings=settings)

    def _generate_referral_code(self) -> str:
        """충돌하지 않는 추천 코드 생성"""
        max_retries = 5
        for attempt in range(max_retries):
            code = "".join(
                secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(REFERRAL_CODE_LENGTH)
            )
            if not self.user_repo.referral_code_exists(code):
                return code
            logger.warning(f"Referral code collision on attempt {attempt + 1}, retrying...")
        raise ValidationError("Failed to generate referral code")

    def register_user(
        self, request: UserCreate, user_id: Optional[str] = None
    ) -> Tuple[UserSchema, int]:
        """
        사용자 가입

        1. 추천 코드가 있으면 추천인 확인
        2. 사용자 생성 + 레벨 1~3 추천 관계(pending) 생성
        3. 가입 보너스 적립

        Args:
            request: 가입 요청
            user_id: 외부 인증 제공자의 사용자 ID (없으면 UUID 생성)

        Returns:
            (생성된 사용자, 지급된 가입 보너스)
        """
        new_user_id = user_id or str(uuid.uuid4())
        signup_bonus = self.settings.SIGNUP_BONUS_POINTS

        def _register() -> User:
            if self.user_repo.get_by_email(request.email) is not None:
                raise ConflictError("Email already registered")

            referrer = None
            if request.referral_code:
                referrer = self.user_repo.get_model_by_referral_code(request.referral_code)
                if referrer is None:
                    raise ValidationError(
                        "Invalid referral code",
                        details={"referral_code": request.referral_code},
                    )

            user = self.user_repo.create_user(
                user_id=new_user_id,
                email=request.email,
                nickname=request.nickname,
                referral_code=self._generate_referral_code(),
                referred_by_id=referrer.id if referrer else None,
            )
            if referrer is not None:
                self.ledger.referral_service.attribute_signup(user, referrer)

            self.ledger.points_repo.get_or_create_balance(user.id)
            if signup_bonus > 0:
                self.ledger.append_transaction(
                    user_id=user.id,
                    kind=TransactionKind.EARN,
                    amount=signup_bonus,
                    cause=PointsCause.SIGNUP,
                    description="Welcome bonus",
                    ref_id=f"signup:{user.id}",
                )
            return user

        user = self.ledger.run_atomic(_register, label="register_user")
        logger.info(
            f"Registered user {user.id} (referred_by={user.referred_by_id}, bonus={signup_bonus})"
        )
        return UserSchema.model_validate(user), max(signup_bonus, 0)

    def get_user(self, user_id: str) -> UserSchema:
        user = self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user
