"""
사용자 API 라우터

- POST /users/register: 가입 (추천 코드 선택) + 가입 보너스 + 액세스 토큰 발급
- GET /users/me: 내 정보
- GET /users/me/referrals: 내 추천 현황
"""

from fastapi import APIRouter, Depends, status

from loyaltyapi.core.auth_middleware import get_current_active_user
from loyaltyapi.deps import get_auth_service, get_referral_service, get_user_service
from loyaltyapi.schemas.referral import ReferralStatsResponse
from loyaltyapi.schemas.user import User as UserSchema
from loyaltyapi.schemas.user import UserCreate, UserRegisterResponse
from loyaltyapi.services.auth_service import AuthService
from loyaltyapi.services.referral_service import ReferralService
from loyaltyapi.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.post(
    "/register", response_model=UserRegisterResponse, status_code=status.HTTP_201_CREATED
)
def register(
    request: UserCreate,
    user_service: UserService = Depends(get_user_service),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserRegisterResponse:
    """
    회원 가입

    HTTP Status:
        201: 가입 성공
        400: 잘못된 추천 코드
        409: 이미 가입된 이메일
    """
    user, bonus = user_service.register_user(request)
    return UserRegisterResponse(
        user=user,
        access_token=auth_service.create_access_token(user),
        signup_bonus=bonus,
    )


@router.get("/me", response_model=UserSchema)
def get_me(current_user: UserSchema = Depends(get_current_active_user)) -> UserSchema:
    return current_user


@router.get("/me/referrals", response_model=ReferralStatsResponse)
def get_my_referral_stats(
    current_user: UserSchema = Depends(get_current_active_user),
    referral_service: ReferralService = Depends(get_referral_service),
) -> ReferralStatsResponse:
    """내 추천 코드와 레벨별 추천 수, 보너스/수수료 합계"""
    return referral_service.get_referral_stats(current_user.id)
