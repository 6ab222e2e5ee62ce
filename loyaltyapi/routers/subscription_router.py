from typing import List

from fastapi import APIRouter, Depends, status

from loyaltyapi.core.auth_middleware import get_current_active_user
from loyaltyapi.deps import get_subscription_service
from loyaltyapi.schemas.subscription import (
    SubscriptionRedeemRequest,
    SubscriptionRedemptionResponse,
)
from loyaltyapi.schemas.user import User as UserSchema
from loyaltyapi.services.subscription_service import SubscriptionService

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.post(
    "/redeem",
    response_model=SubscriptionRedemptionResponse,
    status_code=status.HTTP_201_CREATED,
)
def redeem_subscription(
    request: SubscriptionRedeemRequest,
    current_user: UserSchema = Depends(get_current_active_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionRedemptionResponse:
    """
    포인트로 구독 상품 교환 요청

    HTTP Status:
        201: 요청 접수 (pending)
        400: 잔액 부족
    """
    return subscription_service.request_redemption(current_user.id, request)


@router.get("/redemptions", response_model=List[SubscriptionRedemptionResponse])
def list_my_redemptions(
    current_user: UserSchema = Depends(get_current_active_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> List[SubscriptionRedemptionResponse]:
    return subscription_service.list_my_redemptions(current_user.id)
