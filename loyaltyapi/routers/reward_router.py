"""
적립 API 라우터

- POST /rewards/check-in, GET /rewards/check-in/status: 일일 출석
- POST /rewards/ads/view, GET /rewards/ads/status: 광고 시청 보상
- POST /rewards/ads/daily-tasks/{task_key}: 특별 일일 광고 태스크
- GET /rewards/tasks, POST /rewards/tasks/{task_id}/complete: 태스크
- POST /rewards/promo/redeem: 프로모 코드 사용
"""

from typing import List

from fastapi import APIRouter, Depends, Path

from loyaltyapi.core.auth_middleware import get_current_active_user
from loyaltyapi.deps import get_check_in_service, get_promo_service, get_task_service
from loyaltyapi.schemas.rewards import (
    AdStatusResponse,
    AdViewRequest,
    AdViewResponse,
    CheckInResponse,
    CheckInStatusResponse,
    PromoCodeRedeemRequest,
    PromoCodeRedeemResponse,
    TaskCompletionResponse,
    TaskResponse,
)
from loyaltyapi.schemas.user import User as UserSchema
from loyaltyapi.services.check_in_service import CheckInService
from loyaltyapi.services.promo_service import PromoService
from loyaltyapi.services.task_service import TaskService

router = APIRouter(prefix="/rewards", tags=["rewards"])


@router.post("/check-in", response_model=CheckInResponse)
def check_in(
    current_user: UserSchema = Depends(get_current_active_user),
    check_in_service: CheckInService = Depends(get_check_in_service),
) -> CheckInResponse:
    """
    일일 출석 체크

    HTTP Status:
        200: 출석 완료
        409: 오늘 이미 출석
    """
    return check_in_service.check_in(current_user.id)


@router.get("/check-in/status", response_model=CheckInStatusResponse)
def get_check_in_status(
    current_user: UserSchema = Depends(get_current_active_user),
    check_in_service: CheckInService = Depends(get_check_in_service),
) -> CheckInStatusResponse:
    return check_in_service.get_check_in_status(current_user.id)


@router.post("/ads/view", response_model=AdViewResponse)
def view_ad(
    request: AdViewRequest,
    current_user: UserSchema = Depends(get_current_active_user),
    task_service: TaskService = Depends(get_task_service),
) -> AdViewResponse:
    """
    광고 시청 보상

    HTTP Status:
        200: 적립 완료
        409: 오늘 이미 시청한 광고
        429: 일일 시청 한도 초과
    """
    return task_service.record_ad_view(current_user.id, request.ad_id)


@router.get("/ads/status", response_model=AdStatusResponse)
def get_ad_status(
    current_user: UserSchema = Depends(get_current_active_user),
    task_service: TaskService = Depends(get_task_service),
) -> AdStatusResponse:
    return task_service.get_ad_status(current_user.id)


@router.post("/ads/daily-tasks/{task_key}", response_model=TaskCompletionResponse)
def complete_daily_ad_task(
    task_key: str = Path(..., min_length=1, max_length=100),
    current_user: UserSchema = Depends(get_current_active_user),
    task_service: TaskService = Depends(get_task_service),
) -> TaskCompletionResponse:
    return task_service.complete_daily_ad_task(current_user.id, task_key)


@router.get("/tasks", response_model=List[TaskResponse])
def list_tasks(
    current_user: UserSchema = Depends(get_current_active_user),
    task_service: TaskService = Depends(get_task_service),
) -> List[TaskResponse]:
    return task_service.list_tasks()


@router.post("/tasks/{task_id}/complete", response_model=TaskCompletionResponse)
def complete_task(
    task_id: int = Path(..., ge=1),
    current_user: UserSchema = Depends(get_current_active_user),
    task_service: TaskService = Depends(get_task_service),
) -> TaskCompletionResponse:
    return task_service.complete_task(current_user.id, task_id)


@router.post("/promo/redeem", response_model=PromoCodeRedeemResponse)
def redeem_promo_code(
    request: PromoCodeRedeemRequest,
    current_user: UserSchema = Depends(get_current_active_user),
    promo_service: PromoService = Depends(get_promo_service),
) -> PromoCodeRedeemResponse:
    """
    프로모 코드 사용

    HTTP Status:
        200: 적립 완료
        400: 없는 코드, 만료, 사용 한도 소진
        409: 이미 사용한 코드
    """
    return promo_service.redeem_promo_code(current_user.id, request.code)
