"""
관리자 API 라우터

포인트:
- POST /admin/points/adjust: 포인트 조정 (양수 적립, 음수 차감)
- GET /admin/points/{user_id}/balance | /transactions | /audit-log

감사/복구:
- GET /admin/audit/users/{user_id}, GET /admin/audit/users: 정합성 감사 (읽기 전용)
- POST /admin/repair/users/{user_id}, POST /admin/repair/users: 올리기만 하는 복구

운영:
- /admin/promo-codes: 프로모 코드 생성/목록/비활성화
- /admin/tasks: 태스크 등록
- /admin/redemptions: 구독 교환 요청 처리

모든 엔드포인트는 관리자 권한이 필요합니다.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status

from loyaltyapi.core.auth_middleware import require_admin
from loyaltyapi.deps import (
    get_audit_service,
    get_ledger_service,
    get_promo_service,
    get_repair_service,
    get_subscription_service,
    get_task_service,
)
from loyaltyapi.schemas.audit import (
    AuditAllResponse,
    PointsIssueReport,
    RepairAllResponse,
    RepairUserResponse,
)
from loyaltyapi.schemas.points import (
    AdminPointsAdjustmentRequest,
    PointsAuditLogEntry,
    PointsBalanceResponse,
    PointsMutationResponse,
    PointsTransactionListResponse,
)
from loyaltyapi.schemas.rewards import (
    PromoCodeCreateRequest,
    PromoCodeResponse,
    TaskCreateRequest,
    TaskResponse,
)
from loyaltyapi.schemas.subscription import (
    RedemptionStatusUpdateRequest,
    SubscriptionRedemptionResponse,
)
from loyaltyapi.schemas.user import User as UserSchema
from loyaltyapi.services.audit_service import AuditService
from loyaltyapi.services.ledger_service import LedgerService
from loyaltyapi.services.promo_service import PromoService
from loyaltyapi.services.repair_service import RepairService
from loyaltyapi.services.subscription_service import SubscriptionService
from loyaltyapi.services.task_service import TaskService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


# ----------------------------------------------------------------------
# 포인트
# ----------------------------------------------------------------------


@router.post("/points/adjust", response_model=PointsMutationResponse)
def adjust_points(
    request: AdminPointsAdjustmentRequest,
    admin: UserSchema = Depends(require_admin),
    ledger_service: LedgerService = Depends(get_ledger_service),
) -> PointsMutationResponse:
    """
    관리자 포인트 조정

    HTTP Status:
        200: 조정 완료
        400: 차감 시 잔액 부족
        422: amount가 0
    """
    logger.info(
        f"Admin {admin.id} adjusting user {request.user_id} by {request.amount}: {request.reason}"
    )
    return ledger_service.admin_adjust_points(
        admin_id=admin.id,
        admin_role=admin.role,
        user_id=request.user_id,
        amount=request.amount,
        reason=request.reason,
    )


@router.get("/points/{user_id}/balance", response_model=PointsBalanceResponse)
def get_user_balance(
    user_id: str = Path(...),
    admin: UserSchema = Depends(require_admin),
    ledger_service: LedgerService = Depends(get_ledger_service),
) -> PointsBalanceResponse:
    return ledger_service.get_balance(user_id)


@router.get("/points/{user_id}/transactions", response_model=PointsTransactionListResponse)
def get_user_transactions(
    user_id: str = Path(...),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    admin: UserSchema = Depends(require_admin),
    ledger_service: LedgerService = Depends(get_ledger_service),
) -> PointsTransactionListResponse:
    return ledger_service.get_transactions(user_id, limit=limit, offset=offset)


@router.get("/points/{user_id}/audit-log", response_model=List[PointsAuditLogEntry])
def get_user_audit_log(
    user_id: str = Path(...),
    limit: int = Query(50, ge=1, le=200),
    admin: UserSchema = Depends(require_admin),
    ledger_service: LedgerService = Depends(get_ledger_service),
) -> List[PointsAuditLogEntry]:
    return ledger_service.get_audit_log(user_id, limit=limit)


# ----------------------------------------------------------------------
# 감사 / 복구
# ----------------------------------------------------------------------


@router.get("/audit/users/{user_id}", response_model=PointsIssueReport)
def audit_user(
    user_id: str = Path(...),
    admin: UserSchema = Depends(require_admin),
    audit_service: AuditService = Depends(get_audit_service),
) -> PointsIssueReport:
    return audit_service.audit_user(user_id)


@router.get("/audit/users", response_model=AuditAllResponse)
def audit_all_users(
    admin: UserSchema = Depends(require_admin),
    audit_service: AuditService = Depends(get_audit_service),
) -> AuditAllResponse:
    """전체 사용자 감사 - 문제가 있는 사용자만 보고"""
    return audit_service.audit_all_users()


@router.post("/repair/users/{user_id}", response_model=RepairUserResponse)
def repair_user(
    user_id: str = Path(...),
    run_id: Optional[str] = Query(None, description="재실행 시 같은 복구 실행 ID"),
    admin: UserSchema = Depends(require_admin),
    repair_service: RepairService = Depends(get_repair_service),
) -> RepairUserResponse:
    logger.warning(f"Admin {admin.id} requested repair for user {user_id}")
    return repair_service.repair_user(user_id, run_id=run_id)


@router.post("/repair/users", response_model=RepairAllResponse)
def repair_all_users(
    run_id: Optional[str] = Query(None, description="재실행 시 같은 복구 실행 ID"),
    admin: UserSchema = Depends(require_admin),
    repair_service: RepairService = Depends(get_repair_service),
) -> RepairAllResponse:
    logger.warning(f"Admin {admin.id} requested a bulk repair sweep")
    return repair_service.repair_all_users(run_id=run_id)


# ----------------------------------------------------------------------
# 프로모 코드 / 태스크
# ----------------------------------------------------------------------


@router.post(
    "/promo-codes", response_model=PromoCodeResponse, status_code=status.HTTP_201_CREATED
)
def create_promo_code(
    request: PromoCodeCreateRequest,
    admin: UserSchema = Depends(require_admin),
    promo_service: PromoService = Depends(get_promo_service),
) -> PromoCodeResponse:
    return promo_service.create_promo_code(request, created_by=admin.id)


@router.get("/promo-codes", response_model=List[PromoCodeResponse])
def list_promo_codes(
    include_inactive: bool = Query(True),
    admin: UserSchema = Depends(require_admin),
    promo_service: PromoService = Depends(get_promo_service),
) -> List[PromoCodeResponse]:
    return promo_service.list_promo_codes(include_inactive=include_inactive)


@router.post("/promo-codes/{promo_code_id}/deactivate", response_model=PromoCodeResponse)
def deactivate_promo_code(
    promo_code_id: int = Path(..., ge=1),
    admin: UserSchema = Depends(require_admin),
    promo_service: PromoService = Depends(get_promo_service),
) -> PromoCodeResponse:
    return promo_service.deactivate_promo_code(promo_code_id)


@router.post("/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    request: TaskCreateRequest,
    admin: UserSchema = Depends(require_admin),
    task_service: TaskService = Depends(get_task_service),
) -> TaskResponse:
    return task_service.create_task(request)


# ----------------------------------------------------------------------
# 구독 교환 요청
# ----------------------------------------------------------------------


@router.get("/redemptions/pending", response_model=List[SubscriptionRedemptionResponse])
def list_pending_redemptions(
    admin: UserSchema = Depends(require_admin),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> List[SubscriptionRedemptionResponse]:
    return subscription_service.list_pending()


@router.patch("/redemptions/{redemption_id}", response_model=SubscriptionRedemptionResponse)
def update_redemption_status(
    request: RedemptionStatusUpdateRequest,
    redemption_id: int = Path(..., ge=1),
    admin: UserSchema = Depends(require_admin),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionRedemptionResponse:
    """
    교환 요청 상태 변경

    HTTP Status:
        200: 변경 완료
        409: 이미 종료된 요청
        422: 완료 시 활성화 코드 누락
    """
    return subscription_service.update_redemption_status(redemption_id, request)
