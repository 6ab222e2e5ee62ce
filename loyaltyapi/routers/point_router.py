"""
포인트 API 라우터

- GET /points/balance: 내 포인트 잔액
- GET /points/transactions: 내 거래 내역 (최신순, 페이징)
"""

import logging

from fastapi import APIRouter, Depends, Query

from loyaltyapi.core.auth_middleware import get_current_active_user
from loyaltyapi.deps import get_ledger_service
from loyaltyapi.schemas.points import PointsBalanceResponse, PointsTransactionListResponse
from loyaltyapi.schemas.user import User as UserSchema
from loyaltyapi.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/points", tags=["points"])


@router.get("/balance", response_model=PointsBalanceResponse)
def get_my_balance(
    current_user: UserSchema = Depends(get_current_active_user),
    ledger_service: LedgerService = Depends(get_ledger_service),
) -> PointsBalanceResponse:
    """
    내 포인트 잔액 조회

    인증 필요: Bearer 토큰
    """
    return ledger_service.get_balance(current_user.id)


@router.get("/transactions", response_model=PointsTransactionListResponse)
def get_my_transactions(
    limit: int = Query(50, ge=1, le=100, description="페이지 크기"),
    offset: int = Query(0, ge=0, description="오프셋"),
    current_user: UserSchema = Depends(get_current_active_user),
    ledger_service: LedgerService = Depends(get_ledger_service),
) -> PointsTransactionListResponse:
    """
    내 포인트 거래 내역 조회

    Query Parameters:
        limit: 한 페이지에 조회할 항목 수 (1-100, 기본: 50)
        offset: 건너뛸 항목 수 (기본: 0)
    """
    return ledger_service.get_transactions(current_user.id, limit=limit, offset=offset)
