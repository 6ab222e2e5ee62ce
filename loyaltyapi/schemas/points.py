from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime


class PointsBalanceResponse(BaseModel):
    """포인트 잔액 응답"""

    user_id: str = Field(..., description="사용자 ID")
    points: int = Field(..., description="현재 사용 가능 포인트")
    total_earned: int = Field(..., description="누적 적립 포인트")
    updated_at: Optional[datetime] = Field(None, description="마지막 갱신 시간")

    class Config:
        from_attributes = True


class PointsTransactionEntry(BaseModel):
    """포인트 원장 항목"""

    id: int = Field(..., description="거래 ID")
    kind: str = Field(..., description="거래 종류 (earn, redeem)")
    amount: int = Field(..., description="포인트 금액 (항상 양수)")
    cause: str = Field(..., description="거래 사유 분류")
    description: str = Field(..., description="거래 설명")
    ref_id: Optional[str] = Field(None, description="멱등성 키")
    created_at: datetime = Field(..., description="생성 시간")

    class Config:
        from_attributes = True


class PointsTransactionListResponse(BaseModel):
    """포인트 거래 내역 조회 응답"""

    balance: PointsBalanceResponse = Field(..., description="현재 잔액")
    entries: List[PointsTransactionEntry] = Field(..., description="거래 목록 (최신순)")
    total_count: int = Field(..., description="전체 거래 수")
    has_next: bool = Field(..., description="다음 페이지 존재 여부")


class PointsMutationResponse(BaseModel):
    """포인트 적립/차감 결과"""

    success: bool = Field(..., description="성공 여부")
    transaction_id: Optional[int] = Field(None, description="거래 ID")
    old_points: int = Field(..., description="변경 전 포인트")
    new_points: int = Field(..., description="변경 후 포인트")
    amount: int = Field(..., description="거래 금액")
    message: str = Field("", description="응답 메시지")


class PointsAuditLogEntry(BaseModel):
    """잔액 변경 감사 로그 항목"""

    id: int
    user_id: str
    old_points: int
    new_points: int
    reason: str
    changed_by: str
    changed_at: datetime

    class Config:
        from_attributes = True


class AdminPointsAdjustmentRequest(BaseModel):
    """관리자 포인트 조정 요청"""

    user_id: str = Field(..., min_length=1, description="사용자 ID")
    amount: int = Field(..., description="조정할 포인트 (양수: 추가, 음수: 차감)")
    reason: str = Field(..., min_length=1, max_length=255, description="조정 사유")
