from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field


class CheckInResponse(BaseModel):
    """출석 체크 결과"""

    success: bool = True
    streak_day: int = Field(..., ge=1, le=7, description="7일 주기 중 오늘의 일차")
    points_awarded: int = Field(..., description="지급 포인트")
    new_points: int = Field(..., description="지급 후 잔액")
    check_in_date: date


class CheckInStatusResponse(BaseModel):
    """출석 현황"""

    checked_in_today: bool
    current_streak_day: int = Field(..., ge=0, le=7, description="마지막 출석 일차 (끊겼으면 0)")
    next_streak_day: int = Field(..., ge=1, le=7)
    next_reward: Optional[int] = Field(None, description="다음 출석 보상 (7일차는 랜덤이라 None)")


class AdViewRequest(BaseModel):
    ad_id: str = Field(..., min_length=1, max_length=100, description="광고 ID")


class AdViewResponse(BaseModel):
    success: bool = True
    points_awarded: int
    ads_viewed_today: int
    ads_remaining: int
    new_points: int


class AdStatusResponse(BaseModel):
    ads_viewed_today: int
    ads_remaining: int
    next_reward: int
    daily_limit: int


class TaskCompletionResponse(BaseModel):
    success: bool = True
    task_key: str
    points_awarded: int
    new_points: int


class TaskResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    points: int
    is_daily: bool
    is_active: bool

    class Config:
        from_attributes = True


class TaskCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    points: int = Field(..., gt=0)
    is_daily: bool = False


class PromoCodeRedeemRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50, description="프로모 코드")


class PromoCodeRedeemResponse(BaseModel):
    success: bool = True
    code: str
    points_awarded: int
    new_points: int


class PromoCodeCreateRequest(BaseModel):
    code: str = Field(..., min_length=3, max_length=50)
    points: int = Field(..., gt=0)
    description: Optional[str] = None
    max_uses: Optional[int] = Field(None, gt=0, description="전체 사용 한도 (없으면 무제한)")
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class PromoCodeResponse(BaseModel):
    id: int
    code: str
    points: int
    description: Optional[str] = None
    max_uses: Optional[int] = None
    current_uses: int
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_active: bool

    class Config:
        from_attributes = True
