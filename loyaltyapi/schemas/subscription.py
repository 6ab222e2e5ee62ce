from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from loyaltyapi.models.subscription import RedemptionStatus


class SubscriptionRedeemRequest(BaseModel):
    subscription_name: str = Field(..., min_length=1, max_length=200)
    duration: Optional[str] = Field(None, max_length=50, description="이용 기간 (예: 1 month)")
    points_cost: int = Field(..., gt=0)


class SubscriptionRedemptionResponse(BaseModel):
    id: int
    user_id: str
    subscription_name: str
    duration: Optional[str] = None
    points_cost: int
    status: RedemptionStatus
    activation_code: Optional[str] = None
    transaction_id: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RedemptionStatusUpdateRequest(BaseModel):
    status: RedemptionStatus
    activation_code: Optional[str] = Field(None, max_length=500)
