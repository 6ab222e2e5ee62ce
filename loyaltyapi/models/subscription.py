from enum import Enum
from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from loyaltyapi.models.base import BaseModel, BigIntId


class RedemptionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SubscriptionRedemption(BaseModel):
    """구독 상품 교환 요청 (포인트 사용처)"""

    __tablename__ = "subscription_redemptions"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False, index=True
    )
    subscription_name: Mapped[str] = mapped_column(String(200), nullable=False)
    duration: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    points_cost: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RedemptionStatus.PENDING.value
    )
    activation_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    transaction_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("points_transactions.id"), nullable=True
    )
