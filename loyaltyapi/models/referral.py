from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import UniqueConstraint

from loyaltyapi.models.base import BaseModel, BigIntId, RecordModel


class ReferralStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class Referral(BaseModel):
    """
    추천 관계 (레벨 1~3)

    가입 시 pending으로 생성되고, 피추천인이 첫 자격 행동을 완료하면
    한 번만 completed로 전환된다. 되돌아가지 않는다.
    """

    __tablename__ = "referrals"
    __table_args__ = (
        UniqueConstraint("referrer_id", "referred_id", name="uq_referrals_pair"),
        CheckConstraint("level BETWEEN 1 AND 3", name="ck_referrals_level"),
        Index("idx_referrals_referred_status", "referred_id", "status"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    referrer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False, index=True
    )
    referred_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False
    )
    referral_code: Mapped[str] = mapped_column(String(16), nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReferralStatus.PENDING.value
    )
    points_awarded: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class ReferralCommission(RecordModel):
    """추천 수수료 기록 - (원천 거래, 레벨)당 최대 1건"""

    __tablename__ = "referral_commissions"
    __table_args__ = (
        UniqueConstraint(
            "source_transaction_id", "level", name="uq_referral_commissions_source_level"
        ),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    referrer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False, index=True
    )
    referred_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False
    )
    source_transaction_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("points_transactions.id"), nullable=False
    )
    commission_transaction_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("points_transactions.id"), nullable=True
    )
    original_points: Mapped[int] = mapped_column(BigInteger, nullable=False)
    commission_percentage: Mapped[float] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=False)
    commission_points: Mapped[int] = mapped_column(BigInteger, nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False)
