"""
포인트 시스템 데이터 모델

- points_transactions: 모든 포인트 변동을 기록하는 원장(Ledger). 유일한 진실의 원천
- points_balances: 사용자별 잔액 프로젝션 (빠른 조회용 캐시)
- points_audit_logs: 잔액 변경 이력 (포렌식 전용, 잔액 계산에는 사용하지 않음)
"""

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
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import UniqueConstraint

from loyaltyapi.models.base import Base, BigIntId
from loyaltyapi.utils.timezone_utils import utc_now


class TransactionKind(str, Enum):
    EARN = "earn"
    REDEEM = "redeem"


class PointsCause(str, Enum):
    """포인트 변동 사유 분류"""

    SIGNUP = "signup"
    DAILY_CHECK_IN = "daily_check_in"
    REFERRAL_BONUS = "referral_bonus"
    REFERRAL_COMMISSION = "referral_commission"
    PROMO_CODE = "promo_code"
    ADMIN_ADJUSTMENT = "admin_adjustment"
    AD_VIEW = "ad_view"
    TASK_COMPLETION = "task_completion"
    GAME_REWARD = "game_reward"
    REDEMPTION = "redemption"


class PointsTransaction(Base):
    """
    포인트 원장 테이블 - 불변(append-only) 거래 기록

    - amount는 항상 양수이며 방향은 kind(earn/redeem)로 표현
    - ref_id는 멱등성 키로, 같은 키의 거래는 한 번만 기록됨
    - 레코드는 생성 후 수정/삭제되지 않음
    """

    __tablename__ = "points_transactions"
    __table_args__ = (
        UniqueConstraint("ref_id", name="uq_points_transactions_ref_id"),
        CheckConstraint("amount > 0", name="ck_points_transactions_amount_positive"),
        CheckConstraint(
            "kind IN ('earn', 'redeem')", name="ck_points_transactions_kind"
        ),
        Index("idx_points_transactions_user_created", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False
    )
    kind: Mapped[str] = mapped_column(String(10), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    cause: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    ref_id: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    # 가드의 시간 창 비교를 위해 애플리케이션 시계 사용
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )


class PointsBalance(Base):
    """
    사용자별 잔액 프로젝션

    원장으로부터 파생되는 캐시. version 컬럼으로 낙관적 잠금을 적용하여
    동시 갱신 시 lost update를 StaleDataError로 드러낸다.
    """

    __tablename__ = "points_balances"
    __table_args__ = (
        CheckConstraint("points >= 0", name="ck_points_balances_points_non_negative"),
    )

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), primary_key=True
    )
    points: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __mapper_args__ = {"version_id_col": version}


class PointsAuditLog(Base):
    """잔액 변경 감사 로그 (쓰기 전용)"""

    __tablename__ = "points_audit_logs"
    __table_args__ = (
        Index("idx_points_audit_logs_user_changed", "user_id", "changed_at"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    old_points: Mapped[int] = mapped_column(BigInteger, nullable=False)
    new_points: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reason: Mapped[str] = mapped_column(String(100), nullable=False)
    # system | admin | repair-<run id>
    changed_by: Mapped[str] = mapped_column(String(100), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
