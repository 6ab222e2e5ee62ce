from datetime import date
from enum import Enum
from typing import Optional

from sqlalchemy import BigInteger, Boolean, Date, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import UniqueConstraint

from loyaltyapi.models.base import BaseModel, BigIntId, RecordModel


class TaskType(str, Enum):
    DAILY_CHECK_IN = "daily_check_in"
    AD_VIEW = "ad_view"
    DAILY_AD_TASK = "daily_ad_task"
    TASK = "task"


class Task(BaseModel):
    """적립 태스크 카탈로그"""

    __tablename__ = "tasks"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    points: Mapped[int] = mapped_column(BigInteger, nullable=False)
    is_daily: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class TaskCompletion(RecordModel):
    """
    태스크/출석/광고 완료 기록

    (user_id, task_type, task_key, period_key) 유니크 제약이 기능별 멱등성 키.
    period_key는 일일 항목이면 보상 날짜(ISO), 1회성 태스크면 "once".
    """

    __tablename__ = "task_completions"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "task_type", "task_key", "period_key",
            name="uq_task_completions_period",
        ),
        Index("idx_task_completions_user_type_date", "user_id", "task_type", "completion_date"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False
    )
    task_type: Mapped[str] = mapped_column(String(30), nullable=False)
    task_key: Mapped[str] = mapped_column(String(100), nullable=False)
    period_key: Mapped[str] = mapped_column(String(20), nullable=False)
    completion_date: Mapped[date] = mapped_column(Date, nullable=False)
    streak_day: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    points_awarded: Mapped[int] = mapped_column(BigInteger, nullable=False)
    transaction_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("points_transactions.id"), nullable=True
    )
