"""
일일 출석 체크 서비스

7일 주기 보상:
- 1~6일차: 고정 보상 (설정값 CHECK_IN_DAY_REWARDS)
- 7일차: 가중 랜덤 보상 (80%: 300-400, 15%: 401-600, 4%: 601-800, 1%: 801-1000)
- 하루라도 빠지면 1일차부터 다시 시작

멱등성: (사용자, daily_check_in, 보상 날짜) 유니크 제약 + 원장 ref_id
"""

import logging
import random
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from loyaltyapi.config import Settings
from loyaltyapi.core.exceptions import DuplicateSubmissionError
from loyaltyapi.models.points import PointsCause, TransactionKind
from loyaltyapi.models.task import TaskCompletion, TaskType
from loyaltyapi.repositories.task_repository import TaskRepository
from loyaltyapi.schemas.rewards import CheckInResponse, CheckInStatusResponse
from loyaltyapi.services.ledger_service import LedgerService
from loyaltyapi.utils.timezone_utils import get_reward_date

logger = logging.getLogger(__name__)

CYCLE_LENGTH = 7
CHECK_IN_TASK_KEY = "daily_check_in"

# (누적 확률 상한, 최소, 최대)
DAY_SEVEN_TIERS = (
    (0.80, 300, 400),
    (0.95, 401, 600),
    (0.99, 601, 800),
    (1.00, 801, 1000),
)


class CheckInService:
    """출석 체크 보상 서비스"""

    def __init__(
        self, db: Session, settings: Settings, rng: Optional[random.Random] = None
    ):
        self.db = db
        self.settings = settings
        self.task_repo = TaskRepository(db)
        self.ledger = LedgerService(db, settings=settings)
        self.rng = rng or random.SystemRandom()

    def roll_day_seven_reward(self) -> int:
        roll = self.rng.random()
        for upper, low, high in DAY_SEVEN_TIERS:
            if roll < upper:
                return self.rng.randint(low, high)
        low, high = DAY_SEVEN_TIERS[-1][1:]
        return self.rng.randint(low, high)

    def reward_for_day(self, streak_day: int) -> int:
        """주기 내 일차별 보상 (7일차는 랜덤)"""
        if streak_day >= CYCLE_LENGTH:
            return self.roll_day_seven_reward()
        return self.settings.CHECK_IN_DAY_REWARDS[streak_day - 1]

    @staticmethod
    def next_streak_day(last: Optional[TaskCompletion], today: date) -> int:
        """어제 출석했으면 주기를 이어가고, 아니면 1일차"""
        if last is None or last.completion_date != today - timedelta(days=1):
            return 1
        return (last.streak_day or 0) % CYCLE_LENGTH + 1

    def check_in(self, user_id: str, today: Optional[date] = None) -> CheckInResponse:
        """
        오늘 출석 체크

        Raises:
            DuplicateSubmissionError: 오늘 이미 출석한 경우
        """
        today = today or get_reward_date()
        period_key = today.isoformat()

        def _check_in():
            self.ledger.points_repo.get_or_create_balance(user_id)  # 사용자 단위 직렬화
            last = self.task_repo.get_latest_completion(user_id, TaskType.DAILY_CHECK_IN)
            if last is not None and last.completion_date == today:
                raise DuplicateSubmissionError("Already checked in today")

            streak_day = self.next_streak_day(last, today)
            reward = self.reward_for_day(streak_day)
            applied = self.ledger.append_transaction(
                user_id=user_id,
                kind=TransactionKind.EARN,
                amount=reward,
                cause=PointsCause.DAILY_CHECK_IN,
                description=f"Daily check-in day {streak_day}",
                ref_id=f"daily_check_in:{user_id}:{period_key}",
            )
            self.task_repo.record_completion(
                user_id=user_id,
                task_type=TaskType.DAILY_CHECK_IN,
                task_key=CHECK_IN_TASK_KEY,
                period_key=period_key,
                completion_date=today,
                points_awarded=reward,
                transaction_id=applied.transaction.id,
                streak_day=streak_day,
            )
            return streak_day, reward, applied

        streak_day, reward, applied = self.ledger.run_atomic(_check_in, label="daily_check_in")
        logger.info(f"User {user_id} checked in on {today} (day {streak_day}): +{reward}")
        return CheckInResponse(
            streak_day=streak_day,
            points_awarded=reward,
            new_points=applied.new_points,
            check_in_date=today,
        )

    def get_check_in_status(
        self, user_id: str, today: Optional[date] = None
    ) -> CheckInStatusResponse:
        today = today or get_reward_date()
        last = self.task_repo.get_latest_completion(user_id, TaskType.DAILY_CHECK_IN)
        checked_in_today = last is not None and last.completion_date == today

        if checked_in_today:
            current = last.streak_day or 1
            next_day = current % CYCLE_LENGTH + 1
        else:
            next_day = self.next_streak_day(last, today)
            current = next_day - 1

        next_reward = (
            None if next_day >= CYCLE_LENGTH
            else self.settings.CHECK_IN_DAY_REWARDS[next_day - 1]
        )
        return CheckInStatusResponse(
            checked_in_today=checked_in_today,
            current_streak_day=current,
            next_streak_day=next_day,
            next_reward=next_reward,
        )
