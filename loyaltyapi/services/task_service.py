"""
광고 시청 및 태스크 보상 서비스

- 광고 시청: 오늘 이미 본 광고 수에 따라 보상 단계 상승 (기본 50, 3개 이상 60, 5개 이상 75,
  8개 이상 100), 하루 최대 AD_MAX_PER_DAY회, 같은 광고는 하루 1회
- 특별 일일 광고 태스크: 태스크별 하루 1회 고정 보상
- 카탈로그 태스크: 1회성 또는 일일 반복 태스크
"""

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from loyaltyapi.config import Settings
from loyaltyapi.core.exceptions import (
    DailyLimitError,
    DuplicateSubmissionError,
    NotFoundError,
)
from loyaltyapi.models.points import PointsCause, TransactionKind
from loyaltyapi.models.task import TaskType
from loyaltyapi.repositories.task_repository import TaskRepository
from loyaltyapi.schemas.rewards import (
    AdStatusResponse,
    AdViewResponse,
    TaskCompletionResponse,
    TaskCreateRequest,
    TaskResponse,
)
from loyaltyapi.services.ledger_service import LedgerService
from loyaltyapi.utils.timezone_utils import get_reward_date

logger = logging.getLogger(__name__)

# (오늘 이미 본 광고 수 하한, 광고당 보상) - 높은 단계부터
AD_REWARD_TIERS = ((8, 100), (5, 75), (3, 60))
ONE_TIME_PERIOD = "once"


class TaskService:
    """광고/태스크 적립 서비스"""

    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.task_repo = TaskRepository(db)
        self.ledger = LedgerService(db, settings=settings)

    def ad_reward_for(self, ads_viewed_today: int) -> int:
        """오늘 이미 본 광고 수 기준 다음 광고 보상"""
        for threshold, points in AD_REWARD_TIERS:
            if ads_viewed_today >= threshold:
                return points
        return self.settings.AD_BASE_POINTS

    def record_ad_view(
        self, user_id: str, ad_id: str, today: Optional[date] = None
    ) -> AdViewResponse:
        """
        광고 시청 보상 적립

        Raises:
            DailyLimitError: 오늘 시청 한도 초과
            DuplicateSubmissionError: 같은 광고를 오늘 이미 시청
        """
        today = today or get_reward_date()
        period_key = today.isoformat()
        daily_limit = self.settings.AD_MAX_PER_DAY

        def _record():
            self.ledger.points_repo.get_or_create_balance(user_id)  # 사용자 단위 직렬화
            viewed = self.task_repo.count_completions_on(user_id, TaskType.AD_VIEW, today)
            if viewed >= daily_limit:
                raise DailyLimitError(
                    f"Daily ad limit of {daily_limit} reached",
                    details={"ads_viewed_today": viewed},
                )
            if self.task_repo.has_completion(user_id, TaskType.AD_VIEW, ad_id, period_key):
                raise DuplicateSubmissionError("Ad already viewed today")

            reward = self.ad_reward_for(viewed)
            applied = self.ledger.append_transaction(
                user_id=user_id,
                kind=TransactionKind.EARN,
                amount=reward,
                cause=PointsCause.AD_VIEW,
                description=f"Ad view reward ({ad_id})",
                ref_id=f"ad_view:{user_id}:{ad_id}:{period_key}",
            )
            self.task_repo.record_completion(
                user_id=user_id,
                task_type=TaskType.AD_VIEW,
                task_key=ad_id,
                period_key=period_key,
                completion_date=today,
                points_awarded=reward,
                transaction_id=applied.transaction.id,
            )
            return reward, viewed + 1, applied

        reward, viewed, applied = self.ledger.run_atomic(_record, label="record_ad_view")
        logger.info(f"User {user_id} viewed ad {ad_id} ({viewed}/{daily_limit}): +{reward}")
        return AdViewResponse(
            points_awarded=reward,
            ads_viewed_today=viewed,
            ads_remaining=max(0, daily_limit - viewed),
            new_points=applied.new_points,
        )

    def get_ad_status(self, user_id: str, today: Optional[date] = None) -> AdStatusResponse:
        today = today or get_reward_date()
        viewed = self.task_repo.count_completions_on(user_id, TaskType.AD_VIEW, today)
        return AdStatusResponse(
            ads_viewed_today=viewed,
            ads_remaining=max(0, self.settings.AD_MAX_PER_DAY - viewed),
            next_reward=self.ad_reward_for(viewed),
            daily_limit=self.settings.AD_MAX_PER_DAY,
        )

    def complete_daily_ad_task(
        self, user_id: str, task_key: str, today: Optional[date] = None
    ) -> TaskCompletionResponse:
        """특별 일일 광고 태스크 (태스크별 하루 1회)"""
        today = today or get_reward_date()
        period_key = today.isoformat()
        reward = self.settings.DAILY_AD_TASK_POINTS

        def _complete():
            if self.task_repo.has_completion(
                user_id, TaskType.DAILY_AD_TASK, task_key, period_key
            ):
                raise DuplicateSubmissionError("Daily ad task already completed today")
            applied = self.ledger.append_transaction(
                user_id=user_id,
                kind=TransactionKind.EARN,
                amount=reward,
                cause=PointsCause.AD_VIEW,
                description=f"Special daily ad task ({task_key})",
                ref_id=f"daily_ad_task:{user_id}:{task_key}:{period_key}",
            )
            self.task_repo.record_completion(
                user_id=user_id,
                task_type=TaskType.DAILY_AD_TASK,
                task_key=task_key,
                period_key=period_key,
                completion_date=today,
                points_awarded=reward,
                transaction_id=applied.transaction.id,
            )
            return applied

        applied = self.ledger.run_atomic(_complete, label="complete_daily_ad_task")
        logger.info(f"User {user_id} completed daily ad task {task_key}: +{reward}")
        return TaskCompletionResponse(
            task_key=task_key, points_awarded=reward, new_points=applied.new_points
        )

    def complete_task(
        self, user_id: str, task_id: int, today: Optional[date] = None
    ) -> TaskCompletionResponse:
        """
        카탈로그 태스크 완료

        Raises:
            NotFoundError: 존재하지 않거나 비활성 태스크
            DuplicateSubmissionError: 이미 완료 (일일 태스크는 오늘 기준)
        """
        today = today or get_reward_date()

        def _complete():
            task = self.task_repo.get_model(task_id)
            if task is None or not task.is_active:
                raise NotFoundError(f"Task {task_id} not found")

            period_key = today.isoformat() if task.is_daily else ONE_TIME_PERIOD
            task_key = str(task.id)
            if self.task_repo.has_completion(user_id, TaskType.TASK, task_key, period_key):
                raise DuplicateSubmissionError("Task already completed")

            applied = self.ledger.append_transaction(
                user_id=user_id,
                kind=TransactionKind.EARN,
                amount=task.points,
                cause=PointsCause.TASK_COMPLETION,
                description=f"Task completed: {task.title}",
                ref_id=f"task:{task.id}:{user_id}:{period_key}",
            )
            self.task_repo.record_completion(
                user_id=user_id,
                task_type=TaskType.TASK,
                task_key=task_key,
                period_key=period_key,
                completion_date=today,
                points_awarded=task.points,
                transaction_id=applied.transaction.id,
            )
            return task.points, applied

        reward, applied = self.ledger.run_atomic(_complete, label="complete_task")
        logger.info(f"User {user_id} completed task {task_id}: +{reward}")
        return TaskCompletionResponse(
            task_key=str(task_id), points_awarded=reward, new_points=applied.new_points
        )

    def list_tasks(self) -> List[TaskResponse]:
        return self.task_repo.list_active_tasks()

    def create_task(self, request: TaskCreateRequest) -> TaskResponse:
        task = self.ledger.run_atomic(
            lambda: self.task_repo.create(
                title=request.title,
                description=request.description,
                points=request.points,
                is_daily=request.is_daily,
                is_active=True,
            ),
            label="create_task",
        )
        logger.info(f"Created task {task.id} ({task.title}, {task.points} points)")
        return TaskResponse.model_validate(task)
