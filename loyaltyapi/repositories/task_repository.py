from datetime import date
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from loyaltyapi.models.task import Task, TaskCompletion, TaskType
from loyaltyapi.repositories.base import BaseRepository
from loyaltyapi.schemas.rewards import TaskResponse


class TaskRepository(BaseRepository[Task, TaskResponse]):
    """태스크 카탈로그 및 완료 기록 리포지토리"""

    def __init__(self, db: Session):
        super().__init__(Task, TaskResponse, db)

    def list_active_tasks(self) -> List[TaskResponse]:
        return self.find_all(filters={"is_active": True}, order_by="id")

    def has_completion(
        self, user_id: str, task_type: TaskType, task_key: str, period_key: str
    ) -> bool:
        return (
            self.db.query(TaskCompletion.id)
            .filter(
                TaskCompletion.user_id == user_id,
                TaskCompletion.task_type == task_type.value,
                TaskCompletion.task_key == task_key,
                TaskCompletion.period_key == period_key,
            )
            .first()
            is not None
        )

    def count_completions_on(self, user_id: str, task_type: TaskType, day: date) -> int:
        return (
            self.db.query(TaskCompletion)
            .filter(
                TaskCompletion.user_id == user_id,
                TaskCompletion.task_type == task_type.value,
                TaskCompletion.completion_date == day,
            )
            .count()
        )

    def get_latest_completion(
        self, user_id: str, task_type: TaskType
    ) -> Optional[TaskCompletion]:
        return (
            self.db.query(TaskCompletion)
            .filter(
                TaskCompletion.user_id == user_id,
                TaskCompletion.task_type == task_type.value,
            )
            .order_by(desc(TaskCompletion.completion_date), desc(TaskCompletion.id))
            .first()
        )

    def record_completion(
        self,
        user_id: str,
        task_type: TaskType,
        task_key: str,
        period_key: str,
        completion_date: date,
        points_awarded: int,
        transaction_id: Optional[int] = None,
        streak_day: Optional[int] = None,
    ) -> TaskCompletion:
        """완료 기록 후 flush ((user, type, key, period) 중복 시 IntegrityError)"""
        return self.add(
            TaskCompletion(
                user_id=user_id,
                task_type=task_type.value,
                task_key=task_key,
                period_key=period_key,
                completion_date=completion_date,
                points_awarded=points_awarded,
                transaction_id=transaction_id,
                streak_day=streak_day,
            )
        )
