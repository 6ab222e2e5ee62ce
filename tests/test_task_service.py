from datetime import date, timedelta

import pytest

from loyaltyapi.core.exceptions import DailyLimitError, DuplicateSubmissionError, NotFoundError
from loyaltyapi.models.points import PointsTransaction
from loyaltyapi.schemas.rewards import TaskCreateRequest
from loyaltyapi.services.task_service import TaskService

TODAY = date(2024, 3, 4)


@pytest.fixture
def task_service(db_session, test_settings):
    return TaskService(db_session, settings=test_settings)


class TestAdViews:
    """광고 시청 보상 테스트"""

    def test_reward_tiers_and_daily_cap(self, task_service, make_user, get_balance):
        user = make_user()

        rewards = [
            task_service.record_ad_view(user.id, f"ad-{i}", today=TODAY).points_awarded
            for i in range(10)
        ]

        assert rewards == [50, 50, 50, 60, 60, 75, 75, 75, 100, 100]
        assert get_balance(user.id).points == sum(rewards)

        with pytest.raises(DailyLimitError):
            task_service.record_ad_view(user.id, "ad-extra", today=TODAY)

    def test_same_ad_once_per_day(self, task_service, make_user, db_session):
        user = make_user()
        task_service.record_ad_view(user.id, "ad-1", today=TODAY)

        with pytest.raises(DuplicateSubmissionError):
            task_service.record_ad_view(user.id, "ad-1", today=TODAY)

        # 다음 날에는 다시 가능
        result = task_service.record_ad_view(user.id, "ad-1", today=TODAY + timedelta(days=1))
        assert result.points_awarded == 50
        assert db_session.query(PointsTransaction).filter_by(user_id=user.id).count() == 2

    def test_ad_status(self, task_service, make_user):
        user = make_user()
        for i in range(3):
            task_service.record_ad_view(user.id, f"ad-{i}", today=TODAY)

        status = task_service.get_ad_status(user.id, today=TODAY)

        assert status.ads_viewed_today == 3
        assert status.ads_remaining == 7
        assert status.next_reward == 60
        assert status.daily_limit == 10


class TestDailyAdTask:
    def test_once_per_task_per_day(self, task_service, make_user):
        user = make_user()

        first = task_service.complete_daily_ad_task(user.id, "watch-3", today=TODAY)
        with pytest.raises(DuplicateSubmissionError):
            task_service.complete_daily_ad_task(user.id, "watch-3", today=TODAY)
        other = task_service.complete_daily_ad_task(user.id, "watch-5", today=TODAY)

        assert first.points_awarded == 50
        assert other.new_points == 100


class TestCatalogueTasks:
    def test_one_time_task(self, task_service, make_user):
        user = make_user()
        task = task_service.create_task(TaskCreateRequest(title="Join channel", points=70))

        result = task_service.complete_task(user.id, task.id, today=TODAY)
        with pytest.raises(DuplicateSubmissionError):
            task_service.complete_task(user.id, task.id, today=TODAY + timedelta(days=1))

        assert result.points_awarded == 70

    def test_daily_task_repeats_each_day(self, task_service, make_user, get_balance):
        user = make_user()
        task = task_service.create_task(
            TaskCreateRequest(title="Share", points=15, is_daily=True)
        )

        task_service.complete_task(user.id, task.id, today=TODAY)
        with pytest.raises(DuplicateSubmissionError):
            task_service.complete_task(user.id, task.id, today=TODAY)
        task_service.complete_task(user.id, task.id, today=TODAY + timedelta(days=1))

        assert get_balance(user.id).points == 30

    def test_unknown_task(self, task_service, make_user):
        user = make_user()

        with pytest.raises(NotFoundError):
            task_service.complete_task(user.id, 9999, today=TODAY)

    def test_list_tasks_returns_active_only(self, task_service, db_session):
        active = task_service.create_task(TaskCreateRequest(title="A", points=10))
        hidden = task_service.create_task(TaskCreateRequest(title="B", points=10))
        model = task_service.task_repo.get_model(hidden.id)
        model.is_active = False
        db_session.commit()

        tasks = task_service.list_tasks()

        assert [t.id for t in tasks] == [active.id]
