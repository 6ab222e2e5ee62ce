import pytest

from loyaltyapi.core.exceptions import NotFoundError, ValidationError
from loyaltyapi.models.points import PointsCause, PointsTransaction
from loyaltyapi.models.referral import Referral, ReferralCommission
from loyaltyapi.models.user import User
from loyaltyapi.schemas.rewards import TaskCreateRequest
from loyaltyapi.schemas.user import UserCreate
from loyaltyapi.services.referral_service import calculate_commission
from loyaltyapi.services.task_service import TaskService
from loyaltyapi.services.user_service import UserService


def _earns(db_session, user_id):
    return (
        db_session.query(PointsTransaction)
        .filter(PointsTransaction.user_id == user_id, PointsTransaction.kind == "earn")
        .order_by(PointsTransaction.id)
        .all()
    )


@pytest.fixture
def user_service(db_session, test_settings):
    return UserService(db_session, settings=test_settings)


@pytest.fixture
def task_service(db_session, test_settings):
    return TaskService(db_session, settings=test_settings)


class TestCalculateCommission:
    @pytest.mark.parametrize(
        "amount, rate, expected",
        [(1000, 0.10, 100), (1000, 0.05, 50), (1000, 0.02, 20), (50, 0.10, 5), (29, 0.05, 1), (10, 0.02, 0)],
    )
    def test_commission_is_floored(self, amount, rate, expected):
        assert calculate_commission(amount, rate) == expected


class TestSignupAttribution:
    """가입 시 추천 관계 생성 테스트"""

    def test_signup_creates_pending_edges_up_to_three_levels(self, user_service, make_user, db_session):
        # Arrange: top <- mid <- low
        top = make_user()
        mid = make_user(referred_by=top)
        low = make_user(referred_by=mid, referral_code="LOW00001")

        # Act
        new_user, bonus = user_service.register_user(
            UserCreate(email="new@example.com", nickname="newbie", referral_code="low00001")
        )

        # Assert
        edges = (
            db_session.query(Referral)
            .filter(Referral.referred_id == new_user.id)
            .order_by(Referral.level)
            .all()
        )
        assert [(e.referrer_id, e.level, e.status) for e in edges] == [
            (low.id, 1, "pending"),
            (mid.id, 2, "pending"),
            (top.id, 3, "pending"),
        ]
        assert new_user.referred_by_id == low.id
        assert bonus == 100

    def test_signup_bonus_is_not_commissionable(self, user_service, make_user, db_session):
        referrer = make_user(referral_code="ABC123")

        user_service.register_user(
            UserCreate(email="b@example.com", nickname="bobby", referral_code="ABC123")
        )

        assert _earns(db_session, referrer.id) == []

    def test_unknown_referral_code_is_rejected(self, user_service, db_session):
        with pytest.raises(ValidationError):
            user_service.register_user(
                UserCreate(email="x@example.com", nickname="xavier", referral_code="NOPE")
            )
        assert db_session.query(User).count() == 0


class TestReferralCompletion:
    """첫 자격 행동 시 추천 완료 테스트"""

    def test_first_task_pays_bonus_and_commission(
        self, user_service, task_service, make_user, db_session, get_balance
    ):
        """ABC123 추천 가입 후 50포인트 태스크 완료: 추천인에게 500 보너스 + 5 수수료"""
        # Arrange
        referrer = make_user(referral_code="ABC123")
        new_user, _ = user_service.register_user(
            UserCreate(email="b@example.com", nickname="bobby", referral_code="ABC123")
        )
        edge = db_session.query(Referral).filter(Referral.referred_id == new_user.id).one()
        assert edge.status == "pending"
        task = task_service.create_task(TaskCreateRequest(title="Follow us", points=50))

        # Act
        task_service.complete_task(new_user.id, task.id)

        # Assert
        db_session.expire_all()
        edge = db_session.query(Referral).filter(Referral.referred_id == new_user.id).one()
        assert edge.status == "completed"
        assert edge.points_awarded == 500

        earns = _earns(db_session, referrer.id)
        assert [(t.cause, t.amount) for t in earns] == [
            (PointsCause.REFERRAL_BONUS.value, 500),
            (PointsCause.REFERRAL_COMMISSION.value, 5),
        ]
        assert get_balance(referrer.id).points == 505

    def test_bonus_is_paid_only_once(self, user_service, ledger, make_user, db_session):
        referrer = make_user(referral_code="ABC123")
        new_user, _ = user_service.register_user(
            UserCreate(email="b@example.com", nickname="bobby", referral_code="ABC123")
        )

        ledger.credit_points(new_user.id, 100, PointsCause.TASK_COMPLETION, "task 1")
        ledger.credit_points(new_user.id, 100, PointsCause.DAILY_CHECK_IN, "check-in")

        causes = [t.cause for t in _earns(db_session, referrer.id)]
        assert causes.count(PointsCause.REFERRAL_BONUS.value) == 1
        assert causes.count(PointsCause.REFERRAL_COMMISSION.value) == 2

    def test_bonus_per_level(self, user_service, ledger, make_user, get_balance):
        top = make_user()
        mid = make_user(referred_by=top)
        low = make_user(referred_by=mid, referral_code="LOW00001")
        new_user, _ = user_service.register_user(
            UserCreate(email="new@example.com", nickname="newbie", referral_code="LOW00001")
        )

        # 10포인트: 수수료 1 / 0 / 0
        ledger.credit_points(new_user.id, 10, PointsCause.AD_VIEW, "ad")

        assert get_balance(low.id).points == 500 + 1
        assert get_balance(mid.id).points == 200
        assert get_balance(top.id).points == 100

    def test_referral_stats(self, user_service, ledger, make_user):
        referrer = make_user(referral_code="ABC123")
        new_user, _ = user_service.register_user(
            UserCreate(email="b@example.com", nickname="bobby", referral_code="ABC123")
        )
        user_service.register_user(
            UserCreate(email="c@example.com", nickname="carol", referral_code="ABC123")
        )
        ledger.credit_points(new_user.id, 50, PointsCause.TASK_COMPLETION, "task")

        stats = ledger.referral_service.get_referral_stats(referrer.id)

        assert stats.referral_code == "ABC123"
        assert stats.referrals_by_level[1] == 2
        assert stats.pending_count == 1
        assert stats.completed_count == 1
        assert stats.total_bonus_points == 500
        assert stats.total_commission_points == 5

    def test_stats_for_unknown_user(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.referral_service.get_referral_stats("missing")


class TestCommissionCascade:
    """다단계 수수료 테스트"""

    def test_three_levels_without_compounding(self, ledger, make_user, db_session):
        """1000 적립 -> 100/50/20 수수료 3건, 수수료는 다시 수수료를 만들지 않음"""
        # Arrange: level3 <- level2 <- level1 <- earner
        level3 = make_user()
        level2 = make_user(referred_by=level3)
        level1 = make_user(referred_by=level2)
        earner = make_user(referred_by=level1)

        # Act
        ledger.credit_points(earner.id, 1000, PointsCause.GAME_REWARD, "Jackpot")

        # Assert
        assert db_session.query(PointsTransaction).count() == 4
        assert [t.amount for t in _earns(db_session, level1.id)] == [100]
        assert [t.amount for t in _earns(db_session, level2.id)] == [50]
        assert [t.amount for t in _earns(db_session, level3.id)] == [20]
        for t in _earns(db_session, level1.id):
            assert t.cause == PointsCause.REFERRAL_COMMISSION.value

        records = db_session.query(ReferralCommission).order_by(ReferralCommission.level).all()
        assert [(r.level, r.commission_points, r.original_points) for r in records] == [
            (1, 100, 1000),
            (2, 50, 1000),
            (3, 20, 1000),
        ]

    def test_chain_deeper_than_three_levels_stops(self, ledger, make_user, db_session):
        level4 = make_user()
        level3 = make_user(referred_by=level4)
        level2 = make_user(referred_by=level3)
        level1 = make_user(referred_by=level2)
        earner = make_user(referred_by=level1)

        ledger.credit_points(earner.id, 1000, PointsCause.GAME_REWARD, "Jackpot")

        assert _earns(db_session, level4.id) == []

    def test_sub_point_commissions_are_skipped(self, ledger, make_user, db_session):
        level2 = make_user()
        level1 = make_user(referred_by=level2)
        earner = make_user(referred_by=level1)

        ledger.credit_points(earner.id, 10, PointsCause.GAME_REWARD, "small")

        assert [t.amount for t in _earns(db_session, level1.id)] == [1]
        assert _earns(db_session, level2.id) == []

    def test_referral_cycle_terminates(self, ledger, make_user, db_session):
        """A -> B -> A 순환이 있어도 한 번만 지급하고 종료"""
        first = make_user()
        second = make_user(referred_by=first)
        first.referred_by_id = second.id
        db_session.commit()

        ledger.credit_points(first.id, 1000, PointsCause.GAME_REWARD, "Jackpot")

        assert [t.amount for t in _earns(db_session, second.id)] == [100]
        assert [t.amount for t in _earns(db_session, first.id)] == [1000]
