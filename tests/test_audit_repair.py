from unittest.mock import patch

import pytest

from loyaltyapi.core.balance_guard import audit_context, privileged_actor
from loyaltyapi.core.exceptions import NotFoundError
from loyaltyapi.models.points import PointsAuditLog, PointsBalance, PointsCause
from loyaltyapi.models.user import UserRole
from loyaltyapi.services.audit_service import AuditService
from loyaltyapi.services.repair_service import RepairService, new_run_id


@pytest.fixture
def audit_service(db_session, test_settings):
    return AuditService(db_session, settings=test_settings)


@pytest.fixture
def repair_service(db_session, test_settings):
    return RepairService(db_session, settings=test_settings)


@pytest.fixture
def corrupt_balance(db_session):
    """매퍼 이벤트(가드/감사)를 거치지 않는 직접 UPDATE로 잔액을 훼손"""

    def _corrupt(user_id, **values):
        db_session.query(PointsBalance).filter(PointsBalance.user_id == user_id).update(
            values, synchronize_session=False
        )
        db_session.commit()

    return _corrupt


@pytest.fixture
def rich_user(ledger, make_user):
    user = make_user()
    ledger.credit_points(user.id, 1000, PointsCause.GAME_REWARD, "Jackpot")
    return user


class TestAuditor:
    """정합성 감사 테스트"""

    def test_clean_user_has_no_issues(self, audit_service, rich_user):
        report = audit_service.audit_user(rich_user.id)

        assert report.has_issues is False
        assert report.calculated_points == 1000
        assert report.calculated_total_earned == 1000

    def test_points_wiped_by_external_write(self, audit_service, rich_user, corrupt_balance):
        # Arrange
        corrupt_balance(rich_user.id, points=0)

        # Act
        report = audit_service.audit_user(rich_user.id)

        # Assert
        assert report.has_issues is True
        assert report.current_points == 0
        assert "Points mismatch: has 0, should have 1000" in report.issues
        assert any("repair" in r.lower() for r in report.recommendations)

    def test_impossible_states_are_reported(self, audit_service, rich_user, corrupt_balance):
        corrupt_balance(rich_user.id, points=1000, total_earned=400)

        report = audit_service.audit_user(rich_user.id)

        assert "Total earned mismatch: has 400, should have 1000" in report.issues
        assert "Points exceed total earned: 1000 > 400" in report.issues

    def test_unexpected_deduction_is_reported(self, audit_service, rich_user, db_session):
        balance = db_session.get(PointsBalance, rich_user.id)
        with privileged_actor(db_session, "ops", UserRole.ADMIN.value):
            with audit_context(db_session, reason="game_reward"):
                balance.points = 900
                db_session.flush()
        db_session.commit()

        report = audit_service.audit_user(rich_user.id)

        assert "Unexpected deductions: 1" in report.issues

    def test_redemptions_are_not_unexpected(self, audit_service, ledger, rich_user):
        ledger.debit_points(rich_user.id, 100, PointsCause.REDEMPTION, "Voucher")

        report = audit_service.audit_user(rich_user.id)

        assert report.has_issues is False

    def test_suspicious_duplicates(self, audit_service, ledger, make_user):
        user = make_user()
        ledger.credit_points(user.id, 50, PointsCause.GAME_REWARD, "Spin reward")
        ledger.credit_points(user.id, 50, PointsCause.GAME_REWARD, "Spin reward")

        report = audit_service.audit_user(user.id)

        assert "Suspicious duplicate transactions: 1" in report.issues

    def test_unknown_user(self, audit_service):
        with pytest.raises(NotFoundError):
            audit_service.audit_user("missing")

    def test_audit_all_reports_only_problem_users(self, audit_service, ledger, make_user, corrupt_balance):
        users = [make_user() for _ in range(3)]
        for user in users:
            ledger.credit_points(user.id, 100, PointsCause.GAME_REWARD, f"reward {user.id}")
        corrupt_balance(users[1].id, points=10)

        result = audit_service.audit_all_users(batch_size=2)

        assert result.users_checked == 3
        assert [r.user_id for r in result.reports] == [users[1].id]
        assert result.errors == []

    def test_audit_all_collects_errors_and_continues(self, audit_service, make_user):
        broken, healthy = make_user(), make_user()
        original = audit_service.audit_user

        def flaky(user_id):
            if user_id == broken.id:
                raise RuntimeError("boom")
            return original(user_id)

        with patch.object(audit_service, "audit_user", side_effect=flaky):
            result = audit_service.audit_all_users(batch_size=1)

        assert result.users_checked == 2
        assert len(result.errors) == 1

    def test_repair_all_reports_flag_for_fixed_user(self, repair_service, rich_user, corrupt_balance, get_balance):
        """포인트는 올리고 과대 total_earned는 별도 검토 목록에도 남긴다"""
        corrupt_balance(rich_user.id, points=0, total_earned=5000)

        result = repair_service.repair_all_users()

        assert result.users_fixed == 1
        assert len(result.fixes) == 1 and rich_user.id in result.fixes[0]
        assert len(result.issues_found) == 1 and rich_user.id in result.issues_found[0]
        balance = get_balance(rich_user.id)
        assert balance.points == 1000
        assert balance.total_earned == 5000
        assert broken.id in result.errors[0]


class TestRepairEngine:
    """올리기만 하는 복구 테스트"""

    def test_understated_points_are_raised(self, repair_service, rich_user, corrupt_balance, db_session, get_balance):
        # Arrange
        corrupt_balance(rich_user.id, points=0)
        run_id = new_run_id()

        # Act
        result = repair_service.repair_user(rich_user.id, run_id=run_id)

        # Assert
        assert result.fixed is True
        assert (result.old_points, result.new_points) == (0, 1000)
        assert get_balance(rich_user.id).points == 1000

        log = (
            db_session.query(PointsAuditLog)
            .filter(PointsAuditLog.user_id == rich_user.id)
            .order_by(PointsAuditLog.id.desc())
            .first()
        )
        assert log.reason == "EMERGENCY_FIX"
        assert log.changed_by == run_id
        assert (log.old_points, log.new_points) == (0, 1000)

    def test_overstated_points_are_flagged_not_lowered(
        self, repair_service, rich_user, corrupt_balance, get_balance
    ):
        corrupt_balance(rich_user.id, points=5000, total_earned=5000)

        result = repair_service.repair_user(rich_user.id)

        assert result.fixed is False
        assert result.flagged is True
        balance = get_balance(rich_user.id)
        assert (balance.points, balance.total_earned) == (5000, 5000)

    def test_total_earned_is_raised_independently(self, repair_service, rich_user, corrupt_balance, get_balance):
        corrupt_balance(rich_user.id, total_earned=0)

        result = repair_service.repair_user(rich_user.id)

        assert result.fixed is True
        balance = get_balance(rich_user.id)
        assert (balance.points, balance.total_earned) == (1000, 1000)

    def test_consistent_user_is_noop(self, repair_service, rich_user, db_session):
        before = db_session.query(PointsAuditLog).count()

        result = repair_service.repair_user(rich_user.id)

        assert result.fixed is False
        assert result.flagged is False
        assert db_session.query(PointsAuditLog).count() == before

    def test_same_run_does_not_fix_twice(self, repair_service, rich_user, corrupt_balance, db_session):
        """같은 실행 ID로 다시 실행해도 감사 기록이 중복되지 않음"""
        corrupt_balance(rich_user.id, points=0)
        run_id = new_run_id()
        repair_service.repair_user(rich_user.id, run_id=run_id)

        again = repair_service.repair_user(rich_user.id, run_id=run_id)

        assert again.fixed is False
        assert "Already repaired" in again.message
        fixes = (
            db_session.query(PointsAuditLog)
            .filter(PointsAuditLog.changed_by == run_id)
            .count()
        )
        assert fixes == 1

    def test_repair_all_users(self, repair_service, ledger, make_user, corrupt_balance):
        low, high, fine = make_user(), make_user(), make_user()
        for user in (low, high, fine):
            ledger.credit_points(user.id, 100, PointsCause.GAME_REWARD, f"reward {user.id}")
        corrupt_balance(low.id, points=0)
        corrupt_balance(high.id, points=900, total_earned=900)

        result = repair_service.repair_all_users(batch_size=2)

        assert result.run_id.startswith("repair-")
        assert result.users_checked == 3
        assert result.users_fixed == 1
        assert len(result.fixes) == 1 and low.id in result.fixes[0]
        assert len(result.issues_found) == 1 and high.id in result.issues_found[0]

    def test_repair_all_collects_errors(self, repair_service, make_user):
        broken, healthy = make_user(), make_user()
        original = repair_service.repair_user

        def flaky(user_id, run_id=None):
            if user_id == broken.id:
                raise RuntimeError("boom")
            return original(user_id, run_id=run_id)

        with patch.object(repair_service, "repair_user", side_effect=flaky):
            result = repair_service.repair_all_users(batch_size=1)

        assert result.users_checked == 2
        assert len(result.errors) == 1

    def test_repair_all_lists_flag_of_fixed_user(
        self, repair_service, rich_user, corrupt_balance, get_balance
    ):
        """포인트는 올리고, 과대 total_earned는 검토 목록에도 남긴다"""
        corrupt_balance(rich_user.id, points=0, total_earned=5000)

        result = repair_service.repair_all_users()

        assert result.users_fixed == 1
        assert len(result.fixes) == 1 and rich_user.id in result.fixes[0]
        assert len(result.issues_found) == 1 and rich_user.id in result.issues_found[0]
        balance = get_balance(rich_user.id)
        assert balance.points == 1000
        assert balance.total_earned == 5000
