import pytest

from loyaltyapi.core.balance_guard import audit_context, privileged_actor
from loyaltyapi.core.exceptions import UnauthorizedDeductionError
from loyaltyapi.models.points import PointsAuditLog, PointsBalance, PointsCause
from loyaltyapi.models.user import UserRole


def _last_audit_log(db_session, user_id):
    return (
        db_session.query(PointsAuditLog)
        .filter(PointsAuditLog.user_id == user_id)
        .order_by(PointsAuditLog.id.desc())
        .first()
    )


@pytest.fixture
def funded_user(ledger, make_user):
    user = make_user()
    ledger.credit_points(user.id, 100, PointsCause.GAME_REWARD, "Spin")
    return user


class TestBalanceGuard:
    """잔액 보호 가드 테스트"""

    def test_direct_decrease_is_blocked(self, db_session, funded_user, get_balance):
        """redeem 거래 없이 잔액을 직접 낮추면 flush가 거부됨"""
        # Arrange
        balance = db_session.get(PointsBalance, funded_user.id)

        # Act
        balance.points = 40
        with pytest.raises(UnauthorizedDeductionError):
            db_session.flush()
        db_session.rollback()

        # Assert
        assert get_balance(funded_user.id).points == 100

    def test_privileged_admin_can_decrease(self, db_session, funded_user, get_balance):
        balance = db_session.get(PointsBalance, funded_user.id)

        with privileged_actor(db_session, "admin-1", UserRole.ADMIN.value):
            balance.points = 40
            db_session.flush()
        db_session.commit()

        assert get_balance(funded_user.id).points == 40
        log = _last_audit_log(db_session, funded_user.id)
        assert (log.old_points, log.new_points) == (100, 40)

    def test_privileged_context_with_user_role_is_ignored(self, db_session, funded_user):
        """관리자가 아닌 역할로 표시된 세션은 권한이 없음"""
        balance = db_session.get(PointsBalance, funded_user.id)

        with privileged_actor(db_session, funded_user.id, UserRole.USER.value):
            balance.points = 0
            with pytest.raises(UnauthorizedDeductionError):
                db_session.flush()
        db_session.rollback()

    def test_increase_is_allowed_and_audited_with_context(self, db_session, funded_user):
        balance = db_session.get(PointsBalance, funded_user.id)

        with audit_context(db_session, reason="manual_fix", changed_by="ops"):
            balance.points = 150
            db_session.flush()
        db_session.commit()

        log = _last_audit_log(db_session, funded_user.id)
        assert (log.old_points, log.new_points) == (100, 150)
        assert log.reason == "manual_fix"
        assert log.changed_by == "ops"

    def test_context_is_restored_after_block(self, db_session):
        with audit_context(db_session, reason="outer"):
            with audit_context(db_session, reason="inner"):
                assert db_session.info["points_audit"]["reason"] == "inner"
            assert db_session.info["points_audit"]["reason"] == "outer"
        assert "points_audit" not in db_session.info

    def test_unchanged_balance_writes_no_audit_log(self, db_session, funded_user):
        before = db_session.query(PointsAuditLog).count()
        balance = db_session.get(PointsBalance, funded_user.id)

        balance.points = 100
        db_session.flush()
        db_session.commit()

        assert db_session.query(PointsAuditLog).count() == before
