from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from loyaltyapi import deps
from loyaltyapi.core.auth_middleware import get_current_active_user
from loyaltyapi.core.exceptions import DuplicateSubmissionError, InsufficientBalanceError
from loyaltyapi.database.session import get_db
from loyaltyapi.main import create_app
from loyaltyapi.models.user import UserRole
from loyaltyapi.schemas.audit import RepairUserResponse
from loyaltyapi.schemas.user import User as UserSchema


@pytest.fixture
def app(db_session):
    """테스트 DB 세션을 쓰는 앱"""
    app = create_app()

    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    return TestClient(app)


def _as_user(app, user_id="user-1", role=UserRole.USER):
    app.dependency_overrides[get_current_active_user] = lambda: UserSchema(
        id=user_id,
        email=f"{user_id}@example.com",
        nickname=user_id,
        referral_code="REF00001",
        role=role,
    )


class TestHealth:
    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "ok"}


class TestAuthentication:
    def test_balance_requires_token(self, client):
        response = client.get("/api/v1/points/balance")

        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_register_then_use_token(self, client):
        """가입 후 발급받은 토큰으로 잔액 조회 (가입 보너스 반영)"""
        register = client.post(
            "/api/v1/users/register",
            json={"email": "new@example.com", "nickname": "newbie"},
        )
        assert register.status_code == 201
        body = register.json()
        assert body["signup_bonus"] == 100

        response = client.get(
            "/api/v1/points/balance",
            headers={"Authorization": f"Bearer {body['access_token']}"},
        )

        assert response.status_code == 200
        assert response.json()["points"] == 100

    def test_register_duplicate_email(self, client):
        payload = {"email": "dup@example.com", "nickname": "dupe"}
        client.post("/api/v1/users/register", json=payload)

        response = client.post("/api/v1/users/register", json=payload)

        assert response.status_code == 409

    def test_admin_routes_reject_regular_user(self, app, client):
        _as_user(app)

        response = client.get("/api/v1/admin/audit/users")

        assert response.status_code == 403


class TestRewardRoutes:
    def test_duplicate_check_in_maps_to_409(self, app, client):
        _as_user(app)
        service = Mock()
        service.check_in.side_effect = DuplicateSubmissionError("Already checked in today")
        app.dependency_overrides[deps.get_check_in_service] = lambda: service

        response = client.post("/api/v1/rewards/check-in")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "DUPLICATE_001"
        service.check_in.assert_called_once_with("user-1")

    def test_promo_redeem_validation(self, app, client):
        _as_user(app)

        response = client.post("/api/v1/rewards/promo/redeem", json={"code": ""})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_001"


class TestSubscriptionRoutes:
    def test_insufficient_balance_maps_to_400(self, app, client):
        _as_user(app)
        service = Mock()
        service.request_redemption.side_effect = InsufficientBalanceError()
        app.dependency_overrides[deps.get_subscription_service] = lambda: service

        response = client.post(
            "/api/v1/subscriptions/redeem",
            json={"subscription_name": "Music Premium", "points_cost": 300},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "BALANCE_001"


class TestAdminRoutes:
    def test_repair_user(self, app, client):
        _as_user(app, user_id="admin-1", role=UserRole.ADMIN)
        service = Mock()
        service.repair_user.return_value = RepairUserResponse(
            user_id="user-9",
            run_id="repair-test",
            old_points=0,
            new_points=1000,
            old_total_earned=1000,
            new_total_earned=1000,
            fixed=True,
        )
        app.dependency_overrides[deps.get_repair_service] = lambda: service

        response = client.post("/api/v1/admin/repair/users/user-9?run_id=repair-test")

        assert response.status_code == 200
        assert response.json()["new_points"] == 1000
        service.repair_user.assert_called_once_with("user-9", run_id="repair-test")

    def test_admin_adjust_uses_admin_role(self, app, client):
        _as_user(app, user_id="admin-1", role=UserRole.ADMIN)
        service = Mock()
        service.admin_adjust_points.return_value = {
            "success": True,
            "transaction_id": 1,
            "old_points": 0,
            "new_points": 500,
            "amount": 500,
            "message": "Points adjusted",
        }
        app.dependency_overrides[deps.get_ledger_service] = lambda: service

        response = client.post(
            "/api/v1/admin/points/adjust",
            json={"user_id": "user-9", "amount": 500, "reason": "Goodwill"},
        )

        assert response.status_code == 200
        kwargs = service.admin_adjust_points.call_args.kwargs
        assert kwargs["admin_id"] == "admin-1"
        assert kwargs["amount"] == 500
