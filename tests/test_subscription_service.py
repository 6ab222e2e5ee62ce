import pytest

from loyaltyapi.core.exceptions import (
    ConflictError,
    InsufficientBalanceError,
    ValidationError,
)
from loyaltyapi.models.points import PointsCause, PointsTransaction
from loyaltyapi.models.subscription import RedemptionStatus
from loyaltyapi.schemas.subscription import (
    RedemptionStatusUpdateRequest,
    SubscriptionRedeemRequest,
)
from loyaltyapi.services.subscription_service import SubscriptionService


@pytest.fixture
def subscription_service(db_session, test_settings):
    return SubscriptionService(db_session, settings=test_settings)


@pytest.fixture
def funded_user(ledger, make_user):
    user = make_user()
    ledger.credit_points(user.id, 500, PointsCause.GAME_REWARD, "Spin")
    return user


def _request(points_cost=300):
    return SubscriptionRedeemRequest(
        subscription_name="Music Premium", duration="1 month", points_cost=points_cost
    )


class TestRequestRedemption:
    """구독 교환 요청 테스트"""

    def test_redemption_debits_points(self, subscription_service, funded_user, db_session, get_balance):
        result = subscription_service.request_redemption(funded_user.id, _request())

        assert result.status == RedemptionStatus.PENDING
        assert result.transaction_id is not None
        assert get_balance(funded_user.id).points == 200

        redeem = db_session.get(PointsTransaction, result.transaction_id)
        assert redeem.kind == "redeem"
        assert redeem.cause == PointsCause.REDEMPTION.value
        assert redeem.ref_id == f"subscription:{result.id}"

    def test_insufficient_balance_leaves_no_request(self, subscription_service, funded_user, get_balance):
        subscription_service.request_redemption(funded_user.id, _request())

        with pytest.raises(InsufficientBalanceError):
            subscription_service.request_redemption(funded_user.id, _request())

        assert len(subscription_service.list_my_redemptions(funded_user.id)) == 1
        assert get_balance(funded_user.id).points == 200


class TestUpdateRedemptionStatus:
    def test_complete_requires_activation_code(self, subscription_service, funded_user):
        redemption = subscription_service.request_redemption(funded_user.id, _request())

        with pytest.raises(ValidationError):
            subscription_service.update_redemption_status(
                redemption.id, RedemptionStatusUpdateRequest(status=RedemptionStatus.COMPLETED)
            )

    def test_terminal_state_is_final(self, subscription_service, funded_user):
        redemption = subscription_service.request_redemption(funded_user.id, _request())

        completed = subscription_service.update_redemption_status(
            redemption.id,
            RedemptionStatusUpdateRequest(
                status=RedemptionStatus.COMPLETED, activation_code="XXXX-YYYY"
            ),
        )
        with pytest.raises(ConflictError):
            subscription_service.update_redemption_status(
                redemption.id, RedemptionStatusUpdateRequest(status=RedemptionStatus.CANCELLED)
            )

        assert completed.status == RedemptionStatus.COMPLETED
        assert completed.activation_code == "XXXX-YYYY"
        assert subscription_service.list_pending() == []

    def test_cancel_does_not_refund(self, subscription_service, funded_user, get_balance):
        redemption = subscription_service.request_redemption(funded_user.id, _request())

        subscription_service.update_redemption_status(
            redemption.id, RedemptionStatusUpdateRequest(status=RedemptionStatus.CANCELLED)
        )

        assert get_balance(funded_user.id).points == 200
