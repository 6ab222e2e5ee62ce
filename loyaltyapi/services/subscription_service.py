"""
구독 상품 교환 서비스 (포인트 사용처)

교환 요청은 잔액 확인 + pending 요청 기록 + redeem 거래 + 잔액 차감을
하나의 작업 단위로 처리합니다. 이후 관리자가 활성화 코드를 발급해 완료하거나
실패/취소로 종료합니다. 종료 상태는 다시 변경되지 않으며 포인트는 환불하지 않습니다.
"""

import logging
from typing import List

from sqlalchemy.orm import Session

from loyaltyapi.config import Settings
from loyaltyapi.core.exceptions import ConflictError, NotFoundError, ValidationError
from loyaltyapi.models.points import PointsCause
from loyaltyapi.models.subscription import RedemptionStatus, SubscriptionRedemption
from loyaltyapi.repositories.subscription_repository import SubscriptionRepository
from loyaltyapi.schemas.subscription import (
    RedemptionStatusUpdateRequest,
    SubscriptionRedeemRequest,
    SubscriptionRedemptionResponse,
)
from loyaltyapi.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)


class SubscriptionService:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.subscription_repo = SubscriptionRepository(db)
        self.ledger = LedgerService(db, settings=settings)

    def request_redemption(
        self, user_id: str, request: SubscriptionRedeemRequest
    ) -> SubscriptionRedemptionResponse:
        """
        포인트로 구독 상품 교환 요청

        Raises:
            InsufficientBalanceError: 잔액 부족 (요청 기록도 남지 않음)
        """
        self.ledger.validate_amount(request.points_cost)

        def _redeem() -> SubscriptionRedemption:
            self.ledger.points_repo.get_or_create_balance(user_id)
            redemption = self.subscription_repo.create(
                user_id=user_id,
                subscription_name=request.subscription_name,
                duration=request.duration,
                points_cost=request.points_cost,
                status=RedemptionStatus.PENDING.value,
            )
            applied = self.ledger.debit_within_unit(
                user_id=user_id,
                amount=request.points_cost,
                cause=PointsCause.REDEMPTION,
                description=f"Subscription redemption: {request.subscription_name}",
                ref_id=f"subscription:{redemption.id}",
            )
            redemption.transaction_id = applied.transaction.id
            self.db.flush()
            return redemption

        redemption = self.ledger.run_atomic(_redeem, label="request_redemption")
        logger.info(
            f"User {user_id} requested subscription redemption {redemption.id} "
            f"({request.subscription_name}, {request.points_cost} points)"
        )
        return SubscriptionRedemptionResponse.model_validate(redemption)

    def update_redemption_status(
        self, redemption_id: int, request: RedemptionStatusUpdateRequest
    ) -> SubscriptionRedemptionResponse:
        """관리자: 교환 요청 상태 변경 (pending에서만 가능)"""
        if request.status == RedemptionStatus.PENDING:
            raise ValidationError("Cannot move a redemption back to pending")
        if request.status == RedemptionStatus.COMPLETED and not request.activation_code:
            raise ValidationError("activation_code is required to complete a redemption")

        def _update() -> SubscriptionRedemption:
            redemption = self.subscription_repo.get_model(redemption_id)
            if redemption is None:
                raise NotFoundError(f"Redemption {redemption_id} not found")
            if redemption.status != RedemptionStatus.PENDING.value:
                raise ConflictError(
                    f"Redemption {redemption_id} is already {redemption.status}",
                    details={"status": redemption.status},
                )
            redemption.status = request.status.value
            if request.activation_code:
                redemption.activation_code = request.activation_code
            self.db.flush()
            return redemption

        redemption = self.ledger.run_atomic(_update, label="update_redemption_status")
        logger.info(f"Redemption {redemption_id} marked {redemption.status}")
        return SubscriptionRedemptionResponse.model_validate(redemption)

    def list_my_redemptions(self, user_id: str) -> List[SubscriptionRedemptionResponse]:
        return self.subscription_repo.list_for_user(user_id)

    def list_pending(self) -> List[SubscriptionRedemptionResponse]:
        return self.subscription_repo.list_by_status(RedemptionStatus.PENDING)
