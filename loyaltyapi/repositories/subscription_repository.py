from typing import List

from sqlalchemy import desc
from sqlalchemy.orm import Session

from loyaltyapi.models.subscription import RedemptionStatus, SubscriptionRedemption
from loyaltyapi.repositories.base import BaseRepository
from loyaltyapi.schemas.subscription import SubscriptionRedemptionResponse


class SubscriptionRepository(
    BaseRepository[SubscriptionRedemption, SubscriptionRedemptionResponse]
):
    """구독 교환 요청 리포지토리"""

    def __init__(self, db: Session):
        super().__init__(SubscriptionRedemption, SubscriptionRedemptionResponse, db)

    def list_for_user(self, user_id: str) -> List[SubscriptionRedemptionResponse]:
        rows = (
            self.db.query(SubscriptionRedemption)
            .filter(SubscriptionRedemption.user_id == user_id)
            .order_by(desc(SubscriptionRedemption.id))
            .all()
        )
        return [self._to_schema(row) for row in rows]

    def list_by_status(self, status: RedemptionStatus) -> List[SubscriptionRedemptionResponse]:
        return self.find_all(filters={"status": status.value}, order_by="id")
