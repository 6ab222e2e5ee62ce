from typing import Dict, List

from sqlalchemy import func
from sqlalchemy.orm import Session

from loyaltyapi.models.referral import Referral, ReferralCommission, ReferralStatus
from loyaltyapi.repositories.base import BaseRepository
from loyaltyapi.schemas.referral import ReferralStatsResponse
from loyaltyapi.utils.timezone_utils import utc_now


class ReferralRepository(BaseRepository[Referral, ReferralStatsResponse]):
    """추천 관계 및 수수료 리포지토리"""

    def __init__(self, db: Session):
        super().__init__(Referral, ReferralStatsResponse, db)

    def create_referral(
        self, referrer_id: str, referred_id: str, referral_code: str, level: int
    ) -> Referral:
        return self.create(
            referrer_id=referrer_id,
            referred_id=referred_id,
            referral_code=referral_code,
            level=level,
            status=ReferralStatus.PENDING.value,
            points_awarded=0,
        )

    def get_pending_for_referred(self, referred_id: str) -> List[Referral]:
        return (
            self.db.query(Referral)
            .filter(
                Referral.referred_id == referred_id,
                Referral.status == ReferralStatus.PENDING.value,
            )
            .order_by(Referral.level)
            .all()
        )

    def mark_completed(self, referral_id: int, points_awarded: int) -> bool:
        """
        pending -> completed 전환 (조건부 UPDATE)

        Returns:
            bool: 이번 호출이 전환에 성공했는지 여부 (이미 completed면 False)
        """
        updated = (
            self.db.query(Referral)
            .filter(
                Referral.id == referral_id,
                Referral.status == ReferralStatus.PENDING.value,
            )
            .update(
                {
                    Referral.status: ReferralStatus.COMPLETED.value,
                    Referral.points_awarded: points_awarded,
                    Referral.completed_at: utc_now(),
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    def create_commission(self, **kwargs) -> ReferralCommission:
        return self.add(ReferralCommission(**kwargs))

    def count_by_level(self, referrer_id: str) -> Dict[int, int]:
        rows = (
            self.db.query(Referral.level, func.count(Referral.id))
            .filter(Referral.referrer_id == referrer_id)
            .group_by(Referral.level)
            .all()
        )
        counts = {1: 0, 2: 0, 3: 0}
        for level, count in rows:
            counts[level] = count
        return counts

    def count_by_status(self, referrer_id: str, status: ReferralStatus) -> int:
        return (
            self.db.query(Referral)
            .filter(Referral.referrer_id == referrer_id, Referral.status == status.value)
            .count()
        )

    def total_commission_points(self, referrer_id: str) -> int:
        total = (
            self.db.query(func.coalesce(func.sum(ReferralCommission.commission_points), 0))
            .filter(ReferralCommission.referrer_id == referrer_id)
            .scalar()
        )
        return int(total or 0)

    def total_bonus_points(self, referrer_id: str) -> int:
        total = (
            self.db.query(func.coalesce(func.sum(Referral.points_awarded), 0))
            .filter(
                Referral.referrer_id == referrer_id,
                Referral.status == ReferralStatus.COMPLETED.value,
            )
            .scalar()
        )
        return int(total or 0)
