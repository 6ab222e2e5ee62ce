from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from loyaltyapi.models.promo import PromoCode, PromoRedemption
from loyaltyapi.repositories.base import BaseRepository
from loyaltyapi.schemas.rewards import PromoCodeResponse


class PromoRepository(BaseRepository[PromoCode, PromoCodeResponse]):
    """프로모 코드 리포지토리"""

    def __init__(self, db: Session):
        super().__init__(PromoCode, PromoCodeResponse, db)

    def get_model_by_code(self, code: str) -> Optional[PromoCode]:
        return (
            self.db.query(PromoCode)
            .filter(func.upper(PromoCode.code) == code.strip().upper())
            .first()
        )

    def has_redeemed(self, user_id: str, promo_code_id: int) -> bool:
        return (
            self.db.query(PromoRedemption.id)
            .filter(
                PromoRedemption.user_id == user_id,
                PromoRedemption.promo_code_id == promo_code_id,
            )
            .first()
            is not None
        )

    def claim_use(self, promo_code_id: int) -> bool:
        """사용 횟수를 조건부로 1 증가 (한도 초과 시 False)"""
        updated = (
            self.db.query(PromoCode)
            .filter(
                PromoCode.id == promo_code_id,
                or_(
                    PromoCode.max_uses.is_(None),
                    PromoCode.current_uses < PromoCode.max_uses,
                ),
            )
            .update(
                {PromoCode.current_uses: PromoCode.current_uses + 1},
                synchronize_session=False,
            )
        )
        return updated == 1

    def create_redemption(
        self, user_id: str, promo_code_id: int, points_awarded: int
    ) -> PromoRedemption:
        return self.add(
            PromoRedemption(
                user_id=user_id,
                promo_code_id=promo_code_id,
                points_awarded=points_awarded,
            )
        )

    def list_codes(self, include_inactive: bool = True) -> List[PromoCodeResponse]:
        query = self.db.query(PromoCode)
        if not include_inactive:
            query = query.filter(PromoCode.is_active.is_(True))
        return [self._to_schema(row) for row in query.order_by(PromoCode.id.desc()).all()]
