"""
추천(Referral) 엔진

1. 가입 귀속: 추천인 체인을 따라 레벨 1~3의 pending 추천 관계 생성
2. 추천 완료: 피추천인의 첫 자격 행동 시 pending -> completed 전환 + 고정 보너스(500/200/100)
3. 추천 수수료: 피추천인의 적립마다 상위 3단계 추천인에게 10%/5%/2% (내림) 지급

체인 순회는 최대 3단계의 반복문이며, 방문 집합으로 순환(A -> B -> A)을 끊는다.
수수료 거래는 수수료 대상에서 제외되므로 연쇄되지 않는다.
"""

import logging
from decimal import ROUND_FLOOR, Decimal
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy.orm import Session

from loyaltyapi.config import Settings, settings as default_settings
from loyaltyapi.core.exceptions import NotFoundError
from loyaltyapi.models.points import PointsCause, PointsTransaction, TransactionKind
from loyaltyapi.models.referral import Referral, ReferralCommission, ReferralStatus
from loyaltyapi.models.user import User
from loyaltyapi.repositories.referral_repository import ReferralRepository
from loyaltyapi.repositories.user_repository import UserRepository
from loyaltyapi.schemas.referral import ReferralStatsResponse

if TYPE_CHECKING:
    from loyaltyapi.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)

MAX_REFERRAL_LEVEL = 3


def calculate_commission(amount: int, rate: float) -> int:
    """floor(amount * rate)를 부동소수 오차 없이 계산"""
    value = (Decimal(amount) * Decimal(str(rate))).to_integral_value(rounding=ROUND_FLOOR)
    return int(value)


class ReferralService:
    """추천 관계/보너스/수수료 처리 서비스"""

    def __init__(
        self,
        db: Session,
        ledger: "LedgerService",
        settings: Settings = default_settings,
    ):
        self.db = db
        self.ledger = ledger
        self.settings = settings
        self.referral_repo = ReferralRepository(db)
        self.user_repo = UserRepository(db)

    def attribute_signup(self, user: User, referrer: User) -> List[Referral]:
        """
        신규 가입자를 추천인 체인에 귀속 (커밋하지 않음)

        Args:
            user: 신규 가입자
            referrer: 추천 코드의 주인 (레벨 1 추천인)

        Returns:
            List[Referral]: 생성된 pending 추천 관계 (레벨 오름차순)
        """
        created = []
        visited = {user.id}
        current_id: Optional[str] = referrer.id

        for level in range(1, MAX_REFERRAL_LEVEL + 1):
            if current_id is None:
                break
            if current_id in visited:
                logger.warning(
                    f"Referral cycle detected while attributing user {user.id} at level {level}"
                )
                break
            visited.add(current_id)
            created.append(
                self.referral_repo.create_referral(
                    referrer_id=current_id,
                    referred_id=user.id,
                    referral_code=referrer.referral_code,
                    level=level,
                )
            )
            current_id = self.user_repo.get_referrer_id(current_id)

        logger.info(f"Attributed user {user.id} to {len(created)} referrer(s)")
        return created

    def complete_pending_referrals(self, referred_id: str) -> int:
        """
        피추천인의 pending 추천 관계를 모두 완료 처리하고 보너스 지급

        조건부 UPDATE로 전환에 성공한 관계에만 보너스를 지급하므로 한 번만 실행된다.

        Returns:
            int: 지급한 보너스 합계
        """
        total_bonus = 0
        for referral in self.referral_repo.get_pending_for_referred(referred_id):
            bonus = self.settings.REFERRAL_BONUS_POINTS.get(referral.level, 0)
            if not self.referral_repo.mark_completed(referral.id, bonus):
                continue
            if bonus > 0:
                self.ledger.append_transaction(
                    user_id=referral.referrer_id,
                    kind=TransactionKind.EARN,
                    amount=bonus,
                    cause=PointsCause.REFERRAL_BONUS,
                    description=f"Level {referral.level} referral bonus for {referred_id}",
                    ref_id=f"referral_bonus:{referral.id}",
                )
                total_bonus += bonus
            logger.info(
                f"Referral {referral.id} completed: referrer {referral.referrer_id} "
                f"level {referral.level} bonus {bonus}"
            )
        return total_bonus

    def distribute_commissions(self, transaction: PointsTransaction) -> List[ReferralCommission]:
        """
        적립 거래 1건에 대한 상위 추천인 수수료 지급 (최대 3단계)

        Args:
            transaction: 피추천인의 earn 거래 (수수료 대상 사유)

        Returns:
            List[ReferralCommission]: 기록된 수수료 (1포인트 미만 레벨은 제외)
        """
        commissions = []
        visited = {transaction.user_id}
        current_id = transaction.user_id

        for level in range(1, MAX_REFERRAL_LEVEL + 1):
            referrer_id = self.user_repo.get_referrer_id(current_id)
            if referrer_id is None:
                break
            if referrer_id in visited:
                logger.warning(
                    f"Referral cycle detected above user {current_id}; "
                    f"stopping commission for transaction {transaction.id} at level {level}"
                )
                break
            visited.add(referrer_id)

            rate = self.settings.REFERRAL_COMMISSION_RATES.get(level, 0)
            commission_points = calculate_commission(transaction.amount, rate)
            if commission_points >= 1:
                applied = self.ledger.append_transaction(
                    user_id=referrer_id,
                    kind=TransactionKind.EARN,
                    amount=commission_points,
                    cause=PointsCause.REFERRAL_COMMISSION,
                    description=f"Level {level} commission from {transaction.user_id}",
                    ref_id=f"referral_commission:{transaction.id}:{level}",
                )
                commissions.append(
                    self.referral_repo.create_commission(
                        referrer_id=referrer_id,
                        referred_id=transaction.user_id,
                        source_transaction_id=transaction.id,
                        commission_transaction_id=applied.transaction.id,
                        original_points=transaction.amount,
                        commission_percentage=rate * 100,
                        commission_points=commission_points,
                        level=level,
                    )
                )

            current_id = referrer_id

        return commissions

    def get_referral_stats(self, user_id: str) -> ReferralStatsResponse:
        """추천 현황 조회"""
        user = self.user_repo.get_model(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return ReferralStatsResponse(
            referral_code=user.referral_code,
            referrals_by_level=self.referral_repo.count_by_level(user_id),
            pending_count=self.referral_repo.count_by_status(user_id, ReferralStatus.PENDING),
            completed_count=self.referral_repo.count_by_status(
                user_id, ReferralStatus.COMPLETED
            ),
            total_bonus_points=self.referral_repo.total_bonus_points(user_id),
            total_commission_points=self.referral_repo.total_commission_points(user_id),
        )
