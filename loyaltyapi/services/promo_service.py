"""
프로모 코드 서비스

사용자 코드 사용 순서 (하나의 작업 단위):
1. 잔액 행 잠금 (사용자 단위 직렬화)
2. 코드 활성/기간 검증, 사용자별 중복 사용 검사
3. 전체 사용 한도 조건부 증가 (경쟁 중인 요청 중 한도 내 요청만 성공)
4. earn 거래 기록 + 사용 기록 (UNIQUE(user_id, promo_code_id)가 최종 방어선)
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from loyaltyapi.config import Settings
from loyaltyapi.core.exceptions import (
    ConflictError,
    DuplicateSubmissionError,
    NotFoundError,
    PromoCodeError,
    ValidationError,
)
from loyaltyapi.models.points import PointsCause, TransactionKind
from loyaltyapi.repositories.promo_repository import PromoRepository
from loyaltyapi.schemas.rewards import (
    PromoCodeCreateRequest,
    PromoCodeRedeemResponse,
    PromoCodeResponse,
)
from loyaltyapi.services.ledger_service import LedgerService
from loyaltyapi.utils.timezone_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)


class PromoService:
    """프로모 코드 사용/관리 서비스"""

    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.promo_repo = PromoRepository(db)
        self.ledger = LedgerService(db, settings=settings)

    def redeem_promo_code(
        self, user_id: str, code: str, now: Optional[datetime] = None
    ) -> PromoCodeRedeemResponse:
        """
        프로모 코드 사용

        Raises:
            PromoCodeError: 없는 코드, 비활성, 기간 외, 사용 한도 소진
            DuplicateSubmissionError: 이미 사용한 코드
        """
        now = ensure_utc(now) if now else utc_now()

        def _redeem():
            self.ledger.points_repo.get_or_create_balance(user_id)

            promo = self.promo_repo.get_model_by_code(code)
            if promo is None or not promo.is_active:
                raise PromoCodeError("Invalid or inactive promo code", details={"code": code})
            if promo.starts_at and now < ensure_utc(promo.starts_at):
                raise PromoCodeError("Promo code is not active yet", details={"code": code})
            if promo.expires_at and now > ensure_utc(promo.expires_at):
                raise PromoCodeError("Promo code has expired", details={"code": code})
            if self.promo_repo.has_redeemed(user_id, promo.id):
                raise DuplicateSubmissionError(
                    message="Promo code already redeemed", details={"code": promo.code}
                )
            if not self.promo_repo.claim_use(promo.id):
                raise PromoCodeError(
                    "Promo code usage limit reached", details={"code": promo.code}
                )

            applied = self.ledger.append_transaction(
                user_id=user_id,
                kind=TransactionKind.EARN,
                amount=promo.points,
                cause=PointsCause.PROMO_CODE,
                description=f"Promo code {promo.code}",
                ref_id=f"promo:{promo.id}:{user_id}",
            )
            redemption = self.promo_repo.create_redemption(
                user_id=user_id, promo_code_id=promo.id, points_awarded=promo.points
            )
            redemption.transaction_id = applied.transaction.id
            return promo.code, promo.points, applied

        promo_code, points, applied = self.ledger.run_atomic(
            _redeem, label="redeem_promo_code"
        )
        logger.info(f"User {user_id} redeemed promo code {promo_code}: +{points}")
        return PromoCodeRedeemResponse(
            code=promo_code, points_awarded=points, new_points=applied.new_points
        )

    def create_promo_code(
        self, request: PromoCodeCreateRequest, created_by: Optional[str] = None
    ) -> PromoCodeResponse:
        code = request.code.strip().upper()
        if (
            request.starts_at
            and request.expires_at
            and ensure_utc(request.expires_at) <= ensure_utc(request.starts_at)
        ):
            raise ValidationError("expires_at must be after starts_at")

        def _create():
            if self.promo_repo.get_model_by_code(code) is not None:
                raise ConflictError(f"Promo code {code} already exists")
            return self.promo_repo.create(
                code=code,
                points=request.points,
                description=request.description,
                max_uses=request.max_uses,
                current_uses=0,
                starts_at=request.starts_at,
                expires_at=request.expires_at,
                is_active=True,
                created_by=created_by,
            )

        promo = self.ledger.run_atomic(_create, label="create_promo_code")
        logger.info(f"Promo code {code} created by {created_by} ({promo.points} points)")
        return PromoCodeResponse.model_validate(promo)

    def list_promo_codes(self, include_inactive: bool = True) -> List[PromoCodeResponse]:
        return self.promo_repo.list_codes(include_inactive=include_inactive)

    def deactivate_promo_code(self, promo_code_id: int) -> PromoCodeResponse:
        def _deactivate():
            promo = self.promo_repo.get_model(promo_code_id)
            if promo is None:
                raise NotFoundError(f"Promo code {promo_code_id} not found")
            promo.is_active = False
            self.db.flush()
            return promo

        promo = self.ledger.run_atomic(_deactivate, label="deactivate_promo_code")
        logger.info(f"Promo code {promo.code} deactivated")
        return PromoCodeResponse.model_validate(promo)
