"""
포인트 원장 서비스

모든 포인트 변동의 유일한 진입점입니다.

- append_transaction: 원장 기록 -> 잔액 프로젝션 반영 -> 후속 훅(추천 완료, 추천 수수료)을
  하나의 DB 트랜잭션 안에서 처리합니다. 기능별 서비스는 잔액 테이블을 직접 수정하지 않습니다.
- run_atomic: 작업 단위를 한 번에 커밋하고, 일시적 저장소 오류(StaleDataError,
  OperationalError)는 단위 전체를 지수 백오프로 재시도합니다.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, TypeVar, Union

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from loyaltyapi.config import Settings, settings as default_settings
from loyaltyapi.core.balance_guard import SYSTEM_ACTOR, audit_context, privileged_actor
from loyaltyapi.core.exceptions import (
    AuthorizationError,
    BaseAPIException,
    DuplicateSubmissionError,
    InsufficientBalanceError,
    InvalidAmountError,
    LedgerBusyError,
    ValidationError,
)
from loyaltyapi.models.points import PointsCause, PointsTransaction, TransactionKind
from loyaltyapi.models.user import UserRole
from loyaltyapi.repositories.points_repository import PointsRepository
from loyaltyapi.schemas.points import (
    PointsAuditLogEntry,
    PointsBalanceResponse,
    PointsMutationResponse,
    PointsTransactionListResponse,
)
from loyaltyapi.services.referral_service import ReferralService

logger = logging.getLogger(__name__)

T = TypeVar("T")

# 추천 수수료를 발생시키지 않는 사유 (수수료의 연쇄 방지)
NON_COMMISSIONABLE_CAUSES = {
    PointsCause.REFERRAL_COMMISSION.value,
    PointsCause.REFERRAL_BONUS.value,
    PointsCause.ADMIN_ADJUSTMENT.value,
    PointsCause.SIGNUP.value,
}

# 피추천인의 "첫 자격 행동"으로 인정되는 사유
QUALIFYING_CAUSES = {
    PointsCause.TASK_COMPLETION.value,
    PointsCause.DAILY_CHECK_IN.value,
    PointsCause.AD_VIEW.value,
}


@dataclass
class AppliedTransaction:
    """원장 기록 및 잔액 반영 결과"""

    transaction: PointsTransaction
    old_points: int
    new_points: int


def _is_unique_violation(error: IntegrityError) -> bool:
    message = str(error.orig).lower()
    return "unique" in message or "duplicate key" in message


def _cause_value(cause: Union[PointsCause, str]) -> str:
    return cause.value if isinstance(cause, PointsCause) else str(cause)


class LedgerService:
    """포인트 원장 및 잔액 프로젝션을 관리하는 서비스"""

    def __init__(self, db: Session, settings: Settings = default_settings):
        self.db = db
        self.settings = settings
        self.points_repo = PointsRepository(db)
        self.referral_service = ReferralService(db, ledger=self, settings=settings)

    # ------------------------------------------------------------------
    # 작업 단위
    # ------------------------------------------------------------------

    def run_atomic(self, operation: Callable[[], T], label: str = "ledger operation") -> T:
        """
        작업 단위를 실행하고 한 번에 커밋

        Args:
            operation: 커밋 없이 DB 작업만 수행하는 함수
            label: 로그용 작업 이름

        Returns:
            operation의 반환값

        Raises:
            DuplicateSubmissionError: 유니크 제약(멱등성 키) 충돌
            LedgerBusyError: 재시도 횟수를 모두 소진한 일시적 저장소 오류
        """
        attempts = max(1, self.settings.LEDGER_RETRY_ATTEMPTS)
        for attempt in range(attempts):
            try:
                result = operation()
                self.db.commit()
                return result
            except IntegrityError as e:
                self.db.rollback()
                if _is_unique_violation(e):
                    logger.warning(f"Duplicate submission rejected during {label}: {e.orig}")
                    raise DuplicateSubmissionError(details={"operation": label})
                logger.error(f"Integrity error during {label}: {e.orig}")
                raise
            except (StaleDataError, OperationalError) as e:
                self.db.rollback()
                if attempt == attempts - 1:
                    logger.error(f"{label} failed after {attempts} attempts: {str(e)}")
                    raise LedgerBusyError(details={"operation": label}) from e
                delay = self.settings.LEDGER_RETRY_BASE_DELAY * (2 ** attempt)
                logger.warning(
                    f"Transient storage error during {label} "
                    f"(attempt {attempt + 1}/{attempts}), retrying in {delay:.2f}s: {str(e)}"
                )
                time.sleep(delay)
            except Exception:
                self.db.rollback()
                raise
        raise LedgerBusyError(details={"operation": label})

    # ------------------------------------------------------------------
    # 원장 기록 (유일한 거래 추가 경로)
    # ------------------------------------------------------------------

    @staticmethod
    def validate_amount(amount) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmountError(details={"amount": amount})

    def append_transaction(
        self,
        user_id: str,
        kind: TransactionKind,
        amount: int,
        cause: Union[PointsCause, str],
        description: str,
        ref_id: Optional[str] = None,
        changed_by: str = SYSTEM_ACTOR,
    ) -> AppliedTransaction:
        """
        거래를 원장에 추가하고 잔액 프로젝션에 반영 (커밋하지 않음)

        - earn: points += amount, total_earned += amount
        - redeem: points = max(0, points - amount). 잔액 사전 검증은 호출자 책임
        - earn이면 추천 완료/수수료 훅 실행

        Args:
            user_id: 사용자 ID
            kind: earn 또는 redeem
            amount: 양수 포인트
            cause: 거래 사유 분류
            description: 거래 설명
            ref_id: 멱등성 키 (중복 시 DuplicateSubmissionError)
            changed_by: 감사 로그의 변경 주체

        Returns:
            AppliedTransaction: 기록된 거래와 변경 전/후 포인트
        """
        self.validate_amount(amount)
        cause_value = _cause_value(cause)

        if ref_id and self.points_repo.find_by_ref_id(ref_id) is not None:
            raise DuplicateSubmissionError(
                message="Transaction already recorded", details={"ref_id": ref_id}
            )

        # 잔액 행을 먼저 잠그고, 거래를 flush한 뒤 프로젝션을 갱신 (가드가 거래를 볼 수 있도록)
        balance = self.points_repo.get_or_create_balance(user_id)
        old_points = balance.points
        transaction = self.points_repo.insert_transaction(
            user_id=user_id,
            kind=kind,
            amount=amount,
            cause=cause_value,
            description=description,
            ref_id=ref_id,
        )

        if kind == TransactionKind.EARN:
            new_points = old_points + amount
            new_total_earned = balance.total_earned + amount
        else:
            new_points = max(0, old_points - amount)
            new_total_earned = balance.total_earned

        with audit_context(self.db, reason=cause_value, changed_by=changed_by):
            self.points_repo.set_balance(balance, new_points, new_total_earned)

        if kind == TransactionKind.EARN:
            self._run_earn_hooks(transaction)

        return AppliedTransaction(
            transaction=transaction, old_points=old_points, new_points=new_points
        )

    def _run_earn_hooks(self, transaction: PointsTransaction) -> None:
        if transaction.cause in QUALIFYING_CAUSES:
            self.referral_service.complete_pending_referrals(transaction.user_id)
        if transaction.cause not in NON_COMMISSIONABLE_CAUSES:
            self.referral_service.distribute_commissions(transaction)

    def debit_within_unit(
        self,
        user_id: str,
        amount: int,
        cause: Union[PointsCause, str],
        description: str,
        ref_id: Optional[str] = None,
        changed_by: str = SYSTEM_ACTOR,
    ) -> AppliedTransaction:
        """잔액 확인 + redeem 기록을 같은 작업 단위에서 수행 (커밋하지 않음)"""
        self.validate_amount(amount)
        balance = self.points_repo.get_or_create_balance(user_id)
        if balance.points < amount:
            raise InsufficientBalanceError(
                details={"current_points": balance.points, "requested": amount}
            )
        return self.append_transaction(
            user_id=user_id,
            kind=TransactionKind.REDEEM,
            amount=amount,
            cause=cause,
            description=description,
            ref_id=ref_id,
            changed_by=changed_by,
        )

    # ------------------------------------------------------------------
    # 외부 노출 연산
    # ------------------------------------------------------------------

    def credit_points(
        self,
        user_id: str,
        amount: int,
        cause: Union[PointsCause, str],
        description: str,
        ref_id: Optional[str] = None,
    ) -> PointsMutationResponse:
        """포인트 적립

        Raises:
            InvalidAmountError: amount <= 0
        """
        self.validate_amount(amount)
        applied = self.run_atomic(
            lambda: self.append_transaction(
                user_id=user_id,
                kind=TransactionKind.EARN,
                amount=amount,
                cause=cause,
                description=description,
                ref_id=ref_id,
            ),
            label="credit_points",
        )
        logger.info(
            f"Credited {amount} points to user {user_id} ({_cause_value(cause)}): "
            f"{applied.old_points} -> {applied.new_points}"
        )
        return self._to_response(applied, "Points credited")

    def debit_points(
        self,
        user_id: str,
        amount: int,
        cause: Union[PointsCause, str],
        description: str,
        ref_id: Optional[str] = None,
    ) -> PointsMutationResponse:
        """포인트 차감 (잔액 확인 + 기록 + 반영이 하나의 원자적 단위)

        Raises:
            InvalidAmountError: amount <= 0
            InsufficientBalanceError: 현재 포인트 < amount
        """
        self.validate_amount(amount)
        applied = self.run_atomic(
            lambda: self.debit_within_unit(
                user_id=user_id,
                amount=amount,
                cause=cause,
                description=description,
                ref_id=ref_id,
            ),
            label="debit_points",
        )
        logger.info(
            f"Debited {amount} points from user {user_id} ({_cause_value(cause)}): "
            f"{applied.old_points} -> {applied.new_points}"
        )
        return self._to_response(applied, "Points debited")

    def admin_adjust_points(
        self, admin_id: str, admin_role: str, user_id: str, amount: int, reason: str
    ) -> PointsMutationResponse:
        """관리자 포인트 조정 (양수: 적립, 음수: 차감)"""
        if not UserRole.is_admin(admin_role):
            raise AuthorizationError("Admin role required for points adjustment")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount == 0:
            raise InvalidAmountError(details={"amount": amount})

        description = f"Admin adjustment by {admin_id}: {reason}"

        def _adjust() -> AppliedTransaction:
            with privileged_actor(self.db, admin_id, admin_role):
                if amount > 0:
                    return self.append_transaction(
                        user_id=user_id,
                        kind=TransactionKind.EARN,
                        amount=amount,
                        cause=PointsCause.ADMIN_ADJUSTMENT,
                        description=description,
                        changed_by="admin",
                    )
                return self.debit_within_unit(
                    user_id=user_id,
                    amount=-amount,
                    cause=PointsCause.ADMIN_ADJUSTMENT,
                    description=description,
                    changed_by="admin",
                )

        applied = self.run_atomic(_adjust, label="admin_adjust_points")
        logger.info(
            f"Admin {admin_id} adjusted user {user_id} by {amount}: "
            f"{applied.old_points} -> {applied.new_points}"
        )
        return self._to_response(applied, "Points adjusted")

    # ------------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------------

    def get_balance(self, user_id: str) -> PointsBalanceResponse:
        """사용자 포인트 잔액 조회"""
        try:
            return self.points_repo.get_balance_response(user_id)
        except Exception as e:
            logger.error(f"Failed to get balance for user {user_id}: {str(e)}")
            raise ValidationError(f"Failed to retrieve balance: {str(e)}")

    def get_transactions(
        self, user_id: str, limit: int = 50, offset: int = 0
    ) -> PointsTransactionListResponse:
        """사용자 거래 내역 조회 (최신순, 최대 100건)

        Args:
            user_id: 사용자 ID
            limit: 페이지 크기
            offset: 오프셋
        """
        if limit > 100:
            limit = 100

        try:
            entries, total_count = self.points_repo.get_transactions(
                user_id, limit=limit, offset=offset
            )
            return PointsTransactionListResponse(
                balance=self.points_repo.get_balance_response(user_id),
                entries=entries,
                total_count=total_count,
                has_next=offset + limit < total_count,
            )
        except BaseAPIException:
            raise
        except Exception as e:
            logger.error(f"Failed to get transactions for user {user_id}: {str(e)}")
            raise ValidationError(f"Failed to retrieve transactions: {str(e)}")

    def get_audit_log(self, user_id: str, limit: int = 50) -> List[PointsAuditLogEntry]:
        return self.points_repo.get_audit_logs(user_id, limit=min(limit, 200))

    @staticmethod
    def _to_response(applied: AppliedTransaction, message: str) -> PointsMutationResponse:
        return PointsMutationResponse(
            success=True,
            transaction_id=applied.transaction.id,
            old_points=applied.old_points,
            new_points=applied.new_points,
            amount=applied.transaction.amount,
            message=message,
        )
