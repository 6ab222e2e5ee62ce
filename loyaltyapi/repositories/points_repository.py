"""
포인트 리포지토리 - 원장/잔액 프로젝션/감사 로그 데이터 접근

핵심 원칙:
- 원장(points_transactions)은 추가만 가능하며 ref_id로 중복 기록을 막는다
- 잔액 프로젝션(points_balances)은 행 잠금 + version 컬럼으로 보호된다
- 잔액 변경은 balance_guard의 매퍼 이벤트를 통과하며 감사 로그가 자동 기록된다

이 리포지토리는 flush까지만 수행하며 커밋은 LedgerService의 작업 단위가 담당한다.
"""

from datetime import timedelta
from typing import Dict, Iterator, List, Optional, Tuple

from sqlalchemy import and_, desc, func, not_
from sqlalchemy.orm import Session

from loyaltyapi.core import balance_guard  # noqa: F401  가드/감사 매퍼 이벤트 등록
from loyaltyapi.models.points import (
    PointsAuditLog,
    PointsBalance,
    PointsTransaction,
    TransactionKind,
)
from loyaltyapi.models.user import User
from loyaltyapi.repositories.base import BaseRepository
from loyaltyapi.schemas.points import (
    PointsAuditLogEntry,
    PointsBalanceResponse,
    PointsTransactionEntry,
)
from loyaltyapi.utils.timezone_utils import ensure_utc


class PointsRepository(BaseRepository[PointsTransaction, PointsTransactionEntry]):
    """포인트 원장 및 잔액 프로젝션 리포지토리"""

    def __init__(self, db: Session):
        super().__init__(PointsTransaction, PointsTransactionEntry, db)

    # ------------------------------------------------------------------
    # 잔액 프로젝션
    # ------------------------------------------------------------------

    def get_balance_model(
        self, user_id: str, for_update: bool = False, fresh: bool = False
    ) -> Optional[PointsBalance]:
        """
        잔액 행 조회

        Args:
            user_id: 사용자 ID
            for_update: True면 SELECT ... FOR UPDATE로 행 잠금 후 최신 값으로 갱신
            fresh: True면 잠금 없이 세션에 캐시된 값을 DB 값으로 갱신
        """
        query = self.db.query(PointsBalance).filter(PointsBalance.user_id == user_id)
        if for_update:
            query = query.with_for_update()
        if for_update or fresh:
            query = query.populate_existing()
        return query.first()

    def get_or_create_balance(self, user_id: str) -> PointsBalance:
        """잔액 행을 잠그고 반환, 없으면 0으로 생성"""
        balance = self.get_balance_model(user_id, for_update=True)
        if balance is None:
            balance = PointsBalance(user_id=user_id, points=0, total_earned=0)
            self.add(balance)
        return balance

    def get_balance_response(self, user_id: str) -> PointsBalanceResponse:
        balance = self.get_balance_model(user_id)
        if balance is None:
            return PointsBalanceResponse(user_id=user_id, points=0, total_earned=0)
        return PointsBalanceResponse.model_validate(balance)

    def set_balance(self, balance: PointsBalance, points: int, total_earned: int) -> PointsBalance:
        """프로젝션 값 변경 후 flush (가드/감사 이벤트 발생)"""
        balance.points = points
        balance.total_earned = total_earned
        self.db.flush()
        return balance

    # ------------------------------------------------------------------
    # 원장
    # ------------------------------------------------------------------

    def insert_transaction(
        self,
        user_id: str,
        kind: TransactionKind,
        amount: int,
        cause: str,
        description: str,
        ref_id: Optional[str] = None,
    ) -> PointsTransaction:
        """원장에 거래 추가 후 flush (ref_id 중복 시 IntegrityError)"""
        return self.create(
            user_id=user_id,
            kind=kind.value,
            amount=amount,
            cause=cause,
            description=description,
            ref_id=ref_id,
        )

    def find_by_ref_id(self, ref_id: str) -> Optional[PointsTransaction]:
        return (
            self.db.query(PointsTransaction)
            .filter(PointsTransaction.ref_id == ref_id)
            .first()
        )

    def sum_by_kind(self, user_id: str) -> Dict[str, int]:
        """사용자의 earn/redeem 합계"""
        rows = (
            self.db.query(
                PointsTransaction.kind,
                func.coalesce(func.sum(PointsTransaction.amount), 0),
            )
            .filter(PointsTransaction.user_id == user_id)
            .group_by(PointsTransaction.kind)
            .all()
        )
        totals = {TransactionKind.EARN.value: 0, TransactionKind.REDEEM.value: 0}
        for kind, total in rows:
            totals[kind] = int(total)
        return totals

    def get_transactions(
        self, user_id: str, limit: int = 50, offset: int = 0
    ) -> Tuple[List[PointsTransactionEntry], int]:
        """사용자 거래 내역 (최신순) 및 전체 건수"""
        base = self.db.query(PointsTransaction).filter(
            PointsTransaction.user_id == user_id
        )
        total_count = base.count()
        rows = (
            base.order_by(desc(PointsTransaction.created_at), desc(PointsTransaction.id))
            .limit(limit)
            .offset(offset)
            .all()
        )
        return [self._to_schema(row) for row in rows], total_count

    def find_duplicate_transactions(
        self, user_id: str, window_seconds: int
    ) -> List[Tuple[PointsTransaction, PointsTransaction]]:
        """
        같은 금액/설명의 거래가 window_seconds 이내에 연속 기록된 쌍을 찾는다
        (재시도/이중 제출 휴리스틱)
        """
        rows = (
            self.db.query(PointsTransaction)
            .filter(PointsTransaction.user_id == user_id)
            .order_by(
                PointsTransaction.amount,
                PointsTransaction.description,
                PointsTransaction.created_at,
                PointsTransaction.id,
            )
            .all()
        )
        window = timedelta(seconds=window_seconds)
        pairs = []
        for previous, current in zip(rows, rows[1:]):
            if (
                previous.amount == current.amount
                and previous.description == current.description
                and ensure_utc(current.created_at) - ensure_utc(previous.created_at) <= window
            ):
                pairs.append((previous, current))
        return pairs

    # ------------------------------------------------------------------
    # 감사 로그
    # ------------------------------------------------------------------

    def get_audit_logs(self, user_id: str, limit: int = 50) -> List[PointsAuditLogEntry]:
        rows = (
            self.db.query(PointsAuditLog)
            .filter(PointsAuditLog.user_id == user_id)
            .order_by(desc(PointsAuditLog.changed_at), desc(PointsAuditLog.id))
            .limit(limit)
            .all()
        )
        return [PointsAuditLogEntry.model_validate(row) for row in rows]

    def find_unexpected_deductions(self, user_id: str) -> List[PointsAuditLogEntry]:
        """redemption/admin 사유가 아닌 포인트 감소 기록"""
        reason = func.lower(PointsAuditLog.reason)
        rows = (
            self.db.query(PointsAuditLog)
            .filter(
                and_(
                    PointsAuditLog.user_id == user_id,
                    PointsAuditLog.new_points < PointsAuditLog.old_points,
                    not_(reason.like("%redemption%")),
                    not_(reason.like("%admin%")),
                )
            )
            .order_by(PointsAuditLog.changed_at)
            .all()
        )
        return [PointsAuditLogEntry.model_validate(row) for row in rows]

    def has_audit_entry(self, user_id: str, changed_by: str) -> bool:
        """특정 변경 주체(예: 복구 실행 ID)가 남긴 감사 기록 존재 여부"""
        return (
            self.db.query(PointsAuditLog.id)
            .filter(
                PointsAuditLog.user_id == user_id,
                PointsAuditLog.changed_by == changed_by,
            )
            .first()
            is not None
        )

    # ------------------------------------------------------------------
    # 일괄 처리
    # ------------------------------------------------------------------

    def iter_user_id_batches(self, batch_size: int) -> Iterator[List[str]]:
        """사용자 ID를 키셋 페이지네이션으로 batch_size씩 순회"""
        last_id = None
        while True:
            query = self.db.query(User.id).order_by(User.id)
            if last_id is not None:
                query = query.filter(User.id > last_id)
            batch = [row[0] for row in query.limit(batch_size).all()]
            if not batch:
                return
            yield batch
            last_id = batch[-1]
