"""
포인트 복구 엔진 (올리기만 하는 정책)

- 원장 계산값 > 현재값: 원장 값으로 올리고 EMERGENCY_FIX 감사 기록 (changed_by = 실행 ID)
- 원장 계산값 < 현재값: 내리지 않고 수동 검토 대상으로 표시
- 같으면 아무것도 하지 않음

같은 실행 ID로 이미 감사 기록이 남은 사용자는 건너뛰므로 재실행해도 중복 수정되지 않는다.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy.orm import Session

from loyaltyapi.config import Settings
from loyaltyapi.core.balance_guard import audit_context
from loyaltyapi.core.exceptions import NotFoundError
from loyaltyapi.repositories.user_repository import UserRepository
from loyaltyapi.schemas.audit import RepairAllResponse, RepairUserResponse
from loyaltyapi.services.audit_service import calculate_ledger_totals
from loyaltyapi.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)

REPAIR_REASON = "EMERGENCY_FIX"


def new_run_id() -> str:
    return f"repair-{uuid.uuid4()}"


class RepairService:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.ledger = LedgerService(db, settings=settings)
        self.points_repo = self.ledger.points_repo
        self.user_repo = UserRepository(db)

    def repair_user(self, user_id: str, run_id: Optional[str] = None) -> RepairUserResponse:
        """
        단일 사용자 복구

        Args:
            user_id: 사용자 ID
            run_id: 복구 실행 ID (없으면 새로 생성)

        Raises:
            NotFoundError: 존재하지 않는 사용자
        """
        run_id = run_id or new_run_id()

        def _repair() -> RepairUserResponse:
            if self.user_repo.get_model(user_id) is None:
                raise NotFoundError(f"User {user_id} not found")

            balance = self.points_repo.get_or_create_balance(user_id)
            old_points = balance.points
            old_total_earned = balance.total_earned

            if self.points_repo.has_audit_entry(user_id, run_id):
                return RepairUserResponse(
                    user_id=user_id,
                    run_id=run_id,
                    old_points=old_points,
                    new_points=old_points,
                    old_total_earned=old_total_earned,
                    new_total_earned=old_total_earned,
                    fixed=False,
                    message="Already repaired in this run",
                )

            calculated_points, calculated_total_earned = calculate_ledger_totals(
                self.points_repo, user_id
            )
            new_points = max(old_points, calculated_points)
            new_total_earned = max(old_total_earned, calculated_total_earned)
            fixed = new_points != old_points or new_total_earned != old_total_earned

            if fixed:
                with audit_context(self.db, reason=REPAIR_REASON, changed_by=run_id):
                    self.points_repo.set_balance(balance, new_points, new_total_earned)

            flagged = (
                calculated_points < old_points
                or calculated_total_earned < old_total_earned
            )
            messages = []
            if fixed:
                messages.append(
                    f"Raised points {old_points} -> {new_points}, "
                    f"total_earned {old_total_earned} -> {new_total_earned}"
                )
            if flagged:
                messages.append(
                    f"Balance above ledger (points {old_points} vs {calculated_points}, "
                    f"total_earned {old_total_earned} vs {calculated_total_earned}); "
                    "left unchanged for manual review"
                )

            return RepairUserResponse(
                user_id=user_id,
                run_id=run_id,
                old_points=old_points,
                new_points=new_points,
                old_total_earned=old_total_earned,
                new_total_earned=new_total_earned,
                fixed=fixed,
                flagged=flagged,
                message="; ".join(messages) or "No changes needed",
            )

        result = self.ledger.run_atomic(_repair, label="repair_user")
        if result.fixed:
            logger.warning(f"[{run_id}] Repaired user {user_id}: {result.message}")
        elif result.flagged:
            logger.warning(f"[{run_id}] Flagged user {user_id}: {result.message}")
        return result

    def repair_all_users(
        self, run_id: Optional[str] = None, batch_size: Optional[int] = None
    ) -> RepairAllResponse:
        """전체 사용자 복구 (사용자마다 별도 작업 단위, 오류는 수집 후 계속)"""
        run_id = run_id or new_run_id()
        batch_size = batch_size or self.settings.AUDIT_BATCH_SIZE
        response = RepairAllResponse(run_id=run_id, users_checked=0, users_fixed=0)

        for batch in self.points_repo.iter_user_id_batches(batch_size):
            for user_id in batch:
                response.users_checked += 1
                try:
                    result = self.repair_user(user_id, run_id=run_id)
                except Exception as e:
                    logger.error(f"[{run_id}] Repair failed for user {user_id}: {str(e)}")
                    response.errors.append(f"{user_id}: {str(e)}")
                    continue
                if result.fixed:
                    response.users_fixed += 1
                    response.fixes.append(f"{user_id}: {result.message}")
                if result.flagged:
                    response.issues_found.append(f"{user_id}: {result.message}")

        logger.info(
            f"[{run_id}] Repair sweep checked {response.users_checked} users, "
            f"fixed {response.users_fixed}, flagged {len(response.issues_found)}, "
            f"errors {len(response.errors)}"
        )
        return response
