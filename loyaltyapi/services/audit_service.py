"""
포인트 정합성 감사 서비스 (읽기 전용)

원장(points_transactions)으로 계산한 값과 잔액 프로젝션을 비교합니다.
- calculated_points = max(0, sum(earn) - sum(redeem))
- calculated_total_earned = sum(earn)

아무것도 수정하지 않으며, 수정은 RepairService가 담당합니다.
"""

import logging
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from loyaltyapi.config import Settings
from loyaltyapi.core.exceptions import NotFoundError
from loyaltyapi.models.points import TransactionKind
from loyaltyapi.repositories.points_repository import PointsRepository
from loyaltyapi.repositories.user_repository import UserRepository
from loyaltyapi.schemas.audit import AuditAllResponse, PointsIssueReport

logger = logging.getLogger(__name__)


def calculate_ledger_totals(points_repo: PointsRepository, user_id: str) -> Tuple[int, int]:
    """원장 기준 (calculated_points, calculated_total_earned)"""
    totals = points_repo.sum_by_kind(user_id)
    earned = totals[TransactionKind.EARN.value]
    redeemed = totals[TransactionKind.REDEEM.value]
    return max(0, earned - redeemed), earned


class AuditService:
    """사용자 포인트 감사"""

    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.points_repo = PointsRepository(db)
        self.user_repo = UserRepository(db)

    def audit_user(self, user_id: str) -> PointsIssueReport:
        """
        단일 사용자 감사

        Raises:
            NotFoundError: 존재하지 않는 사용자
        """
        user = self.user_repo.get_model(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        balance = self.points_repo.get_balance_model(user_id, fresh=True)
        current_points = balance.points if balance else 0
        current_total_earned = balance.total_earned if balance else 0
        calculated_points, calculated_total_earned = calculate_ledger_totals(
            self.points_repo, user_id
        )

        report = PointsIssueReport(
            user_id=user_id,
            email=user.email,
            current_points=current_points,
            calculated_points=calculated_points,
            current_total_earned=current_total_earned,
            calculated_total_earned=calculated_total_earned,
        )

        if current_points != calculated_points:
            report.issues.append(
                f"Points mismatch: has {current_points}, should have {calculated_points}"
            )
            if current_points < calculated_points:
                report.causes.append(
                    "Balance was lowered outside the ledger (direct write or lost update)"
                )
                report.recommendations.append(
                    f"Run repair to raise points to {calculated_points}"
                )
            else:
                report.causes.append(
                    "Ledger is missing entries for credited points (possible migration gap)"
                )
                report.recommendations.append(
                    "Review manually; repair never lowers points"
                )

        if current_total_earned != calculated_total_earned:
            report.issues.append(
                f"Total earned mismatch: has {current_total_earned}, "
                f"should have {calculated_total_earned}"
            )
            if current_total_earned < calculated_total_earned:
                report.recommendations.append(
                    f"Run repair to raise total_earned to {calculated_total_earned}"
                )

        if current_points < 0:
            report.issues.append(f"Negative points: {current_points}")
            report.causes.append("Balance constraint was bypassed")
            report.recommendations.append("Investigate writes to points_balances")

        if current_points > current_total_earned:
            report.issues.append(
                f"Points exceed total earned: {current_points} > {current_total_earned}"
            )
            report.causes.append("Points were credited without updating total_earned")

        deductions = self.points_repo.find_unexpected_deductions(user_id)
        if deductions:
            report.issues.append(f"Unexpected deductions: {len(deductions)}")
            for entry in deductions:
                report.causes.append(
                    f"Points dropped {entry.old_points} -> {entry.new_points} "
                    f"at {entry.changed_at.isoformat()} (reason: {entry.reason})"
                )
            report.recommendations.append(
                "Check the audit log entries above and restore points if unjustified"
            )

        duplicates = self.points_repo.find_duplicate_transactions(
            user_id, self.settings.DUPLICATE_WINDOW_SECONDS
        )
        if duplicates:
            report.issues.append(f"Suspicious duplicate transactions: {len(duplicates)}")
            for first, second in duplicates:
                report.causes.append(
                    f"Transactions {first.id} and {second.id} share amount {first.amount} "
                    f"and description '{first.description}'"
                )
            report.recommendations.append("Verify whether the duplicates were double submissions")

        if report.has_issues:
            logger.warning(f"Audit found {len(report.issues)} issue(s) for user {user_id}")
        return report

    def audit_all_users(self, batch_size: Optional[int] = None) -> AuditAllResponse:
        """전체 사용자 감사 (문제가 있는 사용자만 보고, 사용자별 오류는 수집 후 계속)"""
        batch_size = batch_size or self.settings.AUDIT_BATCH_SIZE
        reports = []
        errors = []
        users_checked = 0

        for batch in self.points_repo.iter_user_id_batches(batch_size):
            for user_id in batch:
                users_checked += 1
                try:
                    report = self.audit_user(user_id)
                except Exception as e:
                    logger.error(f"Audit failed for user {user_id}: {str(e)}")
                    errors.append(f"{user_id}: {str(e)}")
                    self.db.rollback()
                    continue
                if report.has_issues:
                    reports.append(report)
            # 배치마다 읽기 트랜잭션 종료
            self.db.rollback()

        logger.info(
            f"Audit sweep checked {users_checked} users: "
            f"{len(reports)} with issues, {len(errors)} errors"
        )
        return AuditAllResponse(users_checked=users_checked, reports=reports, errors=errors)
