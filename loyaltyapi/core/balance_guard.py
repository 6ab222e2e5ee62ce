"""
잔액 보호 가드 및 감사 로그 훅

PointsBalance 행에 대한 모든 ORM UPDATE는 아래 두 매퍼 이벤트를 통과한다.
1. before_update: 포인트 감소가 정당한지 검증
   - 최근 GUARD_WINDOW_SECONDS 이내에 감소량과 일치하는 redeem 거래가 있거나
   - 세션이 관리자 컨텍스트(privileged_actor)로 표시된 경우에만 허용
   - 그 외에는 UnauthorizedDeductionError로 flush 전체를 거부
2. after_update: 변경 전/후 포인트를 points_audit_logs에 기록

세션 단위 컨텍스트(Session.info)로 행위자와 감사 사유를 전달한다.
"""

import logging
from contextlib import contextmanager
from datetime import timedelta
from typing import Optional

from sqlalchemy import and_, event, inspect, or_, select
from sqlalchemy.orm import Session, object_session

from loyaltyapi.config import settings
from loyaltyapi.core.exceptions import UnauthorizedDeductionError
from loyaltyapi.models.points import (
    PointsAuditLog,
    PointsBalance,
    PointsTransaction,
    TransactionKind,
)
from loyaltyapi.models.user import UserRole
from loyaltyapi.utils.timezone_utils import utc_now

logger = logging.getLogger(__name__)

ACTOR_KEY = "points_actor"
AUDIT_KEY = "points_audit"
SYSTEM_ACTOR = "system"
_PENDING_CHANGES = "points_pending_changes"


@contextmanager
def privileged_actor(session: Session, actor_id: str, role: str):
    """블록 안에서 관리자 권한으로 잔액을 변경 (역할이 관리자가 아니면 효과 없음)"""
    previous = session.info.get(ACTOR_KEY)
    session.info[ACTOR_KEY] = {"actor_id": actor_id, "role": role}
    try:
        yield
    finally:
        if previous is None:
            session.info.pop(ACTOR_KEY, None)
        else:
            session.info[ACTOR_KEY] = previous


@contextmanager
def audit_context(session: Session, reason: str, changed_by: str = SYSTEM_ACTOR):
    """블록 안의 잔액 변경에 기록될 감사 사유/변경 주체 지정"""
    previous = session.info.get(AUDIT_KEY)
    session.info[AUDIT_KEY] = {"reason": reason, "changed_by": changed_by}
    try:
        yield
    finally:
        if previous is None:
            session.info.pop(AUDIT_KEY, None)
        else:
            session.info[AUDIT_KEY] = previous


def _is_privileged(session: Optional[Session]) -> bool:
    if session is None:
        return False
    actor = session.info.get(ACTOR_KEY)
    return bool(actor) and UserRole.is_admin(actor.get("role"))


def _previous_points(connection, target: PointsBalance) -> Optional[int]:
    history = inspect(target).attrs.points.history
    if history.deleted:
        return history.deleted[0]
    if not history.added:
        return None
    # 로드되지 않은 속성에 값을 덮어쓴 경우 DB의 현재 값을 기준으로 판단
    return connection.execute(
        select(PointsBalance.points).where(PointsBalance.user_id == target.user_id)
    ).scalar()


def _has_matching_redeem(connection, user_id: str, old_points: int, new_points: int) -> bool:
    decrease = old_points - new_points
    matches = PointsTransaction.amount == decrease
    if new_points == 0:
        # redeem은 0에서 클램프되므로 잔액 이상의 차감도 정당
        matches = or_(matches, PointsTransaction.amount >= old_points)

    since = utc_now() - timedelta(seconds=settings.GUARD_WINDOW_SECONDS)
    stmt = (
        select(PointsTransaction.id)
        .where(
            and_(
                PointsTransaction.user_id == user_id,
                PointsTransaction.kind == TransactionKind.REDEEM.value,
                PointsTransaction.created_at >= since,
                matches,
            )
        )
        .limit(1)
    )
    return connection.execute(stmt).first() is not None


@event.listens_for(PointsBalance, "before_update")
def guard_points_decrease(mapper, connection, target: PointsBalance) -> None:
    session = object_session(target)
    pending = session.info.setdefault(_PENDING_CHANGES, {}) if session else {}
    pending.pop(target.user_id, None)

    old_points = _previous_points(connection, target)
    new_points = target.points
    earned_changed = inspect(target).attrs.total_earned.history.has_changes()
    if old_points is None:
        if not earned_changed:
            return
        old_points = new_points
    if old_points == new_points and not earned_changed:
        return

    if new_points < old_points:
        if _is_privileged(session):
            logger.info(
                f"Privileged deduction for user {target.user_id}: {old_points} -> {new_points}"
            )
        elif not _has_matching_redeem(connection, target.user_id, old_points, new_points):
            logger.error(
                f"Blocked unauthorized deduction for user {target.user_id}: "
                f"{old_points} -> {new_points}"
            )
            raise UnauthorizedDeductionError(
                details={
                    "user_id": target.user_id,
                    "old_points": old_points,
                    "new_points": new_points,
                }
            )

    pending[target.user_id] = (old_points, new_points)


@event.listens_for(PointsBalance, "after_update")
def write_points_audit_log(mapper, connection, target: PointsBalance) -> None:
    session = object_session(target)
    if session is None:
        return
    change = session.info.get(_PENDING_CHANGES, {}).pop(target.user_id, None)
    if change is None:
        return

    old_points, new_points = change
    context = session.info.get(AUDIT_KEY) or {}
    connection.execute(
        PointsAuditLog.__table__.insert().values(
            user_id=target.user_id,
            old_points=old_points,
            new_points=new_points,
            reason=context.get("reason", SYSTEM_ACTOR),
            changed_by=context.get("changed_by", SYSTEM_ACTOR),
            changed_at=utc_now(),
        )
    )
