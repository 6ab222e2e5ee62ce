"""
타임존 유틸리티

일일 보상(출석, 광고, 일일 태스크)의 날짜 경계 계산을 위한 함수들
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional

from loyaltyapi.config import settings


def utc_now() -> datetime:
    """현재 UTC 시간을 반환합니다."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """naive datetime은 UTC로 가정하여 타임존을 붙입니다."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def reward_timezone() -> timezone:
    return timezone(timedelta(hours=settings.REWARD_DAY_UTC_OFFSET_HOURS))


def get_reward_date(now: Optional[datetime] = None) -> date:
    """
    일일 보상 기준 날짜를 반환합니다.

    출석 체크, 광고 시청 한도, 일일 태스크의 멱등성 키는 모두 이 날짜를 기준으로 합니다.
    """
    now = ensure_utc(now) if now else utc_now()
    return now.astimezone(reward_timezone()).date()

