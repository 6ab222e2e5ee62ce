from pydantic import BaseModel, Field
from typing import Dict


class ReferralStatsResponse(BaseModel):
    """추천 현황"""

    referral_code: str = Field(..., description="내 추천 코드")
    referrals_by_level: Dict[int, int] = Field(..., description="레벨별 추천 수")
    pending_count: int = Field(..., description="첫 활동 대기 중인 추천 수")
    completed_count: int = Field(..., description="완료된 추천 수")
    total_bonus_points: int = Field(..., description="추천 완료 보너스 합계")
    total_commission_points: int = Field(..., description="추천 수수료 합계")
