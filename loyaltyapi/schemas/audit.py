from pydantic import BaseModel, Field, computed_field
from typing import List, Optional


class PointsIssueReport(BaseModel):
    """사용자별 포인트 정합성 진단 결과"""

    user_id: str = Field(..., description="사용자 ID")
    email: Optional[str] = Field(None, description="이메일")
    current_points: int = Field(..., description="프로젝션의 현재 포인트")
    calculated_points: int = Field(..., description="원장으로 계산한 포인트")
    current_total_earned: int = Field(..., description="프로젝션의 누적 적립")
    calculated_total_earned: int = Field(..., description="원장으로 계산한 누적 적립")
    issues: List[str] = Field(default_factory=list, description="발견된 문제")
    causes: List[str] = Field(default_factory=list, description="추정 원인")
    recommendations: List[str] = Field(default_factory=list, description="권장 조치")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_issues(self) -> bool:
        return bool(self.issues)


class AuditAllResponse(BaseModel):
    """전체 사용자 감사 결과"""

    users_checked: int = Field(..., description="검사한 사용자 수")
    reports: List[PointsIssueReport] = Field(..., description="문제가 있는 사용자 보고서")
    errors: List[str] = Field(default_factory=list, description="사용자별 처리 오류")


class RepairUserResponse(BaseModel):
    """단일 사용자 복구 결과"""

    user_id: str
    run_id: str
    old_points: int
    new_points: int
    old_total_earned: int
    new_total_earned: int
    fixed: bool = Field(..., description="포인트를 올렸는지 여부")
    flagged: bool = Field(False, description="원장보다 높아 수동 검토로 넘겼는지 여부")
    message: str = ""


class RepairAllResponse(BaseModel):
    """전체 사용자 복구 결과"""

    run_id: str
    users_checked: int
    users_fixed: int
    fixes: List[str] = Field(default_factory=list, description="적용된 수정 내역")
    issues_found: List[str] = Field(default_factory=list, description="수정하지 않고 표시한 문제")
    errors: List[str] = Field(default_factory=list, description="사용자별 처리 오류")
