from loyaltyapi.models.base import Base
from loyaltyapi.models.user import User, UserRole
from loyaltyapi.models.points import (
    PointsAuditLog,
    PointsBalance,
    PointsCause,
    PointsTransaction,
    TransactionKind,
)
from loyaltyapi.models.referral import Referral, ReferralCommission, ReferralStatus
from loyaltyapi.models.promo import PromoCode, PromoRedemption
from loyaltyapi.models.task import Task, TaskCompletion, TaskType
from loyaltyapi.models.subscription import RedemptionStatus, SubscriptionRedemption

__all__ = [
    "Base",
    "User",
    "UserRole",
    "PointsAuditLog",
    "PointsBalance",
    "PointsCause",
    "PointsTransaction",
    "TransactionKind",
    "Referral",
    "ReferralCommission",
    "ReferralStatus",
    "PromoCode",
    "PromoRedemption",
    "Task",
    "TaskCompletion",
    "TaskType",
    "RedemptionStatus",
    "SubscriptionRedemption",
]
