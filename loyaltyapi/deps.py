from fastapi import Depends
from sqlalchemy.orm import Session

from loyaltyapi.config import settings
from loyaltyapi.database.session import get_db

# Services
from loyaltyapi.services.audit_service import AuditService
from loyaltyapi.services.auth_service import AuthService
from loyaltyapi.services.check_in_service import CheckInService
from loyaltyapi.services.ledger_service import LedgerService
from loyaltyapi.services.promo_service import PromoService
from loyaltyapi.services.referral_service import ReferralService
from loyaltyapi.services.repair_service import RepairService
from loyaltyapi.services.subscription_service import SubscriptionService
from loyaltyapi.services.task_service import TaskService
from loyaltyapi.services.user_service import UserService


def get_user_service(db: Session = Depends(get_db)) -> UserService:
    return UserService(db=db, settings=settings)


def get_ledger_service(db: Session = Depends(get_db)) -> LedgerService:
    return LedgerService(db=db, settings=settings)


def get_referral_service(db: Session = Depends(get_db)) -> ReferralService:
    return LedgerService(db=db, settings=settings).referral_service


def get_check_in_service(db: Session = Depends(get_db)) -> CheckInService:
    return CheckInService(db=db, settings=settings)


def get_task_service(db: Session = Depends(get_db)) -> TaskService:
    return TaskService(db=db, settings=settings)


def get_promo_service(db: Session = Depends(get_db)) -> PromoService:
    return PromoService(db=db, settings=settings)


def get_subscription_service(db: Session = Depends(get_db)) -> SubscriptionService:
    return SubscriptionService(db=db, settings=settings)


def get_audit_service(db: Session = Depends(get_db)) -> AuditService:
    return AuditService(db=db, settings=settings)


def get_repair_service(db: Session = Depends(get_db)) -> RepairService:
    return RepairService(db=db, settings=settings)


def get_auth_service(db: Session = Depends(get_db)) -> AuthService:
    return AuthService(db=db, settings=settings)
