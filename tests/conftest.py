import itertools
import os
import uuid

# 엔진은 import 시점에 생성되므로 loyaltyapi import 전에 설정
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from loyaltyapi.config import Settings
from loyaltyapi.models import Base
from loyaltyapi.models.points import PointsBalance
from loyaltyapi.models.user import User, UserRole
from loyaltyapi.services.ledger_service import LedgerService


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(
        bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
    )


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def test_settings():
    """재시도 대기 없는 테스트 설정"""
    return Settings(LEDGER_RETRY_BASE_DELAY=0.0)


@pytest.fixture
def ledger(db_session, test_settings):
    return LedgerService(db_session, settings=test_settings)


@pytest.fixture
def make_user(db_session):
    """사용자 생성 팩토리"""
    counter = itertools.count(1)

    def _make(referred_by=None, role=UserRole.USER.value, referral_code=None):
        n = next(counter)
        user = User(
            id=str(uuid.uuid4()),
            email=f"user{n}@example.com",
            nickname=f"user{n}",
            referral_code=referral_code or f"CODE{n:04d}",
            referred_by_id=referred_by.id if referred_by else None,
            role=role,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture
def get_balance(db_session):
    """DB의 현재 잔액 행 (세션 캐시 무시)"""

    def _get(user_id):
        return (
            db_session.query(PointsBalance)
            .filter(PointsBalance.user_id == user_id)
            .populate_existing()
            .first()
        )

    return _get
