from sqlalchemy import BigInteger, Column, DateTime, Integer, func
from sqlalchemy.orm import declarative_base, declared_attr

Base = declarative_base()

# SQLite는 INTEGER PRIMARY KEY만 자동 증가
BigIntId = BigInteger().with_variant(Integer, "sqlite")


class CreatedAtMixin:
    @declared_attr
    def created_at(cls):
        return Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class UpdatedAtMixin:
    @declared_attr
    def updated_at(cls):
        return Column(
            DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
        )


class BaseModel(Base, CreatedAtMixin, UpdatedAtMixin):
    """상태가 바뀌는 엔티티(사용자, 추천 관계, 프로모 코드 등)의 베이스"""

    __abstract__ = True


class RecordModel(Base, CreatedAtMixin):
    """
    한 번 기록되면 내용이 바뀌지 않는 이력 행의 베이스

    수정 시각이 의미 없으므로 created_at만 둔다.
    (태스크 완료, 프로모 사용, 추천 수수료)
    """

    __abstract__ = True
