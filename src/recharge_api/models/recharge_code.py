from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum as SqlEnum, ForeignKey, Index, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID

from recharge_api.db.base import Base, enum_values


class RechargeCodeStatusEnum(str, Enum):
    AVAILABLE = "available"
    SOLD = "sold"
    EXPIRED = "expired"


class RechargeCode(Base):
    """A single pre-generated code held in inventory until sold."""

    __tablename__ = "recharge_codes"
    __table_args__ = (
        Index("ix_recharge_codes_allocation", "plan_id", "status", "created_at", "import_position"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    code = Column(String, nullable=False, unique=True, index=True)
    value = Column(Numeric(12, 2), nullable=False)
    status = Column(
        SqlEnum(RechargeCodeStatusEnum, name="recharge_code_status_enum", values_callable=enum_values),
        nullable=False,
        default=RechargeCodeStatusEnum.AVAILABLE,
    )
    plan_id = Column(UUID(as_uuid=True), ForeignKey("plans.id", ondelete="RESTRICT"), nullable=False)
    app_name = Column(String, nullable=False)
    import_position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    sold_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
