from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Enum as SqlEnum, Integer, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from recharge_api.db.base import Base, enum_values


class PlanCategoryEnum(str, Enum):
    RECHARGE = "recharge"
    MASTER_QUALIFICATION = "master_qualification"
    DATA_PACKAGE = "data_package"
    APP_PLAN = "app_plan"


class Plan(Base):
    """Sellable plan; every recharge code belongs to exactly one plan."""

    __tablename__ = "plans"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    value = Column(Numeric(12, 2), nullable=False)
    validity_days = Column(Integer, nullable=False, default=30)
    category = Column(
        SqlEnum(PlanCategoryEnum, name="plan_category_enum", values_callable=enum_values),
        nullable=False,
        default=PlanCategoryEnum.RECHARGE,
    )
    app_name = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
