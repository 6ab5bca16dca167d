"""Recharge code inventory persistence and allocation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from recharge_api.core.logging import mask_code
from recharge_api.core.settings import settings
from recharge_api.models.plan import Plan
from recharge_api.models.recharge_code import RechargeCode, RechargeCodeStatusEnum
from .formatter import normalize_codes


class InventoryError(RuntimeError):
    """Base exception for inventory validation failures."""


class PlanNotFoundError(InventoryError):
    """Raised when an operation references an unknown plan."""

    def __init__(self, plan_id: UUID) -> None:
        super().__init__(f"Plan {plan_id} not found")
        self.plan_id = plan_id


class EmptyImportBatchError(InventoryError):
    """Raised when an import batch carries no usable code."""


class ImportBatchTooLargeError(InventoryError):
    """Raised when an import batch exceeds the configured cap."""

    def __init__(self, submitted: int, limit: int) -> None:
        super().__init__(f"Import batch of {submitted} codes exceeds the limit of {limit}")
        self.submitted = submitted
        self.limit = limit


@dataclass(slots=True)
class CodeImportResult:
    """Outcome of an import call; duplicates are skipped, never errors."""

    inserted: list[RechargeCode] = field(default_factory=list)
    inserted_count: int = 0
    total_count: int = 0

    @property
    def duplicate_count(self) -> int:
        return self.total_count - self.inserted_count


@dataclass(slots=True)
class InventorySummary:
    available: int = 0
    sold: int = 0
    expired: int = 0

    @property
    def total(self) -> int:
        return self.available + self.sold + self.expired

    def as_dict(self) -> dict[str, int]:
        return {
            "available": self.available,
            "sold": self.sold,
            "expired": self.expired,
            "total": self.total,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CodeInventoryService:
    """Owns the code pool: batch import and exactly-once allocation."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        batch_limit: int | None = None,
        code_expiry_days: int | None = None,
        max_allocation_attempts: int | None = None,
    ) -> None:
        self._session = session
        self._batch_limit = settings.code_import_batch_limit if batch_limit is None else batch_limit
        self._code_expiry_days = settings.code_expiry_days if code_expiry_days is None else code_expiry_days
        attempts = settings.allocation_max_attempts if max_allocation_attempts is None else max_allocation_attempts
        self._max_allocation_attempts = max(attempts, 1)

    async def get_plan(self, plan_id: UUID) -> Plan:
        plan = await self._session.get(Plan, plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id)
        return plan

    async def import_codes(
        self,
        plan_id: UUID,
        raw_codes: Sequence[str],
        *,
        now: datetime | None = None,
    ) -> CodeImportResult:
        """Normalize and insert a batch, skipping codes already on file.

        The cap applies to the raw submission so an oversized batch is rejected
        outright instead of being truncated.
        """

        if len(raw_codes) > self._batch_limit:
            raise ImportBatchTooLargeError(len(raw_codes), self._batch_limit)

        codes = normalize_codes(raw_codes)
        if not codes:
            raise EmptyImportBatchError("Import batch contains no valid codes")

        plan = await self.get_plan(plan_id)
        timestamp = now or _utcnow()
        expires_at = timestamp + timedelta(days=self._code_expiry_days)
        app_name = plan.app_name or settings.default_app_name

        unique_codes = list(dict.fromkeys(codes))
        rows: list[dict[str, Any]] = [
            {
                "id": uuid4(),
                "code": code,
                "value": plan.value,
                "status": RechargeCodeStatusEnum.AVAILABLE,
                "plan_id": plan.id,
                "app_name": app_name,
                "import_position": position,
                "created_at": timestamp,
                "expires_at": expires_at,
            }
            for position, code in enumerate(unique_codes)
        ]

        statement = (
            self._insert_statement()
            .values(rows)
            .on_conflict_do_nothing(index_elements=["code"])
            .returning(RechargeCode.id)
        )

        try:
            result = await self._session.execute(statement)
            inserted_ids = list(result.scalars().all())
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        inserted: list[RechargeCode] = []
        if inserted_ids:
            inserted = list(
                (
                    await self._session.scalars(
                        select(RechargeCode)
                        .where(RechargeCode.id.in_(inserted_ids))
                        .order_by(RechargeCode.import_position)
                    )
                ).all()
            )

        import_result = CodeImportResult(
            inserted=inserted,
            inserted_count=len(inserted_ids),
            total_count=len(codes),
        )
        logger.info(
            "Recharge codes imported",
            plan_id=str(plan.id),
            inserted=import_result.inserted_count,
            submitted=import_result.total_count,
            duplicates=import_result.duplicate_count,
        )
        return import_result

    async def allocate_one(self, plan_id: UUID, *, now: datetime | None = None) -> RechargeCode | None:
        """Flip the oldest available code of the plan to sold.

        The caller owns the transaction; nothing is committed here so the code
        flip lands together with whatever references it.
        """

        timestamp = now or _utcnow()
        for attempt in range(1, self._max_allocation_attempts + 1):
            candidate_id = await self._session.scalar(
                select(RechargeCode.id)
                .where(
                    RechargeCode.plan_id == plan_id,
                    RechargeCode.status == RechargeCodeStatusEnum.AVAILABLE,
                )
                .order_by(RechargeCode.created_at, RechargeCode.import_position, RechargeCode.id)
                .limit(1)
                .with_for_update(skip_locked=True)
            )
            if candidate_id is None:
                return None

            code = await self.claim_code(candidate_id, now=timestamp)
            if code is not None:
                logger.info(
                    "Recharge code allocated",
                    plan_id=str(plan_id),
                    code_id=str(code.id),
                    code=mask_code(code.code),
                    attempt=attempt,
                )
                return code

            logger.debug("Allocation candidate claimed concurrently", plan_id=str(plan_id), attempt=attempt)

        logger.warning(
            "Allocation gave up after contention",
            plan_id=str(plan_id),
            attempts=self._max_allocation_attempts,
        )
        return None

    async def claim_code(self, code_id: UUID, *, now: datetime | None = None) -> RechargeCode | None:
        """Conditionally mark one specific code sold; ``None`` when it is no longer available."""

        result = await self._session.execute(
            update(RechargeCode)
            .where(
                RechargeCode.id == code_id,
                RechargeCode.status == RechargeCodeStatusEnum.AVAILABLE,
            )
            .values(status=RechargeCodeStatusEnum.SOLD, sold_at=now or _utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return await self._session.get(RechargeCode, code_id, populate_existing=True)

    async def list_codes(
        self,
        *,
        plan_id: UUID | None = None,
        status: RechargeCodeStatusEnum | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[RechargeCode]:
        stmt = select(RechargeCode)
        if plan_id is not None:
            stmt = stmt.where(RechargeCode.plan_id == plan_id)
        if status is not None:
            stmt = stmt.where(RechargeCode.status == status)
        if search:
            stmt = stmt.where(RechargeCode.code.ilike(f"%{search.strip()}%"))
        stmt = stmt.order_by(RechargeCode.created_at.desc(), RechargeCode.import_position).limit(limit).offset(offset)
        return list((await self._session.scalars(stmt)).all())

    async def summarize(self, plan_id: UUID | None = None) -> InventorySummary:
        stmt = select(RechargeCode.status, func.count(RechargeCode.id)).group_by(RechargeCode.status)
        if plan_id is not None:
            stmt = stmt.where(RechargeCode.plan_id == plan_id)
        counts = {status: count for status, count in (await self._session.execute(stmt)).all()}
        return InventorySummary(
            available=counts.get(RechargeCodeStatusEnum.AVAILABLE, 0),
            sold=counts.get(RechargeCodeStatusEnum.SOLD, 0),
            expired=counts.get(RechargeCodeStatusEnum.EXPIRED, 0),
        )

    def _insert_statement(self):
        dialect = self._session.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(RechargeCode)
        if dialect == "sqlite":
            return sqlite_insert(RechargeCode)
        raise InventoryError(f"Unsupported database dialect for code import: {dialect}")


__all__ = [
    "CodeImportResult",
    "CodeInventoryService",
    "EmptyImportBatchError",
    "ImportBatchTooLargeError",
    "InventoryError",
    "InventorySummary",
    "PlanNotFoundError",
]
