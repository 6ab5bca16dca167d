"""Recharge code inventory endpoints."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from recharge_api.api.dependencies.security import require_operator_api_key
from recharge_api.db.session import get_session
from recharge_api.models.recharge_code import RechargeCodeStatusEnum
from recharge_api.services.inventory import (
    CodeInventoryService,
    EmptyImportBatchError,
    ImportBatchTooLargeError,
    PlanNotFoundError,
)
from recharge_api.services.inventory.formatter import parse_code_block


router = APIRouter(
    prefix="/inventory",
    tags=["inventory"],
    dependencies=[Depends(require_operator_api_key)],
)


class CodeImportRequest(BaseModel):
    """Codes as a list, a pasted block (one per line), or both."""

    codes: List[str] = Field(default_factory=list, description="Raw code strings")
    text: Optional[str] = Field(None, description="Pasted block, one code per line")

    def raw_codes(self) -> List[str]:
        raw = list(self.codes)
        if self.text:
            raw.extend(parse_code_block(self.text))
        return raw


class RechargeCodeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    value: Decimal
    status: RechargeCodeStatusEnum
    plan_id: UUID
    app_name: str
    created_at: datetime
    sold_at: Optional[datetime] = None
    expires_at: datetime


class CodeImportResponse(BaseModel):
    inserted_count: int
    total_count: int
    duplicate_count: int
    codes: List[RechargeCodeResponse]


class InventorySummaryResponse(BaseModel):
    available: int
    sold: int
    expired: int
    total: int


@router.post(
    "/plans/{plan_id}/codes/import",
    response_model=CodeImportResponse,
    status_code=status.HTTP_201_CREATED,
)
async def import_codes(
    plan_id: UUID,
    payload: CodeImportRequest,
    session: AsyncSession = Depends(get_session),
) -> CodeImportResponse:
    service = CodeInventoryService(session)
    try:
        result = await service.import_codes(plan_id, payload.raw_codes())
    except PlanNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (EmptyImportBatchError, ImportBatchTooLargeError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    return CodeImportResponse(
        inserted_count=result.inserted_count,
        total_count=result.total_count,
        duplicate_count=result.duplicate_count,
        codes=[RechargeCodeResponse.model_validate(code) for code in result.inserted],
    )


@router.get("/codes", response_model=List[RechargeCodeResponse])
async def list_codes(
    plan_id: Optional[UUID] = Query(None),
    code_status: Optional[RechargeCodeStatusEnum] = Query(None, alias="status"),
    search: Optional[str] = Query(None, max_length=64),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
) -> List[RechargeCodeResponse]:
    codes = await CodeInventoryService(session).list_codes(
        plan_id=plan_id,
        status=code_status,
        search=search,
        limit=limit,
        offset=offset,
    )
    return [RechargeCodeResponse.model_validate(code) for code in codes]


@router.get("/summary", response_model=InventorySummaryResponse)
async def inventory_summary(
    plan_id: Optional[UUID] = Query(None),
    session: AsyncSession = Depends(get_session),
) -> InventorySummaryResponse:
    summary = await CodeInventoryService(session).summarize(plan_id)
    return InventorySummaryResponse(**summary.as_dict())
