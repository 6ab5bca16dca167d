"""Sales, pending delivery queue and checkout endpoints."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from recharge_api.api.dependencies.collaborators import get_messaging_backend, get_payment_gateway
from recharge_api.api.dependencies.security import require_operator_api_key
from recharge_api.db.session import get_session
from recharge_api.models.purchase import PaymentMethodEnum, PurchaseStatusEnum
from recharge_api.services.inventory import PlanNotFoundError
from recharge_api.services.notifications import MessagingBackend
from recharge_api.services.payments import PaymentGateway
from recharge_api.services.sales import (
    AssignOutcome,
    BuyerInfo,
    CheckoutRequest,
    CheckoutService,
    CheckoutStatus,
    SaleOrchestrator,
    SaleOutcome,
    compute_dashboard_stats,
)


router = APIRouter(
    prefix="/sales",
    tags=["sales"],
    dependencies=[Depends(require_operator_api_key)],
)

_NOT_FOUND_OUTCOMES = {AssignOutcome.PURCHASE_NOT_FOUND, AssignOutcome.CODE_NOT_FOUND}


class CustomerPayload(BaseModel):
    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    email: str = ""


class SaleRequest(BaseModel):
    plan_id: UUID
    customer: CustomerPayload
    customer_id: Optional[str] = None
    reseller_id: Optional[str] = None
    payment_method: PaymentMethodEnum = PaymentMethodEnum.CREDIT_CARD
    payment_id: Optional[str] = Field(None, description="Reference of the already-approved payment")

    def to_buyer(self) -> BuyerInfo:
        return BuyerInfo(
            name=self.customer.name,
            phone=self.customer.phone,
            email=self.customer.email,
            customer_id=self.customer_id,
            reseller_id=self.reseller_id,
            payment_method=self.payment_method,
            payment_id=self.payment_id,
        )


class PurchaseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    customer_id: str
    plan_id: UUID
    reseller_id: str
    recharge_code: str
    assigned_code_id: Optional[UUID] = None
    amount: Decimal
    payment_method: PaymentMethodEnum
    payment_id: str
    status: PurchaseStatusEnum
    code_delivery_failure_reason: Optional[str] = None
    customer_data: Dict[str, Any]
    expiry_reminders: Dict[str, Any]
    created_at: datetime
    approved_at: Optional[datetime] = None
    expires_at: datetime


class SaleResponse(BaseModel):
    outcome: SaleOutcome
    success: bool
    purchase: PurchaseResponse


class PendingDeliveriesResponse(BaseModel):
    total: int
    items: List[PurchaseResponse]


class AssignCodeRequest(BaseModel):
    code_id: UUID


class AssignCodeResponse(BaseModel):
    outcome: AssignOutcome
    purchase: PurchaseResponse


class CheckoutResponse(BaseModel):
    status: CheckoutStatus
    payment_id: str
    purchase_id: Optional[UUID] = None
    recharge_code: Optional[str] = None
    error_code: Optional[str] = None
    notification_sent: bool = False


class DashboardStatsResponse(BaseModel):
    total_revenue: Decimal
    today_revenue: Decimal
    active_plans: int
    approved_purchases: int
    pending_code_deliveries: int
    expiring_today: int
    available_codes: int


@router.post("", response_model=SaleResponse, status_code=status.HTTP_201_CREATED)
async def create_sale(
    payload: SaleRequest,
    session: AsyncSession = Depends(get_session),
) -> SaleResponse:
    """Record an approved payment; the purchase is approved or queued for manual delivery."""

    try:
        result = await SaleOrchestrator(session).sell(payload.plan_id, payload.to_buyer())
    except PlanNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return SaleResponse(
        outcome=result.outcome,
        success=result.success,
        purchase=PurchaseResponse.model_validate(result.purchase),
    )


@router.post("/checkout", response_model=CheckoutResponse)
async def checkout(
    payload: SaleRequest,
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    messaging: MessagingBackend = Depends(get_messaging_backend),
) -> CheckoutResponse:
    service = CheckoutService(session, gateway=gateway, messaging=messaging)
    try:
        result = await service.process(CheckoutRequest(plan_id=payload.plan_id, buyer=payload.to_buyer()))
    except PlanNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return CheckoutResponse(
        status=result.status,
        payment_id=result.payment_id,
        purchase_id=result.purchase_id,
        recharge_code=result.recharge_code,
        error_code=result.error_code,
        notification_sent=result.notification_sent,
    )


@router.get("/pending", response_model=PendingDeliveriesResponse)
async def list_pending_deliveries(
    plan_id: Optional[UUID] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
) -> PendingDeliveriesResponse:
    orchestrator = SaleOrchestrator(session)
    items = await orchestrator.list_pending_deliveries(plan_id=plan_id, limit=limit, offset=offset)
    total = await orchestrator.count_pending_deliveries()
    return PendingDeliveriesResponse(
        total=total,
        items=[PurchaseResponse.model_validate(item) for item in items],
    )


@router.post("/purchases/{purchase_id}/assign", response_model=AssignCodeResponse)
async def assign_code(
    purchase_id: UUID,
    payload: AssignCodeRequest,
    session: AsyncSession = Depends(get_session),
) -> AssignCodeResponse:
    result = await SaleOrchestrator(session).assign_code(purchase_id, payload.code_id)
    if not result.success:
        status_code = (
            status.HTTP_404_NOT_FOUND if result.outcome in _NOT_FOUND_OUTCOMES else status.HTTP_409_CONFLICT
        )
        raise HTTPException(status_code=status_code, detail={"outcome": result.outcome.value})

    return AssignCodeResponse(
        outcome=result.outcome,
        purchase=PurchaseResponse.model_validate(result.purchase),
    )


@router.get("/stats", response_model=DashboardStatsResponse)
async def dashboard_stats(session: AsyncSession = Depends(get_session)) -> DashboardStatsResponse:
    stats = await compute_dashboard_stats(session)
    return DashboardStatsResponse(
        total_revenue=stats.total_revenue,
        today_revenue=stats.today_revenue,
        active_plans=stats.active_plans,
        approved_purchases=stats.approved_purchases,
        pending_code_deliveries=stats.pending_code_deliveries,
        expiring_today=stats.expiring_today,
        available_codes=stats.available_codes,
    )
