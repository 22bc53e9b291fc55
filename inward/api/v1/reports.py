"""Dashboard and accounts reporting endpoints."""
from typing import List, Optional
from fastapi import APIRouter, Query

from inward.core.dependencies import TenantCtx, DbSession
from inward.schemas.report import FinancialSummaryResponse, DashboardResponse
from inward.services import reports


router = APIRouter()


@router.get("/summary", response_model=FinancialSummaryResponse)
async def get_financial_summary(
    ctx: TenantCtx,
    db: DbSession,
    status_filter: Optional[List[str]] = Query(None, alias="status"),
    month: Optional[str] = Query(None, description="YYYY-MM; filters on completion/delivery date"),
):
    """Accounts totals and averages. Defaults to completed and delivered work."""
    summary = await reports.financial_summary(db, ctx, statuses=status_filter, month=month)
    return FinancialSummaryResponse.model_validate(summary)


@router.get("/dashboard", response_model=DashboardResponse)
async def get_dashboard(
    ctx: TenantCtx,
    db: DbSession,
    month: Optional[str] = Query(None, description="YYYY-MM for the completed work summary"),
):
    """Status counts for everyone; financial summaries for roles with financial access."""
    data = await reports.dashboard(db, ctx, month=month)
    for key in ("accountant_queue", "completed_work"):
        if data[key] is not None:
            data[key] = FinancialSummaryResponse.model_validate(data[key])
    return DashboardResponse(**data)
