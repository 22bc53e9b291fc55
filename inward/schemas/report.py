"""Reporting schemas."""
from decimal import Decimal
from typing import Dict, Optional
from pydantic import BaseModel


class FinancialSummaryResponse(BaseModel):
    """Aggregated accounts figures."""
    count: int
    gross_total: Decimal
    final_total: Decimal
    discount_total: Decimal
    average_order_value: Decimal
    average_discount: Decimal
    average_discount_percentage: Decimal
    discount_adoption_ratio: Decimal
    entries_with_discount: int

    class Config:
        from_attributes = True


class DashboardResponse(BaseModel):
    total_vehicles: int
    status_counts: Dict[str, int]
    in_progress: int
    todays_intakes: int
    awaiting_invoicing: int
    # Null for roles without financial access
    accountant_queue: Optional[FinancialSummaryResponse] = None
    completed_work: Optional[FinancialSummaryResponse] = None
