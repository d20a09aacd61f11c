"""
KPI analytics and AI insights endpoints.
"""
from datetime import date
from fastapi import APIRouter, Depends, HTTPException, Query
from ..models import DataResponse, AnalyticsRequest, CompareRequest, AggregateRequest, InsightsRequest
from ..dependencies import get_kpi_calculator, get_insights_service, get_expense_service
from ..services.expense_service import ExpenseService
from ...ai.insights_service import InsightsService
from ...analytics.kpi_calculator import KPICalculator
from ...utils.models import AnalyticsFilters

router = APIRouter(prefix="/analytics", tags=["analytics"])


def to_filters(request: AnalyticsRequest) -> AnalyticsFilters:
    return AnalyticsFilters(
        property_id=request.property_id,
        start=request.start.isoformat(),
        end=request.end.isoformat(),
        total_rooms=request.total_rooms,
        booking_source=request.booking_source,
    )


@router.post("/kpis", response_model=DataResponse, summary="Booking and expense KPIs for a period")
async def get_kpis(request: AnalyticsRequest, calculator: KPICalculator = Depends(get_kpi_calculator)):
    return DataResponse(success=True, message="KPIs computed", data=calculator.get_period_result(to_filters(request)))


@router.post("/compare", response_model=DataResponse, summary="Compare a period with the previous one")
async def compare_periods(request: CompareRequest, calculator: KPICalculator = Depends(get_kpi_calculator)):
    result = calculator.compare_with_previous(to_filters(request), request.mode.value)
    return DataResponse(success=True, message="Comparison computed", data=result)


@router.post("/aggregate", response_model=DataResponse, summary="KPIs summed across properties")
async def aggregate(request: AggregateRequest, calculator: KPICalculator = Depends(get_kpi_calculator)):
    if request.end < request.start:
        raise HTTPException(
            status_code=422,
            detail={"message": "end must not be before start", "error_code": "VALIDATION_ERROR", "details": {}},
        )
    result = calculator.aggregate_across_properties(
        request.property_ids,
        request.start.isoformat(),
        request.end.isoformat(),
        request.total_rooms_by_property,
        request.booking_source,
    )
    return DataResponse(success=True, message="Aggregate computed", data=result)


@router.post("/insights", response_model=DataResponse, summary="AI insights for a period")
async def get_insights(
    request: InsightsRequest,
    calculator: KPICalculator = Depends(get_kpi_calculator),
    insights_service: InsightsService = Depends(get_insights_service),
):
    """
    Gemini insights over the period's KPIs; falls back to rule-based
    insights when the model is unavailable, rate limited or rejected.
    """
    filters = to_filters(request)
    if request.include_comparison:
        comparison = calculator.compare_with_previous(filters, request.mode.value)
        kpis = comparison["current"]
    else:
        comparison = None
        kpis = calculator.get_period_result(filters)
    result = insights_service.generate(filters, kpis, comparison)
    return DataResponse(success=True, message="Insights generated", data=result)


@router.delete("/insights/cache", response_model=DataResponse, summary="Drop cached insights")
async def invalidate_insights(
    property_id: str = Query(None),
    insights_service: InsightsService = Depends(get_insights_service),
):
    insights_service.invalidate(property_id)
    return DataResponse(success=True, message="Insights cache cleared", data={"property_id": property_id})


@router.get("/expenses", response_model=DataResponse, summary="Detailed expense analytics")
async def expense_analytics(
    property_id: str = Query(...),
    start: date = Query(...),
    end: date = Query(...),
    expense_service: ExpenseService = Depends(get_expense_service),
):
    result = expense_service.get_detailed_analytics(property_id, start.isoformat(), end.isoformat())
    return DataResponse(success=True, message="Expense analytics", data=result)
