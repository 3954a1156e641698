from fastapi import APIRouter, Depends, HTTPException

from dependencies import get_current_user_id, get_kpi_counters
from models.kpi_models import KpiSummary
from services.kpi_service import KpiCounters

router = APIRouter(prefix="/api/kpis", tags=["kpis"])

@router.get("", response_model=KpiSummary)
async def get_kpis(
    user_id: str = Depends(get_current_user_id),
    counters: KpiCounters = Depends(get_kpi_counters),
):
    try:
        return await counters.summary()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Server error fetching KPIs: {e}")
