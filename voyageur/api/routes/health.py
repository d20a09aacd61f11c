"""
Health check and monitoring endpoints.
"""
from datetime import datetime
from fastapi import APIRouter, Depends
from ..config import settings
from ..dependencies import get_supabase_client
from ..models import HealthResponse
from ...supabase_sync.supabase_client import SupabaseClient
from ...llm.providers import get_llm_manager


router = APIRouter(prefix="/health", tags=["health"])


@router.get(
    "",
    response_model=HealthResponse,
    summary="Health check endpoint",
    description="Check if the API is running and whether its backends are configured",
    responses={
        200: {"description": "Service is healthy"}
    }
)
async def health_check(supabase_client: SupabaseClient = Depends(get_supabase_client)) -> HealthResponse:
    """
    Health check endpoint for monitoring.

    Reports ``degraded`` when Supabase cannot be initialized; Gemini being
    unavailable only disables AI features.
    """
    supabase_ok = supabase_client.initialized or supabase_client.initialize()
    dependencies = {
        "supabase": "ok" if supabase_ok else "unavailable",
        "gemini": "ok" if get_llm_manager().available else "disabled",
    }
    return HealthResponse(
        status="healthy" if supabase_ok else "degraded",
        timestamp=datetime.utcnow(),
        version=settings.app_version,
        dependencies=dependencies
    )
