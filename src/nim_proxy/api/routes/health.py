"""
Routes API pour le health check.
"""
from fastapi import APIRouter, Request

from ...core.constants import SERVICE_NAME

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Health check avec les modes d'affichage actifs."""
    display = request.app.state.settings.display
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "reasoning_display": display.show_reasoning,
        "thinking_mode": display.enable_thinking_mode
    }
