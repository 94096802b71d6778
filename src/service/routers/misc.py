from fastapi import APIRouter, Depends
from typing import Any
import logging

from ..config import AdmissionComponents
from ..dependencies import get_components

logger = logging.getLogger('cvboost.service.routers.misc')

router = APIRouter()


@router.get("/status")
async def get_status(components: AdmissionComponents = Depends(get_components)) -> dict[str, Any]:
    """Health check endpoint with in-flight operation counts."""
    operation_stats = await components.operation_registry.get_stats()

    status_info = {
        "status": "ok",
        "active_operations": operation_stats["active_operations"],
    }

    return status_info
