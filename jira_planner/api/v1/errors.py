"""
Error history endpoints.
"""

import json
from typing import Any

from fastapi import APIRouter, Depends

from jira_planner.api.deps import get_error_handler
from jira_planner.resilience.error_handler import ErrorHandler

router = APIRouter()


@router.get("/errors/stats")
async def error_statistics(
    error_handler: ErrorHandler = Depends(get_error_handler),
) -> dict[str, Any]:
    """Error totals per type and the most recent errors."""
    return error_handler.get_error_statistics()


@router.get("/errors/export")
async def export_errors(
    error_handler: ErrorHandler = Depends(get_error_handler),
) -> dict[str, Any]:
    return json.loads(error_handler.export_error_logs())


@router.delete("/errors")
async def clear_errors(
    error_handler: ErrorHandler = Depends(get_error_handler),
) -> dict[str, bool]:
    error_handler.clear_history()
    return {"cleared": True}
