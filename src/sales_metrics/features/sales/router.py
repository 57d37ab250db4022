import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine

from ...common.exceptions import TimeSeriesValidationError
from ...core.database import get_db_engine
from . import service as sales_service
from .schemas import (
    ErrorResponse, Granularity, GroupBy, ServerErrorResponse, TimeSeriesFilters,
    TimeSeriesQuery, TimeSeriesResponse
)

logger = logging.getLogger(__name__)

VALID_GRANULARITIES = [g.value for g in Granularity]
VALID_GROUP_BY = [g.value for g in GroupBy]

router = APIRouter(
    prefix="/sales",
    tags=["Sales"],
)


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


@router.get(
    "/timeseries",
    response_model=TimeSeriesResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ServerErrorResponse},
    },
)
async def get_sales_timeseries(
    engine: Annotated[AsyncEngine, Depends(get_db_engine)],
    granularity: str = Query("month", description="Time window: day, week or month"),
    group_by: str = Query("user", alias="groupBy", description="Aggregation level: user or group"),
    start_date: Optional[str] = Query(None, alias="startDate", description="Inclusive start date or ISO-8601 timestamp"),
    end_date: Optional[str] = Query(None, alias="endDate", description="Inclusive end date or ISO-8601 timestamp"),
    user_id: Optional[str] = Query(None, alias="userId", description="Comma-separated user IDs (groupBy=user only)"),
    group_id: Optional[str] = Query(None, alias="groupId", description="Comma-separated group IDs (groupBy=group only)"),
):
    """
    Returns sales aggregated into time windows per user or per group.
    """
    # Validated here before touching the store; granularity goes first
    if granularity not in VALID_GRANULARITIES:
        return _bad_request(f"Invalid granularity. Must be one of: {', '.join(VALID_GRANULARITIES)}")
    if group_by not in VALID_GROUP_BY:
        return _bad_request(f"Invalid groupBy. Must be one of: {', '.join(VALID_GROUP_BY)}")

    query = TimeSeriesQuery(
        granularity=granularity, group_by=group_by, start_date=start_date,
        end_date=end_date, user_id=user_id, group_id=group_id
    )
    logger.debug("Sales timeseries requested: %s", query.model_dump())

    try:
        data = await sales_service.compute_time_series(engine, query)
        return TimeSeriesResponse(
            granularity=granularity,
            group_by=group_by,
            filters=TimeSeriesFilters(
                start_date=start_date or None, end_date=end_date or None,
                user_id=user_id or None, group_id=group_id or None
            ),
            data=data,
        )
    except TimeSeriesValidationError as e:
        return _bad_request(str(e))
    except Exception as e:
        logger.exception("Error fetching sales timeseries")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error", "message": str(e)},
        )
