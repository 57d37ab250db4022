"""
Sales Time-Series Service Module

Aggregates sales into time-bucketed metrics per user or per group. The store
engine is always passed in explicitly, which keeps the functions here free
of global state and lets tests hand in a fake one.
"""

import asyncio
import datetime
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.sql.elements import TextClause

from ...core import config
from .query import build_time_series_query, get_dialect, parse_group_by
from .schemas import (
    GroupBy, GroupTimeSeriesBucket, SaleMetrics, TimeSeriesBucket, TimeSeriesQuery,
    UserTimeSeriesBucket
)

logger = logging.getLogger(__name__)


async def _run_query(engine: AsyncEngine, statement: TextClause, values: Dict[str, Any]) -> List[Dict[str, Any]]:
    async with engine.connect() as connection:
        result = await connection.execute(statement, values)
        return [dict(row) for row in result.mappings()]


async def fetch_time_series_rows(
    engine: AsyncEngine,
    params: TimeSeriesQuery,
    timeout: Optional[float] = None,
) -> List[Dict[str, Any]]:
    """
    Runs the aggregation query and returns the raw rows.

    Args:
        engine: Async engine of the store; one pooled connection is checked
            out for the query
        params: Query parameters; enumerations are validated before the store
            is touched
        timeout: Seconds to wait for the store, defaults to QUERY_TIMEOUT_SECONDS

    Returns:
        List of row dicts with time_window, the dimension columns and the
        five metric columns, newest window first.

    Raises:
        TimeSeriesValidationError: On invalid enumerations
        ValueError: On a date filter that is neither a date nor a timestamp
        UnsupportedDialectError: If the engine is neither PostgreSQL nor sqlite
        asyncio.TimeoutError: If the store does not answer in time
    """
    dialect = get_dialect(engine.dialect.name)
    # Rejects out-of-range enumerations before the store is touched
    statement, values = build_time_series_query(params, dialect)
    logger.debug("Sales time-series query (%s): %s | values=%r", dialect.name, statement, values)

    wait = config.QUERY_TIMEOUT_SECONDS if timeout is None else timeout
    rows = await asyncio.wait_for(_run_query(engine, statement, values), timeout=wait)
    logger.info(
        "Sales time-series query returned %d rows (granularity=%s, groupBy=%s)",
        len(rows), params.granularity, params.group_by,
    )
    return rows


def _to_time_window(value: Any) -> datetime.datetime:
    if isinstance(value, str):
        value = datetime.datetime.fromisoformat(value)
    elif isinstance(value, datetime.date) and not isinstance(value, datetime.datetime):
        value = datetime.datetime.combine(value, datetime.time.min)
    if value.tzinfo is None:
        # Windows are truncated in UTC by the query
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


def _to_int(value: Any) -> int:
    return int(Decimal(str(value)))


def _to_metrics(row: Dict[str, Any]) -> SaleMetrics:
    return SaleMetrics(
        sale_count=_to_int(row["sale_count"]),
        total_revenue=_to_int(row["total_revenue"]),
        avg_revenue=float(row["avg_revenue"]),
        min_sale=_to_int(row["min_sale"]),
        max_sale=_to_int(row["max_sale"]),
    )


def format_time_series_rows(rows: List[Dict[str, Any]], group_by: GroupBy) -> List[TimeSeriesBucket]:
    """Maps flat aggregation rows to buckets, keeping the row order."""
    group_by = parse_group_by(group_by)
    if group_by is GroupBy.USER:
        return [
            UserTimeSeriesBucket(
                time_window=_to_time_window(row["time_window"]),
                user_id=row["user_id"],
                user_name=row["user_name"],
                user_role=row["user_role"],
                metrics=_to_metrics(row),
            )
            for row in rows
        ]
    return [
        GroupTimeSeriesBucket(
            time_window=_to_time_window(row["time_window"]),
            group_id=row["group_id"],
            group_name=row["group_name"],
            metrics=_to_metrics(row),
        )
        for row in rows
    ]


async def compute_time_series(
    engine: AsyncEngine,
    params: TimeSeriesQuery,
    timeout: Optional[float] = None,
) -> List[TimeSeriesBucket]:
    """
    Computes the sales time series for the given parameters.

    Buckets are ordered by time window descending, then by total revenue
    descending within a window. With group_by=group a sale is counted once
    for every group its user belongs to.
    """
    rows = await fetch_time_series_rows(engine, params, timeout=timeout)
    return format_time_series_rows(rows, params.group_by)
