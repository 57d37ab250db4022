"""
Time-series Query Builder

Translates a validated TimeSeriesQuery into one parameterized aggregation
query over sales, users, user_groups and groups.

Only two things are structural in the SQL text: the join path (chosen by
GroupBy) and the truncation expression (chosen by Granularity). Both come from
lookup tables indexed by enum members, so no request text is ever substituted
into the query. Every other value is a named bound parameter of a SQLAlchemy
text() clause, which the driver receives in its own placeholder style.

Supported dialects (by SQLAlchemy dialect name):
- postgresql: DATE_TRUNC on the UTC wall clock
- sqlite:     strftime truncation over the stored UTC timestamp text

Time windows are truncated in UTC and weeks start on Monday.
"""

import datetime
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import bindparam, text
from sqlalchemy.sql.elements import TextClause

from ...common.exceptions import TimeSeriesValidationError, UnsupportedDialectError
from ...core.database import UtcDateTime
from .schemas import Granularity, GroupBy, TimeSeriesQuery

logger = logging.getLogger(__name__)

# Leading ASCII integer of an ID token: "12" -> 12, " 7 " -> 7, "3; DROP TABLE users" -> 3
_LEADING_INT_RE = re.compile(r"^\s*([+-]?[0-9]+)")


def parse_granularity(value: Any) -> Granularity:
    try:
        return Granularity(value)
    except ValueError:
        allowed = ", ".join(g.value for g in Granularity)
        raise TimeSeriesValidationError(f"Invalid granularity: {value}. Must be one of: {allowed}") from None


def parse_group_by(value: Any) -> GroupBy:
    try:
        return GroupBy(value)
    except ValueError:
        allowed = ", ".join(g.value for g in GroupBy)
        raise TimeSeriesValidationError(f"Invalid groupBy: {value}. Must be one of: {allowed}") from None


def parse_id_list(value: Optional[str]) -> List[int]:
    """
    Parse a comma-separated ID list.

    Each token contributes its leading integer; tokens without one are
    dropped. "1,abc,3" -> [1, 3].
    """
    if not value:
        return []
    ids = []
    for token in value.split(","):
        match = _LEADING_INT_RE.match(token)
        if match:
            ids.append(int(match.group(1)))
    return ids


def parse_date_bound(value: str, param_name: str) -> Tuple[datetime.datetime, bool]:
    """
    Parse a startDate/endDate filter into a UTC datetime.

    Accepts a calendar date ("2021-06-01") or an ISO-8601 timestamp
    ("2021-06-01T10:00:00Z"); timestamps without an offset are read as UTC.

    Returns:
        (moment, date_only): a date becomes its UTC midnight and date_only is True.

    Raises:
        ValueError: If the value is neither. Not a TimeSeriesValidationError,
            so it is reported as a server error like any store-side failure.
    """
    raw = value.strip()
    try:
        return _utc_midnight(datetime.date.fromisoformat(raw)), True
    except ValueError:
        pass
    if raw[-1:] in ("Z", "z"):
        raw = raw[:-1] + "+00:00"
    try:
        moment = datetime.datetime.fromisoformat(raw)
    except ValueError:
        raise ValueError(f"Invalid {param_name}: {value}. Expected an ISO-8601 date or timestamp") from None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=datetime.timezone.utc), False
    return moment.astimezone(datetime.timezone.utc), False


def _utc_midnight(day: datetime.date) -> datetime.datetime:
    return datetime.datetime.combine(day, datetime.time.min, tzinfo=datetime.timezone.utc)


@dataclass(frozen=True)
class SqlDialect:
    name: str
    truncations: Dict[Granularity, str]


POSTGRES = SqlDialect(
    name="postgresql",
    truncations={
        Granularity.DAY: "DATE_TRUNC('day', s.date AT TIME ZONE 'UTC')",
        Granularity.WEEK: "DATE_TRUNC('week', s.date AT TIME ZONE 'UTC')",
        Granularity.MONTH: "DATE_TRUNC('month', s.date AT TIME ZONE 'UTC')",
    },
)

# sales.date is stored as UTC text ("YYYY-MM-DD HH:MM:SS.ffffff") on sqlite
SQLITE = SqlDialect(
    name="sqlite",
    truncations={
        Granularity.DAY: "strftime('%Y-%m-%d 00:00:00', s.date)",
        Granularity.WEEK: "strftime('%Y-%m-%d 00:00:00', s.date, '-6 days', 'weekday 1')",
        Granularity.MONTH: "strftime('%Y-%m-01 00:00:00', s.date)",
    },
)

DIALECTS: Dict[str, SqlDialect] = {d.name: d for d in (POSTGRES, SQLITE)}


def get_dialect(name: str) -> SqlDialect:
    try:
        return DIALECTS[name]
    except KeyError:
        raise UnsupportedDialectError(
            f"Unsupported SQL dialect for sales time-series: {name}"
        ) from None


@dataclass(frozen=True)
class _Dimension:
    select_columns: str
    joins: str
    group_columns: str
    id_column: str


_METRIC_COLUMNS = """
        COUNT(s.id) AS sale_count,
        SUM(s.amount) AS total_revenue,
        ROUND(AVG(s.amount), 2) AS avg_revenue,
        MIN(s.amount) AS min_sale,
        MAX(s.amount) AS max_sale"""

DIMENSIONS: Dict[GroupBy, _Dimension] = {
    GroupBy.USER: _Dimension(
        select_columns="u.id AS user_id, u.name AS user_name, u.role AS user_role",
        joins="JOIN users u ON s.user_id = u.id",
        group_columns="u.id, u.name, u.role",
        id_column="u.id",
    ),
    # One sale fans out to every group its user belongs to
    GroupBy.GROUP: _Dimension(
        select_columns="g.id AS group_id, g.name AS group_name",
        joins=(
            "JOIN users u ON s.user_id = u.id\n"
            "      JOIN user_groups ug ON u.id = ug.user_id\n"
            "      JOIN groups g ON ug.group_id = g.id"
        ),
        group_columns="g.id, g.name",
        id_column="g.id",
    ),
}


def build_time_series_query(
    params: TimeSeriesQuery, dialect: SqlDialect
) -> Tuple[TextClause, Dict[str, Any]]:
    """
    Build the aggregation statement and its bound values.

    Args:
        params: Validated query parameters. granularity and group_by must be
            enum members; date and ID filters are the raw request strings.
        dialect: SQL dialect of the target store.

    Returns:
        A (statement, values) tuple ready for AsyncConnection.execute.

    Raises:
        TimeSeriesValidationError: If granularity or group_by is out of range.
        ValueError: If a date filter is neither a date nor a timestamp.
    """
    granularity = parse_granularity(params.granularity)
    group_by = parse_group_by(params.group_by)
    dimension = DIMENSIONS[group_by]

    values: Dict[str, Any] = {}
    timestamp_binds = []
    conditions = ["1=1"]

    if params.start_date:
        values["start_date"], _ = parse_date_bound(params.start_date, "startDate")
        timestamp_binds.append("start_date")
        conditions.append("s.date >= :start_date")

    if params.end_date:
        end, date_only = parse_date_bound(params.end_date, "endDate")
        timestamp_binds.append("end_date")
        if date_only:
            # Inclusive through the end of the given day
            values["end_date"] = end + datetime.timedelta(days=1)
            conditions.append("s.date < :end_date")
        else:
            values["end_date"] = end
            conditions.append("s.date <= :end_date")

    raw_ids = params.user_id if group_by is GroupBy.USER else params.group_id
    ids = parse_id_list(raw_ids)
    if ids:
        names = [f"id_{i}" for i in range(len(ids))]
        values.update(zip(names, ids))
        placeholders = ", ".join(f":{name}" for name in names)
        conditions.append(f"{dimension.id_column} IN ({placeholders})")
    elif raw_ids:
        logger.warning("ID filter %r contained no integers; returning unfiltered %s buckets", raw_ids, group_by.value)

    sql = (
        "SELECT\n"
        f"        {dialect.truncations[granularity]} AS time_window,\n"
        f"        {dimension.select_columns},"
        f"{_METRIC_COLUMNS}\n"
        "      FROM sales s\n"
        f"      {dimension.joins}\n"
        f"      WHERE {' AND '.join(conditions)}\n"
        f"      GROUP BY time_window, {dimension.group_columns}\n"
        "      ORDER BY time_window DESC, total_revenue DESC"
    )
    statement = text(sql)
    if timestamp_binds:
        statement = statement.bindparams(
            *(bindparam(name, type_=UtcDateTime()) for name in timestamp_binds)
        )
    return statement, values
