"""Sales Time-Series API Schemas

Pydantic models and enumerations for the sales time-series report:

1. Granularity and GroupBy, the closed enumerations the report accepts
2. TimeSeriesQuery, the validated parameter set handed to the service
3. User and group buckets with their SaleMetrics
4. TimeSeriesResponse, the success envelope, and the two error envelopes

Field names are snake_case in Python and camelCase on the wire."""
import datetime
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Granularity(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class GroupBy(str, Enum):
    USER = "user"
    GROUP = "group"


class TimeSeriesQuery(BaseModel):
    # Kept as plain strings so the service can reject out-of-range values itself
    granularity: str = Granularity.MONTH.value
    group_by: str = GroupBy.USER.value
    # Raw filter strings, parsed when the query is built
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    user_id: Optional[str] = None
    group_id: Optional[str] = None


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SaleMetrics(_CamelModel):
    sale_count: int = Field(..., alias="saleCount")
    total_revenue: int = Field(..., alias="totalRevenue")
    avg_revenue: float = Field(..., alias="avgRevenue")
    min_sale: int = Field(..., alias="minSale")
    max_sale: int = Field(..., alias="maxSale")


class UserTimeSeriesBucket(_CamelModel):
    time_window: datetime.datetime = Field(..., alias="timeWindow")
    user_id: int = Field(..., alias="userId")
    user_name: str = Field(..., alias="userName")
    user_role: Optional[str] = Field(None, alias="userRole")
    metrics: SaleMetrics


class GroupTimeSeriesBucket(_CamelModel):
    time_window: datetime.datetime = Field(..., alias="timeWindow")
    group_id: int = Field(..., alias="groupId")
    group_name: str = Field(..., alias="groupName")
    metrics: SaleMetrics


TimeSeriesBucket = Union[UserTimeSeriesBucket, GroupTimeSeriesBucket]


class TimeSeriesFilters(_CamelModel):
    start_date: Optional[str] = Field(None, alias="startDate")
    end_date: Optional[str] = Field(None, alias="endDate")
    user_id: Optional[str] = Field(None, alias="userId")
    group_id: Optional[str] = Field(None, alias="groupId")


class TimeSeriesResponse(_CamelModel):
    granularity: Granularity
    group_by: GroupBy = Field(..., alias="groupBy")
    filters: TimeSeriesFilters
    data: List[TimeSeriesBucket]


class ErrorResponse(BaseModel):
    error: str


class ServerErrorResponse(BaseModel):
    error: str
    message: str
