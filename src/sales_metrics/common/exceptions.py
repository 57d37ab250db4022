"""Domain-specific exceptions for the sales metrics API.

All exceptions raised on purpose by the application inherit from
SalesMetricsError. Store and driver errors are not wrapped: they reach the
request boundary unchanged and are reported as server errors there.
"""


class SalesMetricsError(Exception):
    """Base exception for all sales metrics errors."""

    pass


class TimeSeriesValidationError(SalesMetricsError, ValueError):
    """Raised when a time-series request parameter is out of range.

    This exception is raised when:
    - granularity is not one of day, week, month
    - groupBy is not one of user, group

    The query is never executed when this is raised.
    """

    pass


class UnsupportedDialectError(SalesMetricsError):
    """Raised when the store speaks an SQL dialect without a query template."""

    pass
