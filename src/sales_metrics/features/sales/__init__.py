"""Sales time-series reporting for sales-metrics

This module provides the read-only GET /api/sales/timeseries endpoint, which
aggregates sales into day, week or month windows per user or per group.
Groups are reached through user memberships, so a user in several groups
contributes each sale to all of them.

The router validates and delegates; the service builds one parameterized
aggregation query, runs it against the injected store connection and
reshapes the rows into nested buckets."""
