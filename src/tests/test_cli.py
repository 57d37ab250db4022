import json

import pytest
from typer.testing import CliRunner

from sales_metrics.cli.main import app
from sales_metrics.core import config
from sales_metrics.features.sales.seed import SEED_GROUPS, SEED_USERS

runner = CliRunner()

pytestmark = pytest.mark.no_db


@pytest.fixture
def sqlite_file(tmp_path, monkeypatch):
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.sqlite3'}"
    monkeypatch.setattr(config, "DATABASE_URL", url)
    return url


def test_seed_skips_a_seeded_store_unless_forced(sqlite_file):
    first = runner.invoke(app, ["seed", "--sales-per-user", "5"])
    assert first.exit_code == 0, first.output
    assert f"Seeded {5 * len(SEED_USERS)} sales." in first.output

    second = runner.invoke(app, ["seed", "--sales-per-user", "5"])
    assert second.exit_code == 0, second.output
    assert "already contains sales" in second.output

    forced = runner.invoke(app, ["seed", "--force", "--sales-per-user", "3"])
    assert forced.exit_code == 0, forced.output
    assert f"Seeded {3 * len(SEED_USERS)} sales." in forced.output


def test_db_connection_reports_table_sizes(sqlite_file):
    runner.invoke(app, ["seed", "--sales-per-user", "2"])

    result = runner.invoke(app, ["test-db-connection"])

    assert result.exit_code == 0, result.output
    assert "Successfully connected to the database (sqlite)." in result.output
    assert f"users: {len(SEED_USERS)} row(s)" in result.output
    assert f"groups: {len(SEED_GROUPS)} row(s)" in result.output
    assert f"sales: {2 * len(SEED_USERS)} row(s)" in result.output


def test_timeseries_prints_the_response_envelope(sqlite_file):
    runner.invoke(app, ["seed", "--sales-per-user", "4"])

    result = runner.invoke(app, ["timeseries", "--granularity", "month", "--group-by", "group", "--group-id", "1,2"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["granularity"] == "month"
    assert payload["groupBy"] == "group"
    assert payload["filters"] == {"startDate": None, "endDate": None, "userId": None, "groupId": "1,2"}
    assert payload["data"]
    assert {bucket["groupId"] for bucket in payload["data"]} <= {1, 2}


def test_timeseries_rejects_invalid_granularity(sqlite_file):
    result = runner.invoke(app, ["timeseries", "--granularity", "year"])

    assert result.exit_code == 2
    assert "Invalid granularity" in result.output


def test_timeseries_rejects_malformed_date(sqlite_file):
    result = runner.invoke(app, ["timeseries", "--end-date", "31/08/2021"])

    assert result.exit_code == 2
    assert "Invalid endDate: 31/08/2021" in result.output
