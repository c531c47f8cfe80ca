from datetime import datetime, timedelta, timezone

from typer.testing import CliRunner

from starhistory.cli import app
from starhistory.db import Store

runner = CliRunner()


def test_config_prints_database_location(settings_env):
    result = runner.invoke(app, ["config"])

    assert result.exit_code == 0
    assert str((settings_env / "cli.db").resolve()) in result.output


def test_update_requires_token(settings_env):
    result = runner.invoke(app, ["update"])

    assert result.exit_code == 1


def test_chart_without_history_fails(settings_env):
    result = runner.invoke(app, ["chart", "--type", "total", str(settings_env / "out.svg")])

    assert result.exit_code == 1
    assert not (settings_env / "out.svg").exists()


def test_chart_total(settings_env):
    store = Store.from_url(f"sqlite:///{settings_env / 'cli.db'}")
    store.create_schema()
    t0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
    store.append_stargazer_events("o", "r", [(t0 + timedelta(days=i), f"u{i}") for i in range(3)])
    store.dispose()

    result = runner.invoke(app, ["chart", "--type", "total", str(settings_env / "out.svg")])

    assert result.exit_code == 0, result.output
    assert (settings_env / "out.svg").exists()
