"""Tests for CLI commands."""

import re
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from sqlbridge import __version__
from sqlbridge.cli.main import cli
from sqlbridge.config import SQLBridgeConfig, create_sample_config
from sqlbridge.db.connection import ConnectionManager, set_connection_manager
from sqlbridge.db.engine import ResultSet

CATALOG_ROWS = [
    {"dbo": 1, "xtype": "U", "name": "idcustomer", "type": "int", "max_length": None,
     "precision": 10, "scale": 0, "is_nullable": 0, "pk": 1},
    {"dbo": 1, "xtype": "U", "name": "email", "type": "varchar", "max_length": 255,
     "precision": None, "scale": None, "is_nullable": 1, "pk": 0},
]


def strip_ansi(text: str) -> str:
    """Remove ANSI escape codes from text."""
    ansi_escape = re.compile(r'\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])')
    return ansi_escape.sub('', text)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def sqlite_config(tmp_path: Path) -> str:
    """Configuration file pointing at a fresh SQLite database."""
    path = tmp_path / "sqlbridge.yaml"
    path.write_text(yaml.safe_dump({
        "connections": {
            "local": {"driver": "sqlite", "path": str(tmp_path / "cli.db")},
        },
    }), encoding="utf-8")
    return str(path)


@pytest.fixture
def fake_manager(bridge_config: SQLBridgeConfig, fake_engine) -> ConnectionManager:
    manager = ConnectionManager(bridge_config, fake_engine)
    set_connection_manager(manager)
    return manager


class TestMainCommand:

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_dashboard(self, runner):
        result = runner.invoke(cli, [])
        assert result.exit_code == 0
        assert "sqlbridge db query" in strip_ansi(result.output)

    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "db" in result.output
        assert "config" in result.output


class TestConfigCommands:

    def test_sample_then_validate(self, runner, tmp_path):
        output = tmp_path / "sample.yaml"

        result = runner.invoke(cli, ["config", "sample", str(output)])
        assert result.exit_code == 0
        assert output.exists()

        result = runner.invoke(cli, ["config", "validate", str(output)])
        assert result.exit_code == 0
        output_text = strip_ansi(result.output)
        assert "is valid" in output_text
        assert "main" in output_text

    def test_validate_invalid_file(self, runner, tmp_path):
        bad = tmp_path / "bad.yaml"
        bad.write_text("connections:\n  main:\n    server: db\n", encoding="utf-8")

        result = runner.invoke(cli, ["config", "validate", str(bad)])
        assert result.exit_code == 1
        assert "validation failed" in strip_ansi(result.output)


class TestDatabaseCommandsOnSQLite:

    def test_test_connection(self, runner, sqlite_config):
        result = runner.invoke(cli, ["--config", sqlite_config, "db", "test"])
        assert result.exit_code == 0
        assert "success" in strip_ansi(result.output)

    def test_status(self, runner, sqlite_config):
        result = runner.invoke(cli, ["--config", sqlite_config, "db", "status"])
        assert result.exit_code == 0
        output = strip_ansi(result.output)
        assert "local" in output
        assert "sqlite" in output

    def test_run_then_query(self, runner, sqlite_config, tmp_path):
        script = tmp_path / "seed.sql"
        script.write_text(
            "CREATE TABLE customer (id INTEGER PRIMARY KEY, name TEXT)\n"
            "GO\n"
            "INSERT INTO customer (id, name) VALUES (1, 'Ann')\n"
            "go\n"
            "INSERT INTO customer (id, name) VALUES (2, 'Bob')\n",
            encoding="utf-8",
        )

        result = runner.invoke(cli, ["--config", sqlite_config, "db", "run", str(script)])
        assert result.exit_code == 0, result.output

        result = runner.invoke(
            cli, ["--config", sqlite_config, "db", "query", "SELECT id, name FROM customer ORDER BY id"]
        )
        assert result.exit_code == 0, result.output
        output = strip_ansi(result.output)
        assert "Ann" in output
        assert "Bob" in output
        assert "2 row(s)" in output

        result = runner.invoke(
            cli,
            ["--config", sqlite_config, "db", "query", "--packet-size", "1",
             "SELECT name FROM customer WHERE id = 2"],
        )
        assert result.exit_code == 0, result.output
        assert "Bob" in strip_ansi(result.output)
        assert "1 row(s)" in strip_ansi(result.output)

    def test_failing_script(self, runner, sqlite_config, tmp_path):
        script = tmp_path / "broken.sql"
        script.write_text("SELECT 1\nGO\nTHIS IS NOT SQL\n", encoding="utf-8")

        result = runner.invoke(cli, ["--config", sqlite_config, "db", "run", str(script)])
        assert result.exit_code == 1
        assert "block 2" in strip_ansi(result.output)

    def test_unknown_connection(self, runner, sqlite_config):
        result = runner.invoke(cli, ["--config", sqlite_config, "db", "query", "SELECT 1", "-c", "nope"])
        assert result.exit_code == 1
        assert "not found" in strip_ansi(result.output)

        assert "Traceback" not in result.output

    def test_verbose_error_shows_traceback(self, runner, sqlite_config):
        result = runner.invoke(
            cli, ["--verbose", "--config", sqlite_config, "db", "query", "SELECT 1", "-c", "nope"]
        )
        assert result.exit_code == 1
        output = strip_ansi(result.output)
        assert "Error:" in output
        assert "Traceback (most recent call last)" in output


class TestDatabaseCommandsOnFakeEngine:

    def test_describe(self, runner, fake_manager, fake_engine, tmp_path):
        config_path = tmp_path / "sqlbridge.yaml"
        create_sample_config(config_path)
        from sqlbridge.db.schema import TableDescriber

        query = TableDescriber(None, "shop").build_query("customer")
        fake_engine.results[query] = [ResultSet(
            columns=list(CATALOG_ROWS[0].keys()),
            rows=[list(row.values()) for row in CATALOG_ROWS],
        )]

        result = runner.invoke(cli, ["--config", str(config_path), "db", "describe", "customer"])

        assert result.exit_code == 0, result.output
        output = strip_ansi(result.output)
        assert "Table customer" in output
        assert "idcustomer" in output
        assert "varchar" in output
        assert "email" in output

    def test_check_login(self, runner, fake_manager, fake_engine, tmp_path):
        config_path = tmp_path / "sqlbridge.yaml"
        create_sample_config(config_path)

        result = runner.invoke(
            cli, ["--config", str(config_path), "db", "check-login", "auditor"], input="pw\n"
        )
        assert result.exit_code == 0
        assert "is valid" in strip_ansi(result.output)
        assert "uid=auditor;pwd=pw;" in fake_engine.opened[0]

    def test_check_login_refused(self, runner, fake_manager, fake_engine, tmp_path):
        config_path = tmp_path / "sqlbridge.yaml"
        create_sample_config(config_path)
        fake_engine.open_error = RuntimeError("Access denied")

        result = runner.invoke(
            cli, ["--config", str(config_path), "db", "check-login", "auditor", "--password", "bad"]
        )
        assert result.exit_code == 1
        assert "refused" in strip_ansi(result.output)

    def test_query_renders_result_sets_as_frames(self, runner, fake_manager, fake_engine, tmp_path):
        config_path = tmp_path / "sqlbridge.yaml"
        create_sample_config(config_path)
        fake_engine.results["SELECT id, note FROM memo; SELECT count(*) AS n FROM memo"] = [
            ResultSet(columns=["id", "note"], rows=[[1, None], [2, "hi"]]),
            ResultSet(columns=["n"], rows=[[2]]),
        ]

        result = runner.invoke(cli, [
            "--config", str(config_path), "db", "query",
            "SELECT id, note FROM memo; SELECT count(*) AS n FROM memo",
        ])

        assert result.exit_code == 0, result.output
        output = strip_ansi(result.output)
        assert "Result set 1" in output
        assert "Result set 2" in output
        assert "NULL" in output
        assert "hi" in output
        assert "2 row(s)" in output
        assert "1 row(s)" in output
