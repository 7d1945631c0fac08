"""Tests for the root group, init, and --examples."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from backoffice import __version__
from backoffice.cli import cli


class TestRoot:
    def test_help_without_subcommand(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, [])
        assert result.exit_code == 0
        for name in ("customers", "invoices", "tags", "init"):
            assert name in result.output

    def test_version(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--version"])
        assert __version__ in result.output

    @pytest.mark.parametrize(
        "args",
        [
            ["customers", "--examples"],
            ["customers", "import", "--examples"],
            ["invoices", "create", "--examples"],
            ["tags", "list", "--examples"],
            ["init", "--examples"],
        ],
    )
    def test_examples(self, cli_runner: CliRunner, args: list[str]) -> None:
        result = cli_runner.invoke(cli, args)
        assert result.exit_code == 0
        assert "Examples for" in result.output
        assert "backoffice" in result.output


class TestInit:
    def test_creates_database_and_config(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        result = cli_runner.invoke(cli, ["--json", "init", str(tmp_path)])
        assert result.exit_code == 0
        data = json.loads(result.output)["data"]
        assert data["config_written"] is True
        assert (tmp_path / "backoffice.toml").is_file()
        assert (tmp_path / ".backoffice" / "backoffice.db").is_file()

    def test_keeps_existing_config(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        (tmp_path / "backoffice.toml").write_text('[store]\npath = "data/bo.db"\n', encoding="utf-8")
        result = cli_runner.invoke(cli, ["--json", "init", str(tmp_path)])
        data = json.loads(result.output)["data"]
        assert data["config_written"] is False
        assert (tmp_path / "data" / "bo.db").is_file()

    def test_no_config(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        result = cli_runner.invoke(cli, ["init", str(tmp_path), "--no-config"])
        assert result.exit_code == 0
        assert not (tmp_path / "backoffice.toml").exists()


class TestConfigFlag:
    def test_prefix_from_config(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        cfg = tmp_path / "backoffice.toml"
        cfg.write_text(
            f'[store]\npath = "{(tmp_path / "bo.db").as_posix()}"\n\n'
            '[invoices]\nnumber_prefix = "BILL-"\n',
            encoding="utf-8",
        )
        body = tmp_path / "inv.json"
        body.write_text(
            json.dumps(
                {
                    "issue_date": "2024-01-15",
                    "billing_name": "Acme",
                    "items": [{"item_name": "x", "quantity": 1, "unit_price": 1}],
                }
            ),
            encoding="utf-8",
        )
        result = cli_runner.invoke(cli, ["--json", "-c", str(cfg), "invoices", "create", str(body)])
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["data"]["invoice"]["invoice_number"] == "BILL-202401-0001"
