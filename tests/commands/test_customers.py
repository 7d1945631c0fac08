"""Tests for the customers command group."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from backoffice.cli import cli

CSV_TEXT = 'name,email,tags\nYamada,a@a.com,"VIP,New"\nYamada2,a@a.com,\n'


@pytest.mark.usefixtures("_isolated_project")
class TestImportCommand:
    def test_import_json(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        csv_file = tmp_path / "customers.csv"
        csv_file.write_text(CSV_TEXT, encoding="utf-8")
        result = cli_runner.invoke(cli, ["--json", "customers", "import", str(csv_file)])
        assert result.exit_code == 0
        data = json.loads(result.output)["data"]
        assert (data["total"], data["success"], data["failed"], data["skipped"]) == (2, 1, 0, 1)

    def test_import_human(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        csv_file = tmp_path / "customers.csv"
        csv_file.write_text(CSV_TEXT, encoding="utf-8")
        result = cli_runner.invoke(cli, ["customers", "import", str(csv_file)])
        assert result.exit_code == 0
        assert "skipped: 1" in result.output

    def test_import_stdin(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--json", "customers", "import", "-"], input=CSV_TEXT)
        assert result.exit_code == 0
        assert json.loads(result.output)["data"]["success"] == 1

    def test_import_empty_file_fails(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        csv_file = tmp_path / "empty.csv"
        csv_file.write_text("", encoding="utf-8")
        result = cli_runner.invoke(cli, ["customers", "import", str(csv_file)])
        assert result.exit_code == 1
        assert "INVALID_CSV" in result.output or "VALIDATION_ERROR" in result.output

    def test_import_malformed_csv_exits_cleanly(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(
            cli, ["--json", "customers", "import", "-"], input='name,memo\nA,"open\nB,ok\n'
        )
        assert result.exit_code == 1
        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert "INVALID_CSV" in result.output

    def test_import_missing_file(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["customers", "import", "nope.csv"])
        assert result.exit_code == 1


@pytest.mark.usefixtures("_isolated_project")
class TestTemplateCommand:
    def test_template(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["customers", "template"])
        assert result.exit_code == 0
        assert "氏名" in result.output

    def test_template_round_trip(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        template = cli_runner.invoke(cli, ["customers", "template"]).output
        csv_file = tmp_path / "t.csv"
        csv_file.write_text(template, encoding="utf-8")
        result = cli_runner.invoke(cli, ["--json", "customers", "import", str(csv_file)])
        assert json.loads(result.output)["data"]["success"] == 2


@pytest.mark.usefixtures("_isolated_project")
class TestCreateShowDelete:
    def test_create_with_tags(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(
            cli,
            ["--json", "customers", "create", "--name", "山田", "--tag", "VIP", "--tag", "VIP"],
        )
        assert result.exit_code == 0
        data = json.loads(result.output)["data"]
        assert len(data["tag_ids"]) == 2
        customer_id = data["customer"]["id"]

        shown = cli_runner.invoke(cli, ["--json", "customers", "show", customer_id])
        assert [t["name"] for t in json.loads(shown.output)["data"]["tags"]] == ["VIP"]

    def test_create_with_extra_fields(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(
            cli,
            ["--json", "customers", "create", "--name", "x", "--set", "postal_code=100-0001"],
        )
        assert result.exit_code == 0
        assert json.loads(result.output)["data"]["customer"]["postal_code"] == "100-0001"

    def test_create_invalid(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(
            cli, ["customers", "create", "--name", "x", "--type", "company"]
        )
        assert result.exit_code == 1
        assert "company_name" in result.output

    def test_bad_set_syntax(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["customers", "create", "--name", "x", "--set", "oops"])
        assert result.exit_code == 2

    def test_delete_then_show(self, cli_runner: CliRunner) -> None:
        created = cli_runner.invoke(cli, ["--json", "customers", "create", "--name", "x"])
        customer_id = json.loads(created.output)["data"]["customer"]["id"]
        assert cli_runner.invoke(cli, ["customers", "delete", customer_id]).exit_code == 0
        assert cli_runner.invoke(cli, ["customers", "show", customer_id]).exit_code == 1
        again = cli_runner.invoke(cli, ["customers", "delete", customer_id])
        assert again.exit_code == 1
        assert "already deleted" in again.output


@pytest.mark.usefixtures("_isolated_project")
class TestSearchCommands:
    def _seed(self, cli_runner: CliRunner) -> None:
        for name, kana in (("山田太郎", "ヤマダタロウ"), ("佐藤花子", "サトウハナコ")):
            cli_runner.invoke(cli, ["customers", "create", "--name", name, "--kana", kana])

    def test_search_kana(self, cli_runner: CliRunner) -> None:
        self._seed(cli_runner)
        result = cli_runner.invoke(cli, ["--json", "customers", "search", "やまだ"])
        items = json.loads(result.output)["data"]["items"]
        assert [i["name"] for i in items] == ["山田太郎"]

    def test_search_table(self, cli_runner: CliRunner) -> None:
        self._seed(cli_runner)
        result = cli_runner.invoke(cli, ["customers", "search"])
        assert result.exit_code == 0
        assert "2 customers" in result.output

    def test_suggest_quiet(self, cli_runner: CliRunner) -> None:
        self._seed(cli_runner)
        result = cli_runner.invoke(cli, ["-q", "customers", "suggest", "さとう"])
        assert result.exit_code == 0
        assert len(result.output.strip().splitlines()) == 1


@pytest.mark.usefixtures("_isolated_project")
class TestUpdateCommand:
    def _create(self, cli_runner: CliRunner, *args: str) -> str:
        result = cli_runner.invoke(cli, ["--json", "customers", "create", "--name", "x", *args])
        return json.loads(result.output)["data"]["customer"]["id"]

    def _tag_names(self, cli_runner: CliRunner, customer_id: str) -> list[str]:
        shown = cli_runner.invoke(cli, ["--json", "customers", "show", customer_id])
        return [t["name"] for t in json.loads(shown.output)["data"]["tags"]]

    def test_update_fields(self, cli_runner: CliRunner) -> None:
        customer_id = self._create(cli_runner, "--email", "a@a.com")
        result = cli_runner.invoke(
            cli, ["--json", "customers", "update", customer_id, "--name", "y", "--set", "email="]
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)["data"]
        assert data["customer"]["name"] == "y"
        assert data["customer"]["email"] is None
        assert data["changed"] == ["email", "name"]

    def test_tag_replaces_and_clear_tags_empties(self, cli_runner: CliRunner) -> None:
        customer_id = self._create(cli_runner, "--tag", "VIP")
        replaced = cli_runner.invoke(
            cli, ["customers", "update", customer_id, "--tag", "New", "--tag", "Tokyo"]
        )
        assert replaced.exit_code == 0
        assert self._tag_names(cli_runner, customer_id) == ["New", "Tokyo"]

        cleared = cli_runner.invoke(cli, ["customers", "update", customer_id, "--clear-tags"])
        assert cleared.exit_code == 0
        assert self._tag_names(cli_runner, customer_id) == []

    def test_tag_and_clear_tags_conflict(self, cli_runner: CliRunner) -> None:
        customer_id = self._create(cli_runner)
        result = cli_runner.invoke(
            cli, ["customers", "update", customer_id, "--tag", "VIP", "--clear-tags"]
        )
        assert result.exit_code == 2

    def test_update_unknown_customer(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["customers", "update", "nope", "--name", "y"])
        assert result.exit_code == 1
        assert "NOT_FOUND (404)" in result.output
