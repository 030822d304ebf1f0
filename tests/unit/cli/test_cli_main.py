"""Unit tests for the specgraph command line interface."""

import os
from unittest.mock import patch

import pytest
from conftest import write_capability, write_enabler
from typer.testing import CliRunner

from specgraph import __version__
from specgraph_cli.main import app

runner = CliRunner()


@pytest.fixture
def env(content_root, plan_path, tmp_path):
    """Point the CLI at the test content root through the environment."""
    values = {
        "SPECGRAPH_CONFIG_PATH": str(tmp_path / "no-config.yaml"),
        "SPECGRAPH_ROOTS": str(content_root),
        "SPECGRAPH_PLAN_PATH": str(plan_path),
    }
    with patch.dict(os.environ, values):
        yield values


class TestVersion:
    def test_version(self):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output


class TestShow:
    def test_show_json(self, env, content_root):
        write_capability(content_root, "CAP-100001", name="Billing")

        result = runner.invoke(app, ["show", "CAP-100001", "--json"])

        assert result.exit_code == 0
        assert '"id": "CAP-100001"' in result.output
        assert '"name": "Billing"' in result.output

    def test_show_table(self, env, content_root):
        write_enabler(content_root, "ENB-1", capability_id="CAP-1")

        result = runner.invoke(app, ["show", "1-enabler.md"])

        assert result.exit_code == 0
        assert "FR-1" in result.output

    def test_show_unknown(self, env):
        result = runner.invoke(app, ["show", "ENB-404"])
        assert result.exit_code == 1


class TestCommands:
    def test_allocate_id(self, env):
        result = runner.invoke(app, ["allocate-id", "NFR-", "--count", "2"])

        assert result.exit_code == 0
        assert len([line for line in result.output.splitlines() if line.startswith("NFR-")]) == 2

    def test_new_capability_and_enabler(self, env, content_root):
        result = runner.invoke(app, ["new-capability", "Billing"])
        assert result.exit_code == 0
        cap_path = next(content_root.glob("*-capability.md"))
        cap_id = f"CAP-{cap_path.name.split('-')[0]}"

        result = runner.invoke(app, ["new-enabler", "Invoices", "--capability", cap_id])
        assert result.exit_code == 0

        result = runner.invoke(app, ["render", cap_id])
        assert "Invoices" in result.output

    def test_reparent_and_check(self, env, content_root):
        write_capability(content_root, "CAP-1", enablers=[("ENB-1", "x")])
        write_capability(content_root, "CAP-2")
        write_enabler(content_root, "ENB-1", capability_id="CAP-1")

        assert runner.invoke(app, ["reparent", "ENB-1", "CAP-2"]).exit_code == 0
        assert runner.invoke(app, ["check"]).exit_code == 0

    def test_check_reports_issues(self, env, content_root):
        write_capability(content_root, "CAP-1", enablers=[("ENB-404", "gone")])

        result = runner.invoke(app, ["check"])

        assert result.exit_code == 1
        assert "1 issue(s) found" in result.output

    def test_sync_deps(self, env, content_root):
        write_capability(content_root, "CAP-1", upstream=[("CAP-2", "x")])
        cap2 = write_capability(content_root, "CAP-2")

        assert runner.invoke(app, ["sync-deps", "CAP-1"]).exit_code == 0
        assert "| CAP-1 |" in cap2.read_text()

    def test_copy_and_delete(self, env, content_root):
        write_enabler(content_root, "ENB-1")

        assert runner.invoke(app, ["copy", "ENB-1"]).exit_code == 0
        assert len(list(content_root.glob("*-enabler.md"))) == 2

        assert runner.invoke(app, ["delete", "ENB-1", "--yes"]).exit_code == 0
        assert not (content_root / "1-enabler.md").exists()

    def test_delete_declined(self, env, content_root):
        path = write_enabler(content_root, "ENB-1")

        result = runner.invoke(app, ["delete", "ENB-1"], input="n\n")

        assert result.exit_code == 1
        assert path.exists()
