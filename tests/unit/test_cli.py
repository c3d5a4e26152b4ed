"""
Unit tests for the reconcile.py operator script.
"""

import importlib.util
import json
from pathlib import Path

import pytest
from unittest.mock import patch

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "reconcile.py"


@pytest.fixture(scope="module")
def cli():
    spec = importlib.util.spec_from_file_location("reconcile_cli", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.mark.usefixtures("restore_dealsync_logger")
class TestReconcileCLI:
    """Test suite for the CLI entry point."""

    def test_no_command_prints_help(self, cli, capsys):
        assert cli.main([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_match(self, cli, tmp_path, capsys):
        """Test matching from JSON files."""
        deals = tmp_path / "deals.json"
        projects = tmp_path / "projects.json"
        deals.write_text(json.dumps({"deals": [{"id": 1, "title": "ED25002 - Titanic", "value": 100}]}))
        projects.write_text(json.dumps([
            {"projectId": "p1", "name": "ED25002 Titanic", "totalAmount": {"value": 100}},
            {"projectId": "p2", "name": "Other", "totalAmount": {"value": 5}},
        ]))

        code = cli.main(["match", "--deals", str(deals), "--projects", str(projects)])

        output = json.loads(capsys.readouterr().out)
        assert code == 0
        assert output["matched_count"] == 1
        assert output["unmatched_projects_count"] == 1

    @pytest.fixture
    def match_files(self, tmp_path):
        """Deal and project files whose values differ by 40%."""
        deals = tmp_path / "deals.json"
        projects = tmp_path / "projects.json"
        deals.write_text(json.dumps([{"id": 1, "title": "ED25002 - Titanic", "value": 100}]))
        projects.write_text(json.dumps([
            {"projectId": "p1", "name": "ED25002 Titanic", "totalAmount": {"value": 150}},
        ]))
        return str(deals), str(projects)

    def test_match_reads_value_settings_from_config(self, cli, tmp_path, capsys, match_files, monkeypatch):
        """Test that tolerance and value comparison come from the YAML config."""
        monkeypatch.delenv("DEALSYNC_VALUE_TOLERANCE_PERCENTAGE", raising=False)
        deals, projects = match_files
        config = tmp_path / "dealsync.yaml"

        assert cli.main(["match", "--deals", deals, "--projects", projects]) == 0
        assert len(json.loads(capsys.readouterr().out)["value_discrepancies"]) == 1

        config.write_text("fix:\n  value_tolerance_percentage: 50\n")
        assert cli.main(["match", "--deals", deals, "--projects", projects, "--config", str(config)]) == 0
        assert json.loads(capsys.readouterr().out)["value_discrepancies"] == []

        config.write_text("fix:\n  enableValueComparison: false\n")
        assert cli.main(["match", "--deals", deals, "--projects", projects, "--config", str(config)]) == 0
        assert json.loads(capsys.readouterr().out)["value_discrepancies"] == []

    def test_match_tolerance_flag_overrides_config(self, cli, tmp_path, capsys, match_files):
        deals, projects = match_files
        config = tmp_path / "dealsync.yaml"
        config.write_text("fix:\n  value_tolerance_percentage: 50\n")

        code = cli.main([
            "match", "--deals", deals, "--projects", projects, "--config", str(config), "--tolerance", "10"
        ])

        assert code == 0
        assert len(json.loads(capsys.readouterr().out)["value_discrepancies"]) == 1

    def test_match_with_metrics_port(self, cli, capsys, match_files, monkeypatch):
        """Test that --metrics-port starts the exporter and records the run."""
        deals, projects = match_files
        started = {}

        def fake_start(port, registry=None):
            started["port"] = port
            started["registry"] = registry

        monkeypatch.setattr(cli, "start_metrics_server", fake_start)

        code = cli.main(["--metrics-port", "9109", "--tenant", "acme", "match", "--deals", deals, "--projects", projects])

        capsys.readouterr()
        assert code == 0
        assert started["port"] == 9109
        assert started["registry"].get_sample_value(
            "dealsync_reconciliation_runs_total", {"tenant": "acme"}
        ) == 1

    def test_fix_dry_run(self, cli, tmp_path, capsys, monkeypatch, mock_client, title_issue):
        """Test a dry-run fix session end to end with a mocked client."""
        monkeypatch.setenv("PIPEDRIVE_API_KEY", "token")
        monkeypatch.setenv("PIPEDRIVE_COMPANY_DOMAIN", "acme")
        issues = tmp_path / "issues.json"
        issues.write_text(json.dumps([title_issue(101, "titanic ed25002", "ED25002-Titanic")]))

        with patch("dealsync.fixes.orchestrator.PipedriveDealClient", return_value=mock_client):
            code = cli.main(["--tenant", "acme", "fix", "--issues", str(issues), "--dry-run"])

        output = json.loads(capsys.readouterr().out)
        assert code == 0
        assert output["status"] == "completed"
        assert output["fix_results"][0]["status"] == "skipped"
        assert output["fix_results"][0]["new_value"] == "ED25002-Titanic"
        mock_client.update_deal_title.assert_not_called()

    def test_fix_without_credentials_fails(self, cli, tmp_path, monkeypatch):
        for name in ("PIPEDRIVE_API_KEY", "PIPEDRIVE_COMPANY_DOMAIN", "VAULT_ADDR"):
            monkeypatch.delenv(name, raising=False)
        issues = tmp_path / "issues.json"
        issues.write_text("[]")

        assert cli.main(["fix", "--issues", str(issues)]) == 1

    def test_alerts(self, cli, capsys):
        assert cli.main(["alerts"]) == 0
        assert "HighFixFailureRate" in capsys.readouterr().out
