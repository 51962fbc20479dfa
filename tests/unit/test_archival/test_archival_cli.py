# tests/unit/test_archival/test_archival_cli.py
"""Unit tests for the archival CLI."""

from datetime import datetime
from unittest.mock import patch

import pytest


@pytest.fixture
def cli(services):
    """Run CLI commands against the in-memory services."""
    from healthmon.cli import archival

    def run(*argv):
        with patch.object(archival, "get_services", return_value=services), \
                patch("healthmon.logging_config.configure_logging"):
            archival.main(list(argv))

    return run


class TestArchiveCommands:

    def test_archive_prints_purge_date(self, cli, services, capsys):
        cli("archive", "patient-42", "--operator", "admin-1", "--reason", "cured")

        out = capsys.readouterr().out
        assert "Archived patient-42" in out
        assert "2024-07-10" in out
        assert services.lifecycle.get_subject("patient-42").archived is True

    def test_archive_error_exits_with_code(self, cli, services, capsys):
        services.lifecycle.archive("patient-42", "admin-1", "cured")

        with pytest.raises(SystemExit) as exc_info:
            cli("archive", "patient-42", "--operator", "admin-1", "--reason", "cured")

        assert exc_info.value.code == 1
        assert "Error [already_archived]" in capsys.readouterr().out

    def test_reason_outside_enum_rejected_by_parser(self, cli):
        with pytest.raises(SystemExit) as exc_info:
            cli("archive", "patient-42", "--operator", "admin-1", "--reason", "bored")

        assert exc_info.value.code == 2

    def test_unarchive(self, cli, services, capsys):
        services.lifecycle.archive("patient-42", "admin-1", "cured")

        cli("unarchive", "patient-42", "--operator", "admin-1", "--reason", "relapse")

        assert "Unarchived patient-42" in capsys.readouterr().out
        assert services.lifecycle.get_subject("patient-42").archived is False

    def test_bulk_archive_exits_nonzero_on_partial_failure(self, cli, services, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli("bulk-archive", "patient-42", "patient-999", "--operator", "admin-1", "--reason", "inactive")

        out = capsys.readouterr().out
        assert exc_info.value.code == 1
        assert "Archived: 1" in out
        assert "patient-999: subject_not_found" in out


class TestDeleteCommand:

    def test_requires_confirm(self, cli, services, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli("delete", "patient-42", "--operator", "admin-1")

        assert exc_info.value.code == 1
        assert "--confirm" in capsys.readouterr().out

    def test_rejected_inside_retention_window(self, cli, services, capsys):
        services.lifecycle.archive("patient-42", "admin-1", "cured")

        with pytest.raises(SystemExit):
            cli("delete", "patient-42", "--operator", "admin-1", "--confirm")

        assert "retention_window_not_elapsed" in capsys.readouterr().out
        assert services.lifecycle.get_subject("patient-42").archived is True

    def test_deletes_after_retention_window(self, cli, services, clock, capsys):
        services.lifecycle.archive("patient-42", "admin-1", "cured")
        clock.set(datetime(2024, 7, 10))

        cli("delete", "patient-42", "--operator", "admin-1", "--confirm")

        out = capsys.readouterr().out
        assert "Permanently deleted patient-42" in out
        assert "measurements: 3" in out
        assert services.accounts.get("patient-42") is None


class TestReportingCommands:

    def test_status_json(self, cli, services, capsys):
        import json

        services.lifecycle.archive("patient-42", "admin-1", "cured")

        cli("status", "--json")

        data = json.loads(capsys.readouterr().out)
        assert data["archived"] == 1
        assert data["archived_by_reason"] == {"cured": 1}

    def test_history_by_subject(self, cli, services, capsys):
        services.lifecycle.archive("patient-42", "admin-1", "cured")

        cli("history", "--subject", "patient-42")

        out = capsys.readouterr().out
        assert "archive" in out
        assert "by=admin-1" in out

    def test_history_empty(self, cli, capsys):
        cli("history", "--actor", "clinician-7")

        assert "No audit entries" in capsys.readouterr().out

    def test_purge_due(self, cli, services, clock, capsys):
        services.lifecycle.archive("patient-42", "admin-1", "cured")
        clock.set(datetime(2024, 8, 1))

        cli("purge-due")

        out = capsys.readouterr().out
        assert "1 accounts eligible" in out
        assert "patient-42" in out
