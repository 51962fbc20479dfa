# tests/unit/test_archival/test_archival_statistics.py
"""Unit tests for archival statistics."""

import logging
from datetime import datetime


class TestGetStatistics:
    """Tests for StatisticsReporter.get_statistics()."""

    def _archive_two(self, services, clock):
        clock.set(datetime(2023, 12, 20))
        services.lifecycle.archive("patient-43", "admin-1", "inactive")
        clock.set(datetime(2024, 1, 10))
        services.lifecycle.archive("patient-42", "clinician-7", "cured")

    def test_counts_with_nothing_archived(self, services):
        stats = services.statistics.get_statistics()

        assert stats.total_accounts == 5
        assert stats.active == 5
        assert stats.archived == 0
        assert stats.archived_by_reason == {}
        assert stats.purge_eligible == 0
        assert stats.archived_without_audit == 0

    def test_counts_by_period_reason_and_role(self, services, clock):
        self._archive_two(services, clock)

        stats = services.statistics.get_statistics()

        assert stats.generated_at == datetime(2024, 1, 10)
        assert stats.total_accounts == 5
        assert stats.active == 3
        assert stats.archived == 2
        assert stats.archived_this_month == 1
        assert stats.archived_this_year == 1
        assert stats.archived_by_reason == {"cured": 1, "inactive": 1}
        assert stats.archived_by_role == {"patient": 2}
        assert stats.active_by_role == {"administrator": 1, "clinician": 1, "patient": 1}
        assert stats.audit_entries_by_action == {"archive": 2}

    def test_purge_eligible_follows_retention_window(self, services, clock):
        self._archive_two(services, clock)

        assert services.statistics.get_statistics(now=datetime(2024, 6, 19)).purge_eligible == 0
        assert services.statistics.get_statistics(now=datetime(2024, 6, 20)).purge_eligible == 1
        assert services.statistics.get_statistics(now=datetime(2024, 7, 10)).purge_eligible == 2

    def test_unarchived_accounts_count_as_active(self, services, clock):
        self._archive_two(services, clock)
        services.lifecycle.unarchive("patient-43", "admin-1", "came back")

        stats = services.statistics.get_statistics()

        assert stats.archived == 1
        assert stats.active == 4
        assert stats.audit_entries_by_action == {"archive": 2, "unarchive": 1}
        assert stats.archived_without_audit == 0

    def test_detects_archive_without_audit_entry(self, services, session_factory, caplog):
        """Should flag accounts archived outside the lifecycle service."""
        from healthmon.models import Account

        db = session_factory()
        account = db.get(Account, "patient-44")
        account.archived = True
        account.archived_at = datetime(2024, 1, 5)
        account.scheduled_purge_at = datetime(2024, 7, 5)
        db.commit()
        db.close()

        with caplog.at_level(logging.WARNING):
            stats = services.statistics.get_statistics()

        assert stats.archived == 1
        assert stats.archived_without_audit == 1
        assert any(getattr(r, "event", None) == "audit_gap_detected" for r in caplog.records)

    def test_to_dict_is_serializable(self, services, clock):
        import json

        self._archive_two(services, clock)

        data = services.statistics.get_statistics().to_dict()

        assert data["generated_at"] == "2024-01-10T00:00:00"
        assert json.loads(json.dumps(data))["archived"] == 2
