"""
Unit tests for the project matcher and record normalizer.
"""

import pytest
from unittest.mock import Mock

from dealsync.fixes.config import FixOrchestrationConfig
from dealsync.reconciliation.matcher import ProjectMatcher
from dealsync.reconciliation.models import CanonicalRecord
from dealsync.reconciliation.normalizer import (
    normalize_deal,
    normalize_deals,
    normalize_project,
    normalize_projects,
)


def deal(id, name, value=1000.0):
    return CanonicalRecord(id=id, name=name, value=value, currency="USD", source="pipedrive")


def project(id, name, value=1000.0):
    return CanonicalRecord(id=id, name=name, value=value, currency="USD", source="xero")


class TestProjectMatcher:
    """Test suite for ProjectMatcher."""

    @pytest.fixture
    def matcher(self):
        return ProjectMatcher(value_tolerance_percentage=5.0)

    def test_matches_on_key(self, matcher):
        """Test that records with equal keys are paired."""
        result = matcher.match_projects(
            [deal("d1", "ED25002 - Titanic")],
            [project("p1", "ed25002 titanic (2)")]
        )

        assert len(result.matches) == 1
        assert result.matches[0].match_key == "ed25002-titanic"
        assert result.unmatched_deals == []
        assert result.unmatched_projects == []

    def test_project_matched_at_most_once(self, matcher):
        """Test the 1:1 relation when two deals share a key."""
        deals = [deal("d1", "ED25002 - Titanic"), deal("d2", "ED25002 - Titanic")]
        projects = [project("p1", "ED25002 - Titanic")]

        result = matcher.match_projects(deals, projects)

        assert len(result.matches) == 1
        assert result.matches[0].deal.id == "d1"
        assert [d.id for d in result.unmatched_deals] == ["d2"]

    def test_first_available_candidate_wins(self, matcher):
        """Test that the first unconsumed project wins even if a later one has a closer value."""
        deals = [deal("d1", "ED25002 - Titanic", value=2000.0)]
        projects = [
            project("p1", "ED25002 - Titanic", value=100.0),
            project("p2", "ED25002 - Titanic", value=2000.0),
        ]

        result = matcher.match_projects(deals, projects)

        assert result.matches[0].project.id == "p1"
        assert result.matches[0].value_match is False
        assert [p.id for p in result.unmatched_projects] == ["p2"]

    def test_second_deal_takes_next_candidate(self, matcher):
        """Test that consumed projects are passed over."""
        deals = [deal("d1", "ED25002 - Titanic"), deal("d2", "ED25002 - Titanic")]
        projects = [project("p1", "ED25002 - Titanic"), project("p2", "ED25002 - Titanic")]

        result = matcher.match_projects(deals, projects)

        assert [(m.deal.id, m.project.id) for m in result.matches] == [("d1", "p1"), ("d2", "p2")]

    def test_empty_keys_are_skipped(self, matcher):
        """Test that records without a usable name are reported as skipped, not unmatched."""
        result = matcher.match_projects([deal("d1", "")], [project("p1", "")])

        assert result.matches == []
        assert [d.id for d in result.skipped_deals] == ["d1"]
        assert [p.id for p in result.skipped_projects] == ["p1"]
        assert result.unmatched_deals == []
        assert result.unmatched_projects == []

    def test_equal_records_are_tracked_separately(self, matcher):
        """Test that identical records on one side are not conflated."""
        twin = deal("d1", "ED25002 - Titanic")
        result = matcher.match_projects([twin, deal("d1", "ED25002 - Titanic")], [project("p1", "ED25002 - Titanic")])

        assert len(result.matches) == 1
        assert len(result.unmatched_deals) == 1

    @pytest.mark.parametrize("v1,v2,expected", [
        (0, 0, 0.0),
        (100, 100, 0.0),
        (100, 110, pytest.approx(9.5238, rel=1e-3)),
        (100, -100, 100.0),
    ])
    def test_calculate_difference_percentage(self, v1, v2, expected):
        """Test the percentage formula relative to the average."""
        assert ProjectMatcher.calculate_difference_percentage(v1, v2) == expected

    def test_check_value_match(self, matcher):
        """Test tolerance boundaries."""
        assert matcher.check_value_match(0, 0) is True
        assert matcher.check_value_match(1000, 1040) is True
        assert matcher.check_value_match(1000, 1100) is False

    def test_negative_tolerance_rejected(self):
        """Test that a negative tolerance is refused."""
        with pytest.raises(ValueError):
            ProjectMatcher(value_tolerance_percentage=-1)

    def test_from_config(self):
        """Test that value settings are taken from the fix configuration."""
        config = FixOrchestrationConfig(value_tolerance_percentage=12.5, enable_value_comparison=False)
        metrics = Mock()

        matcher = ProjectMatcher.from_config(config, metrics=metrics)

        assert matcher.value_tolerance_percentage == 12.5
        assert matcher.enable_value_comparison is False
        assert matcher.metrics is metrics

    def test_compare_values_reports_discrepancies(self, matcher):
        """Test that only out-of-tolerance pairs are reported."""
        result = matcher.match_projects(
            [deal("d1", "ED25002 - Titanic", 1000), deal("d2", "ED25003 - Voyager", 1000)],
            [project("p1", "ED25002 - Titanic", 1500), project("p2", "ED25003 - Voyager", 1010)]
        )

        discrepancies = matcher.compare_values(result.matches)

        assert len(discrepancies) == 1
        assert discrepancies[0].project_key == "ed25002-titanic"
        assert discrepancies[0].difference == 500

    def test_compare_values_disabled(self):
        """Test that value comparison can be switched off."""
        matcher = ProjectMatcher(enable_value_comparison=False)
        result = matcher.match_projects([deal("d1", "A1 - X", 1)], [project("p1", "A1 - X", 100)])

        assert matcher.compare_values(result.matches) == []

    def test_summary_all_synchronized(self, matcher):
        """Test the recommendation when everything lines up."""
        deals = [deal("d1", "ED25002 - Titanic")]
        projects = [project("p1", "ED25002 - Titanic")]
        result = matcher.match_projects(deals, projects)

        summary = matcher.generate_summary(deals, projects, result, [])

        assert summary.matched_count == 1
        assert summary.recommendations == ["All projects are synchronized"]

    def test_summary_no_matches(self, matcher):
        """Test naming-convention advice when nothing matches."""
        deals = [deal("d1", "ED25002 - Titanic")]
        projects = [project("p1", "ED99999 - Other")]
        result = matcher.match_projects(deals, projects)

        summary = matcher.generate_summary(deals, projects, result, [])

        assert "1 won deals need to be created as projects in Xero" in summary.recommendations
        assert any("naming conventions" in r for r in summary.recommendations)
        assert summary.unmatched_deals[0]["normalized_key"] == "ed25002-titanic"

    def test_reconcile_records_metrics(self):
        """Test the raw-payload pipeline and metrics hook."""
        metrics = Mock()
        matcher = ProjectMatcher(metrics=metrics)

        summary = matcher.reconcile(
            [{"id": 1, "title": "ED25002 - Titanic", "value": 1000}],
            [{"projectId": "x1", "name": "ED25002 - Titanic", "totalAmount": {"value": 1000}}],
            tenant="acme"
        )

        assert summary.matched_count == 1
        metrics.record_reconciliation_run.assert_called_once_with("acme", summary)
        assert summary.to_dict()["matches"][0]["match_key"] == "ed25002-titanic"


class TestNormalizer:
    """Test suite for payload normalization."""

    def test_normalize_deal_v2_name(self):
        """Test that the v2 ``name`` field is used as the title."""
        record = normalize_deal({"id": 7, "name": "ED25002 - Titanic", "value": "1200.5"})

        assert record.id == "7"
        assert record.name == "ED25002 - Titanic"
        assert record.value == 1200.5
        assert record.currency == "USD"
        assert record.source == "pipedrive"

    def test_normalize_deal_invalid_value(self):
        """Test that unparseable values become zero."""
        assert normalize_deal({"id": 1, "title": "X", "value": "n/a"}).value == 0.0

    def test_normalize_project_total_amount(self):
        """Test that totalAmount takes precedence."""
        record = normalize_project({
            "projectId": "p1",
            "name": "Titanic",
            "totalAmount": {"value": 500, "currency": "GBP"},
            "totalTaskAmount": {"value": 1},
        })

        assert record.value == 500.0
        assert record.currency == "GBP"
        assert record.source == "xero"

    def test_normalize_project_falls_back_to_task_and_expense(self):
        """Test the task + expense fallback."""
        record = normalize_project({
            "projectId": "p1",
            "name": "Titanic",
            "totalTaskAmount": {"value": 300},
            "totalExpenseAmount": {"value": 200},
        })

        assert record.value == 500.0

    @pytest.mark.parametrize("field", ["totalAmount", "totalTaskAmount"])
    def test_normalize_project_scalar_amounts(self, field):
        """Test that bare numbers in amount fields are ignored rather than crashing."""
        record = normalize_project({
            "projectId": "p1",
            "name": "ED25002 - Titanic",
            field: 100,
            "currencyCode": "EUR",
        })

        assert record.value == 0.0
        assert record.currency == "EUR"

    def test_reconcile_with_scalar_total_amount(self):
        """Test that a scalar totalAmount still reconciles to a match."""
        summary = ProjectMatcher().reconcile(
            [{"id": 1, "title": "ED25002 - Titanic", "value": 100}],
            [{"projectId": "p1", "name": "ED25002 - Titanic", "totalAmount": 100}],
        )

        assert summary.matched_count == 1

    def test_entries_without_id_are_dropped(self):
        """Test that payloads lacking identifiers are ignored."""
        assert len(normalize_deals([{"title": "x"}, {"id": 1, "title": "y"}])) == 1
        assert len(normalize_projects([{"name": "x"}, {"projectId": "p", "name": "y"}])) == 1
