"""Tests for QualityAnalyzer and its freshness helpers."""

from datetime import datetime, timedelta, timezone

import pytest

from civic_pipeline.pipelines.quality_analyzer import (
    Freshness,
    QualityAnalyzer,
    classify_freshness,
    parse_fact_date,
)

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)
CITED = {"source_url": "https://www.example-council.gov.uk/finance"}


def fact(data_type, department=None, fact_date=None, **extra):
    record = {
        "fact_id": f"{data_type}-{department}-{fact_date}",
        "data_type": data_type,
        "title": f"{data_type} item",
        "department": department,
        "fact_date": fact_date,
        "amount": 100.0,
        "source_url": CITED["source_url"],
        "citation_metadata": CITED,
        "scraped_at": "2024-05-30T10:00:00+00:00",
    }
    record.update(extra)
    return record


class TestParseFactDate:
    """Tests for date parsing."""

    @pytest.mark.parametrize("value,expected", [
        ("2024-05-20", datetime(2024, 5, 20, tzinfo=timezone.utc)),
        ("2024-05-20T08:30:00Z", datetime(2024, 5, 20, 8, 30, tzinfo=timezone.utc)),
        ("15/03/2024", datetime(2024, 3, 15, tzinfo=timezone.utc)),
        ("2024/25", datetime(2024, 4, 1, tzinfo=timezone.utc)),
        ("Budget 2023-24", datetime(2023, 4, 1, tzinfo=timezone.utc)),
        ("FY 2022", datetime(2022, 1, 1, tzinfo=timezone.utc)),
    ])
    def test_formats(self, value, expected):
        assert parse_fact_date(value) == expected

    @pytest.mark.parametrize("value", [None, "", "n/a", "next year"])
    def test_unparseable(self, value):
        assert parse_fact_date(value) is None

    def test_naive_datetime_gets_utc(self):
        assert parse_fact_date(datetime(2024, 1, 1)).tzinfo == timezone.utc


class TestClassifyFreshness:
    """Tests for freshness buckets."""

    @pytest.mark.parametrize("age_days,expected", [
        (0, Freshness.FRESH),
        (30, Freshness.FRESH),
        (31, Freshness.CURRENT),
        (180, Freshness.CURRENT),
        (181, Freshness.STALE),
        (1095, Freshness.STALE),
        (1096, Freshness.OUTDATED),
    ])
    def test_boundaries(self, age_days, expected):
        assert classify_freshness(NOW - timedelta(days=age_days), NOW) == expected

    def test_undated_is_outdated(self):
        assert classify_freshness(None, NOW) == Freshness.OUTDATED


class TestBuildSummary:
    """Tests for the executive summary."""

    def test_freshness_and_wards(self):
        facts = [
            fact("spending", "Highways", "2024-05-20", ward="Riverside"),
            fact("budget", "Libraries", "2024/25", ward="Hillside"),
            fact("performance", "Housing", "2020", ward="Hillside"),
            fact("statistic", ward="Castle"),
            fact("spending", "Waste", "2024-05-21"),
        ]

        summary = QualityAnalyzer().build_summary(facts, now=NOW)
        metrics = summary.quality_metrics

        assert metrics.total_records == 5
        assert metrics.fresh_records == 3
        assert metrics.stale_records == 1
        assert metrics.outdated_records == 1
        assert metrics.fresh_percentage == 60.0
        assert metrics.critical_gaps == []
        assert summary.ward_summary.total_wards == 3
        assert summary.ward_summary.wards_with_data == 2
        assert summary.generated_at == NOW

    def test_complete_fact_scores_one(self):
        summary = QualityAnalyzer().build_summary([fact("spending", "Highways", "2024-05-20")], now=NOW)

        assert summary.quality_metrics.completeness_score == 1.0

    def test_departments_are_not_wards(self):
        facts = [
            fact("spending", "Highways", "2024-05-20"),
            fact("spending", "Parks", "2024-05-20", ward=" Unknown "),
        ]

        summary = QualityAnalyzer().build_summary(facts, now=NOW)

        assert summary.ward_summary.total_wards == 0

    def test_empty_store(self):
        summary = QualityAnalyzer().build_summary([], now=NOW)
        metrics = summary.quality_metrics

        assert metrics.total_records == 0
        assert metrics.completeness_score == 0.0
        assert metrics.critical_gaps == ["No data has been collected"]
        assert metrics.recommendations == ["Run a full crawl to collect initial data"]

    def test_gaps_and_recommendations_from_citation_report(self):
        facts = [fact("spending", "Highways", "2024-05-20"), fact("spending", "Waste", "2024-05-21")]
        citation_report = {"total_records": 4, "with_citations": 2, "broken_sources": 1}

        metrics = QualityAnalyzer().build_summary(facts, citation_report, now=NOW).quality_metrics

        assert metrics.critical_gaps == [
            "No budget data collected",
            "No performance data collected",
            "2 records have no citation",
            "1 records cite unreachable sources",
        ]
        assert "Review broken citations and update source links" in metrics.recommendations
        assert "Backfill missing citations" in metrics.recommendations

    def test_low_completeness_and_outdated_recommendations(self):
        facts = [
            {"fact_id": "a", "data_type": "spending", "fact_date": "2015"},
            {"fact_id": "b", "data_type": "budget", "fact_date": "2016"},
        ]

        recommendations = QualityAnalyzer().build_summary(facts, now=NOW).quality_metrics.recommendations

        assert recommendations[0].startswith("Improve field coverage")
        assert recommendations[1] == "Refresh outdated records (100% older than 1095 days)"
