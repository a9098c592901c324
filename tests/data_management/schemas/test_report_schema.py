"""Tests for the executive summary contract."""

import json

import pytest

from civic_pipeline.data_management.schemas.report_schema import (
    ExecutiveSummary,
    QualityMetrics,
    ReportContractError,
    parse_executive_summary,
)


def summary_payload(**quality):
    metrics = {
        "completenessScore": 0.8,
        "freshRecords": 30,
        "staleRecords": 50,
        "outdatedRecords": 20,
        "totalRecords": 100,
        "criticalGaps": ["No spending data collected"],
        "recommendations": ["Backfill missing citations"],
    }
    metrics.update(quality)
    return {
        "schemaVersion": "1.0",
        "generatedAt": "2024-05-01T12:00:00Z",
        "qualityMetrics": metrics,
        "wardSummary": {"totalWards": 21, "wardsWithData": 18},
    }


class TestParseExecutiveSummary:
    """Tests for parsing and validation."""

    def test_parse_json_text(self):
        summary = parse_executive_summary(json.dumps(summary_payload()))

        assert summary.quality_metrics.completeness_score == 0.8
        assert summary.quality_metrics.fresh_percentage == 30.0
        assert summary.ward_summary.total_wards == 21

    def test_missing_version_treated_as_current(self):
        payload = summary_payload()
        del payload["schemaVersion"]

        assert parse_executive_summary(payload).schema_version == "1.0"

    def test_minor_version_accepted(self):
        payload = summary_payload()
        payload["schemaVersion"] = "1.3"

        assert parse_executive_summary(payload).schema_version == "1.3"

    def test_major_version_rejected(self):
        payload = summary_payload()
        payload["schemaVersion"] = "2.0"

        with pytest.raises(ReportContractError, match="version"):
            parse_executive_summary(payload)

    @pytest.mark.parametrize("payload", ["{not json", "[1, 2]", b"null"])
    def test_not_an_object(self, payload):
        with pytest.raises(ReportContractError):
            parse_executive_summary(payload)

    def test_missing_quality_metrics(self):
        payload = summary_payload()
        del payload["qualityMetrics"]

        with pytest.raises(ReportContractError):
            parse_executive_summary(payload)

    def test_buckets_exceeding_total_rejected(self):
        with pytest.raises(ReportContractError):
            parse_executive_summary(summary_payload(freshRecords=90))

    def test_completeness_out_of_range_rejected(self):
        with pytest.raises(ReportContractError):
            parse_executive_summary(summary_payload(completenessScore=80))


class TestExecutiveSummary:
    """Tests for serialization."""

    def test_json_dict_uses_camel_case(self):
        summary = ExecutiveSummary(quality_metrics=QualityMetrics(completeness_score=0.5))
        data = summary.to_json_dict()

        assert data["schemaVersion"] == "1.0"
        assert data["qualityMetrics"]["completenessScore"] == 0.5
        assert "wardSummary" in data

    def test_written_summary_parses_back(self):
        summary = parse_executive_summary(summary_payload())

        assert parse_executive_summary(summary.to_json_dict()) == summary

    def test_fresh_percentage_empty(self):
        assert QualityMetrics(completeness_score=0).fresh_percentage == 0.0
