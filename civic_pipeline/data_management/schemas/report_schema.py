"""Executive summary contract between the report renderer and the orchestrator.

The renderer writes ``executive-summary.json``; the orchestrator reads it back
to compute run metrics and to decide whether data is fresh enough. The JSON
keys are camelCase because the file is also consumed by the web front end.

``parse_executive_summary`` is the only way the orchestrator reads the file.
It rejects payloads whose shape drifted or whose major schema version differs,
raising ReportContractError instead of letting metrics silently become zero.
"""

import json
from datetime import datetime
from typing import Any, Union

from pydantic import BaseModel, Field, ValidationError, model_validator

from civic_pipeline.data_management.schemas.citation_schema import utc_now

# Schema version - bump the major part on breaking changes
SUMMARY_SCHEMA_VERSION = "1.0"


class ReportContractError(ValueError):
    """The executive summary does not match the expected schema."""


class QualityMetrics(BaseModel):
    """Data-quality section of the executive summary.

    Attributes:
        completeness_score: Share of expected fields populated (0.0-1.0).
        fresh_records: Records dated within the fresh window.
        stale_records: Records past the fresh window but not outdated.
        outdated_records: Records older than the stale window.
        total_records: All records considered.
        critical_gaps: Missing data areas that need attention.
        recommendations: Suggested follow-up actions.
    """

    completeness_score: float = Field(..., ge=0.0, le=1.0, alias="completenessScore")
    fresh_records: int = Field(0, ge=0, alias="freshRecords")
    stale_records: int = Field(0, ge=0, alias="staleRecords")
    outdated_records: int = Field(0, ge=0, alias="outdatedRecords")
    total_records: int = Field(0, ge=0, alias="totalRecords")
    critical_gaps: list[str] = Field(default_factory=list, alias="criticalGaps")
    recommendations: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def check_record_counts(self) -> "QualityMetrics":
        bucketed = self.fresh_records + self.stale_records + self.outdated_records
        if bucketed > self.total_records:
            raise ValueError(
                f"freshness buckets ({bucketed}) exceed totalRecords ({self.total_records})"
            )
        return self

    @property
    def fresh_percentage(self) -> float:
        """Fresh records as a percentage of all records; 0 when empty."""
        if self.total_records == 0:
            return 0.0
        return self.fresh_records / self.total_records * 100


class WardSummary(BaseModel):
    total_wards: int = Field(0, ge=0, alias="totalWards")
    wards_with_data: int = Field(0, ge=0, alias="wardsWithData")

    model_config = {"populate_by_name": True}


class ExecutiveSummary(BaseModel):
    """Machine-readable summary produced by every report phase."""

    schema_version: str = Field(SUMMARY_SCHEMA_VERSION, alias="schemaVersion")
    generated_at: datetime = Field(default_factory=utc_now, alias="generatedAt")
    quality_metrics: QualityMetrics = Field(..., alias="qualityMetrics")
    ward_summary: WardSummary = Field(default_factory=WardSummary, alias="wardSummary")

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "examples": [
                {
                    "schemaVersion": "1.0",
                    "generatedAt": "2024-05-01T12:00:00Z",
                    "qualityMetrics": {
                        "completenessScore": 0.82,
                        "freshRecords": 120,
                        "staleRecords": 60,
                        "outdatedRecords": 20,
                        "totalRecords": 200,
                        "criticalGaps": ["No spending data for Highways"],
                        "recommendations": ["Collect 2024 ward budgets"],
                    },
                    "wardSummary": {"totalWards": 21, "wardsWithData": 18},
                }
            ]
        },
    }

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with camelCase keys, as written to disk."""
        return self.model_dump(mode="json", by_alias=True)


def _major(version: str) -> str:
    return version.split(".", 1)[0].strip()


def parse_executive_summary(payload: Union[str, bytes, dict[str, Any]]) -> ExecutiveSummary:
    """Parse and validate an executive summary.

    Args:
        payload: Raw JSON text or an already-decoded mapping.

    Returns:
        The validated ExecutiveSummary.

    Raises:
        ReportContractError: Not JSON, wrong shape, or incompatible version.
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ReportContractError(f"executive summary is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise ReportContractError(
            f"executive summary must be a JSON object, got {type(payload).__name__}"
        )

    version = str(payload.get("schemaVersion", SUMMARY_SCHEMA_VERSION))
    if _major(version) != _major(SUMMARY_SCHEMA_VERSION):
        raise ReportContractError(
            f"unsupported executive summary version {version} "
            f"(expected {SUMMARY_SCHEMA_VERSION})"
        )

    try:
        return ExecutiveSummary.model_validate(payload)
    except ValidationError as e:
        raise ReportContractError(f"executive summary shape mismatch: {e}") from e
