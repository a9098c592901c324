"""Data-quality analysis producing the executive summary.

Freshness classifies each fact by the age of its own date (the period it
describes) or, when it has none, the time it was scraped:

    fresh     <= 30 days
    current   <= 180 days
    stale     <= 1095 days
    outdated  older

In the summary, current and stale both count as ``staleRecords``.

Completeness is the average share of expected fields a fact has populated.
"""

import re
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from loguru import logger

from civic_pipeline.data_management.schemas.citation_schema import utc_now
from civic_pipeline.data_management.schemas.report_schema import (
    ExecutiveSummary,
    QualityMetrics,
    WardSummary,
)

FRESH_DAYS = 30
CURRENT_DAYS = 180
STALE_DAYS = 1095

EXPECTED_DATA_TYPES = ("budget", "spending", "performance")
COMPLETENESS_FIELDS = ("title", "department", "fact_date", "source_url", "citation_metadata")
UNKNOWN_WARDS = {"", "unknown", "n/a"}

_FISCAL_YEAR = re.compile(r"\b((?:19|20)\d{2})\s?[/-]\s?\d{2,4}\b")
_YEAR = re.compile(r"\b((?:19|20)\d{2})\b")
_DMY = re.compile(r"\b(\d{1,2})/(\d{1,2})/((?:19|20)\d{2})\b")


class Freshness(str, Enum):
    FRESH = "fresh"
    CURRENT = "current"
    STALE = "stale"
    OUTDATED = "outdated"


def parse_fact_date(value: Any) -> Optional[datetime]:
    """
    Best-effort parse of the date a fact refers to.

    Accepts ISO dates and timestamps, dd/mm/yyyy, UK fiscal years
    ("2024/25" starts 1 April 2024) and bare years (1 January).
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if not value:
        return None

    text = str(value).strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    except ValueError:
        pass

    dmy = _DMY.search(text)
    if dmy:
        day, month, year = (int(g) for g in dmy.groups())
        try:
            return datetime(year, month, day, tzinfo=timezone.utc)
        except ValueError:
            return None

    fiscal = _FISCAL_YEAR.search(text)
    if fiscal:
        return datetime(int(fiscal.group(1)), 4, 1, tzinfo=timezone.utc)

    year = _YEAR.search(text)
    if year:
        return datetime(int(year.group(1)), 1, 1, tzinfo=timezone.utc)
    return None


def classify_freshness(reference: Optional[datetime], now: datetime) -> Freshness:
    """Freshness bucket for a fact dated ``reference``; undated facts are outdated."""
    if reference is None:
        return Freshness.OUTDATED

    age = now - reference
    if age <= timedelta(days=FRESH_DAYS):
        return Freshness.FRESH
    if age <= timedelta(days=CURRENT_DAYS):
        return Freshness.CURRENT
    if age <= timedelta(days=STALE_DAYS):
        return Freshness.STALE
    return Freshness.OUTDATED


def _fact_reference_date(fact: dict[str, Any]) -> Optional[datetime]:
    return parse_fact_date(fact.get("fact_date")) or parse_fact_date(fact.get("scraped_at"))


def _completeness(fact: dict[str, Any]) -> float:
    populated = sum(1 for name in COMPLETENESS_FIELDS if fact.get(name))
    if fact.get("amount") is not None or fact.get("value") is not None:
        populated += 1
    return populated / (len(COMPLETENESS_FIELDS) + 1)


class QualityAnalyzer:
    """
    Builds the executive summary from stored facts and the citation report.

    Usage:
        analyzer = QualityAnalyzer()
        summary = analyzer.build_summary(facts, citation_report)
    """

    def __init__(self, fresh_target: float = 50.0, completeness_target: float = 0.7):
        self.fresh_target = fresh_target
        self.completeness_target = completeness_target
        self.logger = logger.bind(component="QualityAnalyzer")

    def build_summary(
        self,
        facts: list[dict[str, Any]],
        citation_report: Optional[dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> ExecutiveSummary:
        """
        Compute quality metrics for ``facts``.

        Args:
            facts: Active fact records
            citation_report: Output of CitationService.generate_citation_report
            now: Reference time for freshness (defaults to the current time)

        Returns:
            ExecutiveSummary ready to be rendered
        """
        now = now or utc_now()
        citation_report = citation_report or {}

        buckets = {bucket: 0 for bucket in Freshness}
        wards: set[str] = set()
        fresh_wards: set[str] = set()
        data_types: set[str] = set()

        for fact in facts:
            bucket = classify_freshness(_fact_reference_date(fact), now)
            buckets[bucket] += 1
            data_types.add(fact.get("data_type") or "")

            ward = (fact.get("ward") or "").strip()
            if ward.lower() not in UNKNOWN_WARDS:
                wards.add(ward)
                if bucket is Freshness.FRESH:
                    fresh_wards.add(ward)

        total = len(facts)
        completeness = sum(_completeness(f) for f in facts) / total if total else 0.0

        metrics = QualityMetrics(
            completeness_score=round(completeness, 4),
            fresh_records=buckets[Freshness.FRESH],
            stale_records=buckets[Freshness.CURRENT] + buckets[Freshness.STALE],
            outdated_records=buckets[Freshness.OUTDATED],
            total_records=total,
            critical_gaps=self._critical_gaps(total, data_types, citation_report),
            recommendations=self._recommendations(total, completeness, buckets, citation_report),
        )

        self.logger.info(
            "Quality summary built",
            total_records=total,
            completeness=metrics.completeness_score,
            fresh_percentage=round(metrics.fresh_percentage, 1),
        )

        return ExecutiveSummary(
            generated_at=now,
            quality_metrics=metrics,
            ward_summary=WardSummary(total_wards=len(wards), wards_with_data=len(fresh_wards)),
        )

    def _critical_gaps(
        self,
        total: int,
        data_types: set[str],
        citation_report: dict[str, Any],
    ) -> list[str]:
        if total == 0:
            return ["No data has been collected"]

        gaps = [
            f"No {data_type} data collected"
            for data_type in EXPECTED_DATA_TYPES
            if data_type not in data_types
        ]

        uncited = citation_report.get("total_records", total) - citation_report.get("with_citations", total)
        if uncited > 0:
            gaps.append(f"{uncited} records have no citation")

        broken = citation_report.get("broken_sources", 0)
        if broken:
            gaps.append(f"{broken} records cite unreachable sources")
        return gaps

    def _recommendations(
        self,
        total: int,
        completeness: float,
        buckets: dict[Freshness, int],
        citation_report: dict[str, Any],
    ) -> list[str]:
        if total == 0:
            return ["Run a full crawl to collect initial data"]

        recommendations = []
        if completeness < self.completeness_target:
            recommendations.append(
                f"Improve field coverage: records are {completeness * 100:.0f}% complete"
            )

        outdated_share = buckets[Freshness.OUTDATED] / total * 100
        if outdated_share > 20:
            recommendations.append(
                f"Refresh outdated records ({outdated_share:.0f}% older than {STALE_DAYS} days)"
            )

        if citation_report.get("broken_sources"):
            recommendations.append("Review broken citations and update source links")

        if citation_report.get("with_citations", total) < citation_report.get("total_records", total):
            recommendations.append("Backfill missing citations")
        return recommendations
