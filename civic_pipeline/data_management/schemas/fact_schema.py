"""Fact schemas: raw quantities and classified council records.

ExtractedFact is what the quantity extractor yields for every money amount,
percentage or count it recognises in free text. The classifier turns tables,
chart scripts and KPI widgets into the richer record types below
(BudgetItem, SpendingRecord, PerformanceMetric, StatisticalData).

All models are frozen: a fact never changes after extraction. Citation
enrichment happens on the persisted record, not on these objects.
"""

import hashlib
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Optional

from pydantic import BaseModel, Field

from civic_pipeline.data_management.schemas.citation_schema import (
    ConfidenceLevel,
    utc_now,
)


class FactKind(str, Enum):
    """Family of quantity recognised in free text."""

    FINANCIAL = "financial"
    PERCENTAGE = "percentage"
    COUNT = "count"


class ExtractedFact(BaseModel):
    """A single quantity found in text.

    Attributes:
        kind: financial, percentage or count.
        value: Unit-normalized value (multipliers such as "million" applied).
        unit: GBP, USD, % or the counted noun (residents, days, ...).
        context: Text window around the match.
        confidence: How reliable the pattern that produced this fact is.
        offset: Start index of the match in the source text.
        matched_text: The exact matched span.
    """

    kind: FactKind
    value: float
    unit: str
    context: str = ""
    confidence: ConfidenceLevel = ConfidenceLevel.MEDIUM
    offset: int = Field(0, ge=0)
    matched_text: str = ""

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "kind": "financial",
                    "value": 2500000.0,
                    "unit": "GBP",
                    "context": "The council approved £2.5 million for road repairs",
                    "confidence": "high",
                    "offset": 21,
                    "matched_text": "£2.5 million",
                }
            ]
        },
    }


class ClassifiedRecord(BaseModel):
    """Common fields of every classified record.

    Subclasses set ``data_type`` and implement ``record_fields`` which maps
    the record onto the columns of the fact store.
    ``ward`` is the geographic unit the record describes, when known.
    """

    data_type: ClassVar[str] = "statistic"

    source_url: str
    confidence: float = Field(0.8, ge=0.0, le=1.0)
    ward: Optional[str] = None
    extracted_at: datetime = Field(default_factory=utc_now)

    model_config = {"frozen": True}

    def record_fields(self) -> dict[str, Any]:
        raise NotImplementedError

    @property
    def content_hash(self) -> str:
        """SHA256 over the identifying fields, stable across re-extraction."""
        fields = self.record_fields()
        key = "|".join(
            str(fields.get(name) or "")
            for name in ("title", "description", "department", "amount", "value", "unit", "fact_date")
        )
        raw = f"{self.data_type}|{self.source_url}|{key}"
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class BudgetItem(ClassifiedRecord):
    """A budget allocation row."""

    data_type: ClassVar[str] = "budget"

    department: str = "Unknown"
    category: str = "General"
    description: str = ""
    amount: float = Field(..., gt=0)
    currency: str = "GBP"
    year: Optional[str] = None

    def record_fields(self) -> dict[str, Any]:
        return {
            "title": self.description or self.category,
            "description": self.description,
            "department": self.department,
            "amount": self.amount,
            "value": None,
            "unit": self.currency,
            "fact_date": self.year,
            "ward": self.ward,
            "category": self.category,
        }


class SpendingRecord(ClassifiedRecord):
    """A spending transaction row."""

    data_type: ClassVar[str] = "spending"

    department: str = "Unknown"
    description: str = ""
    supplier: Optional[str] = None
    amount: float = Field(..., gt=0)
    currency: str = "GBP"
    category: Optional[str] = None
    transaction_date: Optional[str] = None

    def record_fields(self) -> dict[str, Any]:
        return {
            "title": self.description or (self.supplier or "Spending"),
            "description": self.description,
            "department": self.department,
            "amount": self.amount,
            "value": None,
            "unit": self.currency,
            "fact_date": self.transaction_date,
            "ward": self.ward,
            "category": self.category,
            "supplier": self.supplier,
        }


class PerformanceMetric(ClassifiedRecord):
    """A KPI or dashboard figure."""

    data_type: ClassVar[str] = "performance"

    service: str = "General"
    metric: str
    value: float
    unit: Optional[str] = None
    period: Optional[str] = None

    def record_fields(self) -> dict[str, Any]:
        return {
            "title": self.metric,
            "description": self.metric,
            "department": self.service,
            "amount": None,
            "value": self.value,
            "unit": self.unit,
            "fact_date": self.period,
            "ward": self.ward,
        }


class StatisticalData(ClassifiedRecord):
    """A data point from a chart or a free-standing statistic."""

    data_type: ClassVar[str] = "statistic"

    category: str = "General"
    metric: str
    value: float
    unit: Optional[str] = None
    period: Optional[str] = None

    def record_fields(self) -> dict[str, Any]:
        return {
            "title": self.metric,
            "description": f"{self.category}: {self.metric}",
            "department": None,
            "amount": None,
            "value": self.value,
            "unit": self.unit,
            "fact_date": self.period,
            "ward": self.ward,
            "category": self.category,
        }
