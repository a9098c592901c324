"""Sifters turn raw page content into structured facts.

- QuantityExtractor: money amounts, percentages and counts in free text
- FinancialClassifier: budget/spending tables, chart data and KPI widgets
- WardDetector: ward names in page text and ward columns
"""

from civic_pipeline.sifters.financial_classifier import (
    ClassificationResult,
    FinancialClassifier,
)
from civic_pipeline.sifters.quantity_extractor import (
    DEFAULT_PATTERNS,
    QuantityExtractor,
    QuantityPattern,
    extract_quantities,
    parse_amount,
)
from civic_pipeline.sifters.ward_detector import WardDetector, WardMention

__all__ = [
    "ClassificationResult",
    "FinancialClassifier",
    "DEFAULT_PATTERNS",
    "QuantityExtractor",
    "QuantityPattern",
    "extract_quantities",
    "parse_amount",
    "WardDetector",
    "WardMention",
]
