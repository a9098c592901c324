"""Citation and provenance schemas.

Every persisted fact carries a citation: where it was read (``source_url``),
the document it came from when the page linked to a file (``file_url``), and
the page that linked to that file (``parent_page_url``). Verification results
are attached per URL so that many facts citing one page share a single check.

Confidence is stored as a three-level label but compared numerically; the
two helpers at the bottom of this module convert between the two forms.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class ConfidenceLevel(str, Enum):
    """Three-level confidence label shared by facts and citations."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CitationType(str, Enum):
    """What kind of council page or document a citation points at.

    Inferred from URL path keywords by deep-link analysis.
    """

    PAGE = "page"
    PLANNING = "planning"
    MEETING = "meeting"
    SPENDING = "spending"
    BUDGET = "budget"
    DOCUMENT = "document"


class SourceVerification(BaseModel):
    """Outcome of the last reachability check of a source URL.

    Attributes:
        accessible: True when the server answered with a 2xx status.
        status: HTTP status code, 0 when no response was received.
        last_checked: When the check ran (UTC).
        redirect_url: Final URL when the request was redirected.
        error: Transport error message when no response was received.
    """

    accessible: bool = False
    status: int = Field(0, ge=0)
    last_checked: Optional[datetime] = None
    redirect_url: Optional[str] = None
    error: Optional[str] = None

    @field_validator("last_checked")
    @classmethod
    def last_checked_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)


class CitationMetadata(BaseModel):
    """Citation attached to a fact.

    ``source_url`` is the only hard requirement. When ``file_url`` is set the
    ``parent_page_url`` should be set too; this is best effort and never a
    validation failure.

    Attributes:
        source_url: Page the fact was extracted from.
        file_url: Direct link to a PDF/CSV/spreadsheet, if any.
        parent_page_url: Page that linked to ``file_url``.
        title: Human-readable source title.
        confidence: Confidence label for the citation.
        type: Citation category; inferred from the URL when not given.
        file_type: File extension of ``file_url``.
        date_added: When the citation was first recorded.
        extraction_method: How the fact was obtained (table, chart, kpi, text).
        page_reference: Page or section reference inside a document.
        verification: Last verification of the effective URL.
        metadata: Free-form additional fields.
    """

    source_url: str = Field(..., description="Page the fact was extracted from")
    file_url: Optional[str] = None
    parent_page_url: Optional[str] = None
    title: Optional[str] = None
    confidence: ConfidenceLevel = ConfidenceLevel.MEDIUM
    type: Optional[CitationType] = None
    file_type: Optional[str] = None
    date_added: Optional[datetime] = None
    extraction_method: Optional[str] = None
    page_reference: Optional[str] = None
    verification: Optional[SourceVerification] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("source_url")
    @classmethod
    def source_url_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("source_url must not be blank")
        return value

    @property
    def effective_url(self) -> str:
        """URL whose verification applies to this citation."""
        return self.file_url or self.source_url

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "source_url": "https://www.example-council.gov.uk/council-budgets",
                    "file_url": "https://www.example-council.gov.uk/files/budget-2024.pdf",
                    "parent_page_url": "https://www.example-council.gov.uk/council-budgets",
                    "confidence": "high",
                    "type": "budget",
                    "file_type": "pdf",
                }
            ]
        }
    }


class MultipleSources(BaseModel):
    """Several citations backing the same fact.

    Attributes:
        sources: All citations, primary first.
        primary_source: The citation used for display.
        overall_confidence: Aggregate confidence across sources.
        last_verified: Most recent verification of any source.
        cross_referenced: More than one independent source agrees.
        conflicting_info: Sources disagree on the value.
        verification_notes: Free-text notes from review.
    """

    sources: list[CitationMetadata] = Field(default_factory=list)
    primary_source: CitationMetadata
    overall_confidence: ConfidenceLevel = ConfidenceLevel.MEDIUM
    last_verified: Optional[datetime] = None
    cross_referenced: bool = False
    conflicting_info: bool = False
    verification_notes: Optional[str] = None

    @field_validator("last_verified")
    @classmethod
    def last_verified_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)


class DeepLinkInfo(BaseModel):
    """Classification of a URL derived purely from its text."""

    is_direct_file: bool
    file_type: Optional[str] = None
    is_government_domain: bool
    domain: str
    suggested_type: CitationType


class CitationMarkup(BaseModel):
    """Everything a renderer needs to display a citation link."""

    primary_link: str
    secondary_link: Optional[str] = None
    display_text: str
    confidence: ConfidenceLevel
    type: CitationType
    file_type: Optional[str] = None
    domain: str = ""
    is_direct_file: bool = False
    is_government_domain: bool = False
    date_added: Optional[datetime] = None
    accessible: Optional[bool] = None
    last_checked: Optional[datetime] = None


def get_confidence_score(level: ConfidenceLevel | str) -> float:
    """Map a confidence label to its numeric score.

    high -> 0.9, medium -> 0.7, low -> 0.4.
    """
    level = ConfidenceLevel(level)
    if level is ConfidenceLevel.HIGH:
        return 0.9
    if level is ConfidenceLevel.MEDIUM:
        return 0.7
    return 0.4


def score_to_confidence(score: Optional[float]) -> ConfidenceLevel:
    """Map a numeric score back to a label.

    ``>= 0.8`` is high, ``>= 0.6`` medium, anything else low. A missing
    score is treated as medium.
    """
    if score is None:
        return ConfidenceLevel.MEDIUM
    if score >= 0.8:
        return ConfidenceLevel.HIGH
    if score >= 0.6:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def utc_now() -> datetime:
    """Timezone-aware current time used for all persisted timestamps."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive timestamps as UTC so they compare with aware ones."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
