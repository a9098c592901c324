"""Citation and provenance: storing, verifying and auditing fact sources."""

from civic_pipeline.provenance.citation_service import (
    CitationService,
    CitationValidationError,
    FactNotFoundError,
)
from civic_pipeline.provenance.deep_links import (
    extract_deep_link_info,
    generate_citation_markup,
)
from civic_pipeline.provenance.source_verifier import SourceVerifier

__all__ = [
    "CitationService",
    "CitationValidationError",
    "FactNotFoundError",
    "SourceVerifier",
    "extract_deep_link_info",
    "generate_citation_markup",
]
