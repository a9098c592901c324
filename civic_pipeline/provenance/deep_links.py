"""URL analysis for citations.

Both helpers here are pure: they look only at the text of a URL and never
touch the network.
"""

from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import urlparse

from civic_pipeline.data_management.schemas.citation_schema import (
    CitationMarkup,
    CitationMetadata,
    CitationType,
    DeepLinkInfo,
    SourceVerification,
)

FILE_EXTENSIONS = ("pdf", "csv", "xlsx", "xls", "doc", "docx")

# First matching row wins; checked against the lowercased URL path
PATH_KEYWORDS: tuple[tuple[CitationType, tuple[str, ...]], ...] = (
    (CitationType.PLANNING, ("planning", "application")),
    (CitationType.MEETING, ("meeting", "agenda", "minutes")),
    (CitationType.SPENDING, ("spending", "expenditure", "payment")),
    (CitationType.BUDGET, ("budget", "finance")),
)


def _domain(url: str) -> str:
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        return ""
    return host[4:] if host.startswith("www.") else host


def extract_deep_link_info(url: str) -> DeepLinkInfo:
    """
    Classify a URL.

    Args:
        url: Any URL string; unparseable input yields an empty domain

    Returns:
        DeepLinkInfo with file detection, government-domain flag and the
        citation type suggested by path keywords
    """
    try:
        path = urlparse(url).path.lower()
    except ValueError:
        path = ""

    suffix = PurePosixPath(path).suffix.lstrip(".")
    file_type: Optional[str] = suffix if suffix in FILE_EXTENSIONS else None
    domain = _domain(url)

    suggested = CitationType.DOCUMENT if file_type else CitationType.PAGE
    for citation_type, keywords in PATH_KEYWORDS:
        if any(keyword in path for keyword in keywords):
            suggested = citation_type
            break

    return DeepLinkInfo(
        is_direct_file=file_type is not None,
        file_type=file_type,
        is_government_domain="gov.uk" in domain or "council" in domain,
        domain=domain,
        suggested_type=suggested,
    )


def generate_citation_markup(
    citation: CitationMetadata,
    verification: Optional[SourceVerification] = None,
) -> CitationMarkup:
    """
    Build display data for a citation.

    The primary link is the file when there is one; the secondary link then
    points back at the page that linked to it.
    """
    link_info = extract_deep_link_info(citation.source_url)
    primary_info = extract_deep_link_info(citation.effective_url)
    verification = verification or citation.verification

    secondary = None
    if citation.file_url:
        secondary = citation.parent_page_url or citation.source_url

    return CitationMarkup(
        primary_link=citation.effective_url,
        secondary_link=secondary,
        display_text=citation.title or link_info.domain,
        confidence=citation.confidence,
        type=citation.type or link_info.suggested_type,
        file_type=citation.file_type or primary_info.file_type,
        domain=link_info.domain,
        is_direct_file=primary_info.is_direct_file,
        is_government_domain=link_info.is_government_domain,
        date_added=citation.date_added,
        accessible=verification.accessible if verification else None,
        last_checked=verification.last_checked if verification else None,
    )
