"""Extraction pipeline from fetched pages to cited facts.

This pipeline reprocesses pages into facts:
1. Read pages (passed in, or from the PageStore for incremental runs)
2. Classify each page into budget, spending, statistical and KPI records
3. Turn records into fact rows keyed by a content hash
4. Store facts in the FactStore
5. Attach a citation to every stored fact via the CitationService

Features:
- Re-extracting an unchanged page refreshes facts instead of duplicating them
- Unclassified quantities are stored with status "review" for manual triage
- A page that fails to process is counted and skipped; the run continues
"""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from loguru import logger

from civic_pipeline.data_management.schemas.citation_schema import (
    CitationMetadata,
    score_to_confidence,
    get_confidence_score,
)
from civic_pipeline.data_management.schemas.fact_schema import (
    ClassifiedRecord,
    ExtractedFact,
)
from civic_pipeline.provenance.deep_links import extract_deep_link_info


@dataclass
class PipelineStats:
    """Statistics tracking for pipeline execution."""

    pages_processed: int = 0
    pages_failed: int = 0
    facts_extracted: int = 0
    facts_saved: int = 0
    facts_updated: int = 0
    citations_stored: int = 0
    unclassified_facts: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert stats to dictionary."""
        return {
            "pages_processed": self.pages_processed,
            "pages_failed": self.pages_failed,
            "facts_extracted": self.facts_extracted,
            "facts_saved": self.facts_saved,
            "facts_updated": self.facts_updated,
            "citations_stored": self.citations_stored,
            "unclassified_facts": self.unclassified_facts,
            "error_count": len(self.errors),
        }


EXTRACTION_METHODS = {
    "budget": "table",
    "spending": "table",
    "performance": "kpi",
    "statistic": "chart",
}


class ExtractionPipeline:
    """
    Pipeline for extracting cited facts from fetched pages.

    Wires together PageStore -> FinancialClassifier -> FactStore -> CitationService.

    Usage:
        pipeline = ExtractionPipeline(fact_store=store, citation_service=service)
        result = await pipeline.process_pages([page.to_dict() for page in pages])
        print(f"Extracted {result['facts_extracted']} facts")

    Attributes:
        page_store: PageStore holding fetched pages
        fact_store: FactStore receiving facts
        classifier: FinancialClassifier turning HTML into records
        citation_service: CitationService attaching citations
    """

    def __init__(
        self,
        page_store: Optional["PageStore"] = None,  # noqa: F821
        fact_store: Optional["FactStore"] = None,  # noqa: F821
        classifier: Optional["FinancialClassifier"] = None,  # noqa: F821
        citation_service: Optional["CitationService"] = None,  # noqa: F821
    ):
        """
        Initialize extraction pipeline.

        Args:
            page_store: PageStore for stored pages. Auto-creates if None.
            fact_store: FactStore for persistence. Auto-creates if None.
            classifier: FinancialClassifier. Auto-creates if None.
            citation_service: CitationService. Auto-creates if None.
        """
        self._page_store = page_store
        self._fact_store = fact_store
        self._classifier = classifier
        self._citation_service = citation_service

        self.logger = logger.bind(component="ExtractionPipeline")
        self.stats = PipelineStats()

    @property
    def page_store(self):
        """Lazy-load PageStore on first access."""
        if self._page_store is None:
            from civic_pipeline.data_management.page_store import PageStore
            self._page_store = PageStore()
        return self._page_store

    @property
    def fact_store(self):
        """Lazy-load FactStore on first access."""
        if self._fact_store is None:
            from civic_pipeline.data_management.fact_store import FactStore
            self._fact_store = FactStore()
        return self._fact_store

    @property
    def classifier(self):
        """Lazy-load FinancialClassifier on first access."""
        if self._classifier is None:
            from civic_pipeline.sifters.financial_classifier import FinancialClassifier
            self._classifier = FinancialClassifier()
        return self._classifier

    @property
    def citation_service(self):
        """Lazy-load CitationService on first access."""
        if self._citation_service is None:
            from civic_pipeline.provenance.citation_service import CitationService
            self._citation_service = CitationService(self.fact_store)
        return self._citation_service

    async def process_stored_pages(self, since: Optional[str] = None) -> Dict[str, Any]:
        """
        Reprocess pages already in the PageStore.

        Args:
            since: ISO timestamp - only pages stored after this time

        Returns:
            Processing statistics (see process_pages)
        """
        pages = await self.page_store.list_pages(since=since)
        return await self.process_pages(pages)

    async def process_pages(self, pages: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Process pages into facts and citations.

        Args:
            pages: Page dictionaries with url, html and optionally title,
                   fetched_at, file_url, parent_page_url

        Returns:
            Dictionary with processing statistics:
            - pages_processed / pages_failed
            - facts_extracted: Records and quantities found
            - facts_saved / facts_updated: New and refreshed facts
            - citations_stored
            - unclassified_facts
            - error_count
            - duration_seconds
        """
        start_time = datetime.now(timezone.utc)
        self.stats = PipelineStats()

        if not pages:
            self.logger.warning("No pages to process")
            return {**self.stats.to_dict(), "duration_seconds": 0}

        self.logger.info(f"Processing {len(pages)} pages")

        for page in pages:
            await self._process_page_with_error_handling(page)

        duration = (datetime.now(timezone.utc) - start_time).total_seconds()
        result = {**self.stats.to_dict(), "duration_seconds": round(duration, 2)}
        self.logger.info("Extraction pipeline complete", **result)
        return result

    async def _process_page_with_error_handling(self, page: Dict[str, Any]) -> None:
        url = page.get("url", "")
        try:
            await self.process_page(page)
            self.stats.pages_processed += 1
        except Exception as e:
            self.stats.pages_failed += 1
            self.stats.errors.append(f"{url}: {e}")
            self.logger.opt(exception=e).error(f"Failed to process page {url}")

    async def process_page(self, page: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Process a single page.

        Returns:
            The fact rows written for this page
        """
        url = page["url"]
        result = self.classifier.classify(page.get("html") or "", url)

        facts = [self._record_to_fact(record, page) for record in result.records()]
        facts.extend(self._quantity_to_fact(q, page) for q in result.unclassified_facts)

        self.stats.facts_extracted += len(facts)
        self.stats.unclassified_facts += len(result.unclassified_facts)

        if not facts:
            return []

        save_stats = await self.fact_store.save_facts(facts)
        self.stats.facts_saved += save_stats["saved"]
        self.stats.facts_updated += save_stats["updated"]

        for fact in facts:
            await self.citation_service.store_citation(fact["fact_id"], CitationMetadata(
                source_url=url,
                file_url=page.get("file_url"),
                parent_page_url=page.get("parent_page_url"),
                title=page.get("title"),
                confidence=score_to_confidence(fact["extraction_confidence"]),
                extraction_method=fact["extraction_method"],
            ))
            self.stats.citations_stored += 1

        return facts

    def _base_fact(self, page: Dict[str, Any]) -> Dict[str, Any]:
        url = page["url"]
        scraped_at = page.get("fetched_at") or datetime.now(timezone.utc).isoformat()
        if isinstance(scraped_at, datetime):
            scraped_at = scraped_at.isoformat()
        return {
            "source_url": url,
            "source_domain": extract_deep_link_info(url).domain,
            "scraped_at": scraped_at,
        }

    def _record_to_fact(self, record: ClassifiedRecord, page: Dict[str, Any]) -> Dict[str, Any]:
        content_hash = record.content_hash
        return {
            **self._base_fact(page),
            **record.record_fields(),
            "fact_id": f"fact-{content_hash[:16]}",
            "content_hash": content_hash,
            "data_type": record.data_type,
            "status": "active",
            "extraction_confidence": record.confidence,
            "extraction_method": EXTRACTION_METHODS.get(record.data_type, "table"),
        }

    def _quantity_to_fact(self, quantity: ExtractedFact, page: Dict[str, Any]) -> Dict[str, Any]:
        raw = f"quantity|{page['url']}|{quantity.offset}|{quantity.matched_text}"
        content_hash = hashlib.sha256(raw.encode("utf-8")).hexdigest()
        return {
            **self._base_fact(page),
            "fact_id": f"fact-{content_hash[:16]}",
            "content_hash": content_hash,
            "data_type": quantity.kind.value,
            "title": quantity.matched_text,
            "description": quantity.context,
            "department": None,
            "amount": quantity.value if quantity.unit in ("GBP", "USD") else None,
            "value": None if quantity.unit in ("GBP", "USD") else quantity.value,
            "unit": quantity.unit,
            "fact_date": None,
            "status": "review",
            "extraction_confidence": get_confidence_score(quantity.confidence),
            "extraction_method": "text",
        }
