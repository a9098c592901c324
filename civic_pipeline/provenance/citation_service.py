"""Citation and provenance service.

Attaches citations to persisted facts, verifies that cited URLs are still
reachable and reports on citation health across the whole fact store.

Verification is recorded per URL, not per fact: one check of a council page
updates every fact citing it, and a fact cited later inherits the last known
result for its URL.

Usage:
    from civic_pipeline.provenance.citation_service import CitationService

    service = CitationService(fact_store)
    await service.store_citation(fact_id, CitationMetadata(source_url=url))
    stats = await service.bulk_verify_sources(limit=50)
"""

from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError

from civic_pipeline.data_management.fact_store import FactStore
from civic_pipeline.data_management.schemas.citation_schema import (
    CitationMarkup,
    CitationMetadata,
    ConfidenceLevel,
    DeepLinkInfo,
    MultipleSources,
    SourceVerification,
    ensure_utc,
    get_confidence_score,
    score_to_confidence,
    utc_now,
)
from civic_pipeline.provenance.deep_links import (
    extract_deep_link_info,
    generate_citation_markup,
)
from civic_pipeline.provenance.source_verifier import SourceVerifier
from civic_pipeline.utils.logging import get_correlation_id, get_structured_logger
from civic_pipeline.utils.rate_limiter import RateLimiter

CONFIDENCE_POINTS = {
    ConfidenceLevel.HIGH: 3,
    ConfidenceLevel.MEDIUM: 2,
    ConfidenceLevel.LOW: 1,
}


class CitationValidationError(ValueError):
    """A citation failed validation (e.g. missing source_url)."""


class FactNotFoundError(KeyError):
    """No fact exists with the given ID."""


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not value:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        return None


def _verification(data: Optional[dict[str, Any]]) -> Optional[SourceVerification]:
    if not data:
        return None
    try:
        return SourceVerification.model_validate(data)
    except ValidationError:
        return None


class CitationService:
    """
    Stores, verifies and audits citations for facts in a FactStore.

    Attributes:
        fact_store: Persistence for facts and per-URL verifications
        verifier: HTTP reachability checker
        rate_limiter: Throttle applied between verifications in bulk runs
        recheck_after: Sources checked more recently are skipped in bulk runs
        stale_after: Verifications older than this make a citation broken
    """

    def __init__(
        self,
        fact_store: FactStore,
        verifier: Optional[SourceVerifier] = None,
        rate_limiter: Optional[RateLimiter] = None,
        recheck_after_days: Optional[int] = None,
        stale_citation_days: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        from civic_pipeline.config.settings import settings

        self.fact_store = fact_store
        self.verifier = verifier or SourceVerifier()
        self.rate_limiter = rate_limiter or RateLimiter()
        self.recheck_after = timedelta(
            days=recheck_after_days if recheck_after_days is not None else settings.recheck_after_days
        )
        self.stale_after = timedelta(
            days=stale_citation_days if stale_citation_days is not None else settings.stale_citation_days
        )
        self._clock = clock
        self._logger = get_structured_logger("citation_service")

    # -- storing and reading --------------------------------------------

    def _validate(self, citation: Union[CitationMetadata, dict[str, Any]]) -> CitationMetadata:
        if isinstance(citation, CitationMetadata):
            return citation
        try:
            return CitationMetadata.model_validate(citation)
        except ValidationError as e:
            raise CitationValidationError(f"invalid citation: {e}") from e

    async def _require_fact(self, fact_id: str) -> dict[str, Any]:
        fact = await self.fact_store.get_fact(fact_id)
        if fact is None:
            raise FactNotFoundError(fact_id)
        return fact

    async def store_citation(
        self,
        fact_id: str,
        citation: Union[CitationMetadata, dict[str, Any]],
    ) -> CitationMetadata:
        """
        Attach a citation to a fact.

        Missing type and file type are inferred from the URLs, and the last
        known verification of the cited URL is inherited. Storing the same
        citation twice leaves the fact unchanged.

        Raises:
            CitationValidationError: The citation is invalid
            FactNotFoundError: No fact with ``fact_id``
        """
        citation = self._validate(citation)
        fact = await self._require_fact(fact_id)

        source_info = extract_deep_link_info(citation.source_url)
        file_info = extract_deep_link_info(citation.file_url) if citation.file_url else None

        existing = fact.get("citation_metadata") or {}
        updates: dict[str, Any] = {}
        if citation.type is None:
            updates["type"] = source_info.suggested_type
        if citation.file_type is None and file_info is not None:
            updates["file_type"] = file_info.file_type
        if citation.date_added is None:
            updates["date_added"] = _parse_datetime(existing.get("date_added")) or self._clock()
        if citation.verification is None:
            known = await self.fact_store.get_verification(citation.effective_url)
            if known is not None:
                updates["verification"] = _verification(known)
        if updates:
            citation = citation.model_copy(update=updates)

        if citation.file_url and not citation.parent_page_url:
            self._logger.debug("citation_missing_parent_page", fact_id=fact_id, file_url=citation.file_url)

        await self.fact_store.update_fact(fact_id, {
            "source_url": citation.source_url,
            "file_url": citation.file_url,
            "parent_page_url": citation.parent_page_url,
            "source_title": citation.title,
            "source_domain": source_info.domain,
            "citation_metadata": citation.model_dump(mode="json"),
            "extraction_confidence": get_confidence_score(citation.confidence),
        })

        self._logger.debug("citation_stored", fact_id=fact_id, url=citation.effective_url)
        return citation

    async def get_citation(self, fact_id: str) -> Optional[CitationMetadata]:
        """
        Rebuild a fact's citation from its columns and stored metadata.

        Returns:
            The citation, or None if the fact or its source URL is missing
        """
        fact = await self.fact_store.get_fact(fact_id)
        if fact is None or not fact.get("source_url"):
            return None
        return await self._citation_from_fact(fact)

    async def _citation_from_fact(self, fact: dict[str, Any]) -> CitationMetadata:
        merged: dict[str, Any] = {
            "source_url": fact["source_url"],
            "file_url": fact.get("file_url"),
            "parent_page_url": fact.get("parent_page_url"),
            "title": fact.get("source_title"),
            "confidence": score_to_confidence(fact.get("extraction_confidence")),
            "date_added": fact.get("scraped_at"),
        }

        stored = fact.get("citation_metadata") or {}
        if "primary_source" in stored:
            stored = stored["primary_source"] or {}
        merged.update({k: v for k, v in stored.items() if v is not None})

        citation = CitationMetadata.model_validate(merged)
        latest = await self.fact_store.get_verification(citation.effective_url)
        if latest is not None:
            citation = citation.model_copy(update={"verification": _verification(latest)})
        return citation

    async def get_all_sources(self, fact_id: str) -> Optional[MultipleSources]:
        """All citations backing a fact; a single citation is wrapped."""
        fact = await self.fact_store.get_fact(fact_id)
        if fact is None or not fact.get("source_url"):
            return None

        stored = fact.get("citation_metadata") or {}
        if "primary_source" in stored:
            return MultipleSources.model_validate(stored)

        citation = await self._citation_from_fact(fact)
        return MultipleSources(
            sources=[citation],
            primary_source=citation,
            overall_confidence=citation.confidence,
            last_verified=citation.verification.last_checked if citation.verification else None,
        )

    async def store_multiple_sources(
        self,
        fact_id: str,
        sources: Union[MultipleSources, dict[str, Any]],
    ) -> MultipleSources:
        """
        Attach several citations to one fact.

        Raises:
            CitationValidationError: The payload is invalid
            FactNotFoundError: No fact with ``fact_id``
        """
        if not isinstance(sources, MultipleSources):
            try:
                sources = MultipleSources.model_validate(sources)
            except ValidationError as e:
                raise CitationValidationError(f"invalid sources: {e}") from e

        await self._require_fact(fact_id)
        primary = sources.primary_source

        await self.fact_store.update_fact(fact_id, {
            "source_url": primary.source_url,
            "file_url": primary.file_url,
            "parent_page_url": primary.parent_page_url,
            "source_title": primary.title,
            "citation_metadata": sources.model_dump(mode="json"),
            "extraction_confidence": get_confidence_score(sources.overall_confidence),
        })
        return sources

    @staticmethod
    def calculate_overall_confidence(sources: list[CitationMetadata]) -> ConfidenceLevel:
        """Average confidence of several citations (no sources is low)."""
        if not sources:
            return ConfidenceLevel.LOW

        average = sum(CONFIDENCE_POINTS[s.confidence] for s in sources) / len(sources)
        if average >= 2.5:
            return ConfidenceLevel.HIGH
        if average >= 1.5:
            return ConfidenceLevel.MEDIUM
        return ConfidenceLevel.LOW

    # -- verification -----------------------------------------------------

    async def verify_source(self, url: str) -> SourceVerification:
        """
        Check a URL and record the result for every fact citing it.

        Network failures are captured in the result, never raised.
        """
        result = await self.verifier.verify(url)
        payload = result.model_dump(mode="json")
        await self.fact_store.save_verification(url, payload)

        for fact in await self.fact_store.get_facts_by_url(url):
            metadata = fact.get("citation_metadata")
            if not metadata:
                continue

            # Only citations whose effective URL is this one take the result
            if "primary_source" in metadata:
                matched = False
                for source in [metadata["primary_source"], *metadata.get("sources", [])]:
                    if (source.get("file_url") or source.get("source_url")) == url:
                        source["verification"] = payload
                        matched = True
                if not matched:
                    continue
                metadata["last_verified"] = payload["last_checked"]
            elif (metadata.get("file_url") or fact.get("file_url") or metadata.get("source_url")) == url:
                metadata["verification"] = payload
            else:
                continue

            await self.fact_store.update_fact(fact["fact_id"], {"citation_metadata": metadata})

        return result

    async def bulk_verify_sources(self, limit: int = 100) -> dict[str, int]:
        """
        Verify cited URLs not checked within the recheck window.

        URLs are checked one at a time through the rate limiter.

        Returns:
            Counts: verified (2xx), broken (non-2xx response), errors (no
            response at all), processed
        """
        cutoff = self._clock() - self.recheck_after
        verifications = await self.fact_store.get_all_verifications()

        due = []
        for url in await self.fact_store.list_urls():
            known = _verification(verifications.get(url))
            if known is None or known.last_checked is None or known.last_checked < cutoff:
                due.append(url)
        due = due[:limit]

        log = self._logger.bind(batch_id=get_correlation_id())
        log.info("bulk_verification_started", urls=len(due))

        stats = {"verified": 0, "broken": 0, "errors": 0, "processed": 0}
        for url in due:
            await self.rate_limiter.acquire()
            result = await self.verify_source(url)
            stats["processed"] += 1
            if result.accessible:
                stats["verified"] += 1
            elif result.status == 0:
                stats["errors"] += 1
            else:
                stats["broken"] += 1

        log.info("bulk_verification_finished", **stats)
        return stats

    # -- audits -----------------------------------------------------------

    async def find_broken_citations(self, limit: int = 100) -> list[dict[str, Any]]:
        """
        Active facts whose citation needs attention.

        A citation is broken when the fact has no source URL, its cited URL
        answered with a failure, or it has not been verified within the stale
        window (including facts scraped before the window and never checked).

        Returns:
            Entries with fact_id, reason and the verification details,
            newest facts first
        """
        cutoff = self._clock() - self.stale_after
        verifications = await self.fact_store.get_all_verifications()
        broken = []

        for fact in await self.fact_store.list_facts(active_only=True):
            source_url = fact.get("source_url")
            effective_url = fact.get("file_url") or source_url
            verification = _verification(verifications.get(effective_url)) if effective_url else None
            scraped_at = _parse_datetime(fact.get("scraped_at"))

            if not source_url:
                reason = "missing_source"
            elif verification is not None and not verification.accessible:
                reason = "inaccessible"
            elif verification is not None and (
                verification.last_checked is None or verification.last_checked < cutoff
            ):
                reason = "stale_verification"
            elif verification is None and scraped_at is not None and scraped_at < cutoff:
                reason = "never_verified"
            else:
                continue

            broken.append({
                "fact_id": fact.get("fact_id"),
                "title": fact.get("title"),
                "source_url": source_url,
                "file_url": fact.get("file_url"),
                "reason": reason,
                "accessible": verification.accessible if verification else None,
                "status": verification.status if verification else None,
                "last_checked": verification.last_checked if verification else None,
                "scraped_at": scraped_at,
            })

        broken.sort(key=lambda b: b["scraped_at"] or datetime.min.replace(tzinfo=cutoff.tzinfo), reverse=True)
        return broken[:limit]

    async def find_duplicate_sources(self, limit: int = 50) -> list[dict[str, Any]]:
        """Source URLs cited by more than one active fact, largest groups first."""
        groups: dict[str, list[str]] = defaultdict(list)
        for fact in await self.fact_store.list_facts(active_only=True):
            if fact.get("source_url"):
                groups[fact["source_url"]].append(fact["fact_id"])

        duplicates = [
            {"source_url": url, "count": len(ids), "fact_ids": sorted(ids)}
            for url, ids in groups.items()
            if len(ids) > 1
        ]
        duplicates.sort(key=lambda d: (-d["count"], d["source_url"]))
        return duplicates[:limit]

    def extract_deep_link_info(self, url: str) -> DeepLinkInfo:
        return extract_deep_link_info(url)

    def generate_citation_markup(self, citation: CitationMetadata) -> CitationMarkup:
        return generate_citation_markup(citation)

    async def generate_citation_report(self) -> dict[str, Any]:
        """
        Summarize citation coverage and health over active facts.

        Returns:
            Totals, confidence breakdown and the 20 most cited domains
        """
        facts = await self.fact_store.list_facts(active_only=True, include_archived=False)
        verifications = await self.fact_store.get_all_verifications()

        confidence: Counter = Counter({level.value: 0 for level in ConfidenceLevel})
        domains: Counter = Counter()
        report = {
            "total_records": len(facts),
            "with_citations": 0,
            "with_files": 0,
            "with_parent_pages": 0,
            "verified_sources": 0,
            "broken_sources": 0,
        }

        for fact in facts:
            metadata = fact.get("citation_metadata")
            if metadata:
                report["with_citations"] += 1
            if fact.get("file_url"):
                report["with_files"] += 1
            if fact.get("parent_page_url"):
                report["with_parent_pages"] += 1

            effective_url = fact.get("file_url") or fact.get("source_url")
            verification = _verification(verifications.get(effective_url)) if effective_url else None
            if verification is not None:
                if verification.accessible:
                    report["verified_sources"] += 1
                else:
                    report["broken_sources"] += 1

            level = (metadata or {}).get("confidence") or score_to_confidence(
                fact.get("extraction_confidence")
            ).value
            confidence[level] += 1

            domain = fact.get("source_domain") or (
                extract_deep_link_info(fact["source_url"]).domain if fact.get("source_url") else ""
            )
            if domain:
                domains[domain] += 1

        report["confidence_breakdown"] = dict(confidence)
        report["domain_breakdown"] = [
            {"domain": domain, "count": count} for domain, count in domains.most_common(20)
        ]
        report["generated_at"] = self._clock().isoformat()
        return report

    async def update_existing_citations(self, limit: int = 1000) -> dict[str, Any]:
        """
        Backfill citations for active facts that have a source URL but no
        citation metadata yet.

        Returns:
            processed/updated counts and per-fact errors
        """
        stats: dict[str, Any] = {"processed": 0, "updated": 0, "errors": []}
        candidates = [
            fact for fact in await self.fact_store.list_facts(active_only=True)
            if fact.get("source_url") and not fact.get("citation_metadata")
        ][:limit]

        for fact in candidates:
            stats["processed"] += 1
            try:
                await self.store_citation(fact["fact_id"], {
                    "source_url": fact["source_url"],
                    "file_url": fact.get("file_url"),
                    "parent_page_url": fact.get("parent_page_url"),
                    "title": fact.get("source_title"),
                    "confidence": score_to_confidence(fact.get("extraction_confidence")),
                    "extraction_method": fact.get("extraction_method"),
                })
                stats["updated"] += 1
            except (CitationValidationError, FactNotFoundError) as e:
                stats["errors"].append({"fact_id": fact["fact_id"], "error": str(e)})

        self._logger.info(
            "citations_backfilled",
            processed=stats["processed"],
            updated=stats["updated"],
            errors=len(stats["errors"]),
        )
        return stats

    async def close(self) -> None:
        await self.verifier.close()
