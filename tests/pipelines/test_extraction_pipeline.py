"""Tests for ExtractionPipeline.

Tests verify:
- Pipeline initialization with injected and lazily created components
- Page processing into record facts, review facts and citations
- Re-extraction refreshes facts instead of duplicating them
- A failing page is counted and the run continues
- Stored pages are reprocessed for incremental runs
"""

from unittest.mock import MagicMock

import pytest

from civic_pipeline.data_management.fact_store import FactStore
from civic_pipeline.data_management.page_store import PageStore
from civic_pipeline.pipelines.extraction_pipeline import ExtractionPipeline, PipelineStats
from civic_pipeline.sifters.financial_classifier import FinancialClassifier

SPENDING_URL = "https://www.example-council.gov.uk/finance/spending"

SPENDING_PAGE = """
<html><body>
<h1>Spending over £500</h1>
<table>
  <thead><tr><th>Date</th><th>Supplier</th><th>Department</th><th>Description</th><th>Amount (£)</th></tr></thead>
  <tbody>
    <tr><td>01/04/2024</td><td>Acme Ltd</td><td>Highways</td><td>Road resurfacing</td><td>£12,500.00</td></tr>
  </tbody>
</table>
</body></html>
"""

KPI_PAGE = """
<div class="dashboard-item" data-service="Housing" data-period="2024-Q1">
  <div class="kpi">
    <span class="kpi-label">Homes built</span>
    <span class="kpi-value">1,250</span>
  </div>
</div>
"""


def spending_page(**extra):
    page = {
        "url": SPENDING_URL,
        "html": SPENDING_PAGE,
        "title": "Spending over £500",
        "fetched_at": "2024-05-01T09:00:00+00:00",
    }
    page.update(extra)
    return page


@pytest.fixture
def fact_store():
    return FactStore()


@pytest.fixture
def pipeline(fact_store):
    return ExtractionPipeline(page_store=PageStore(), fact_store=fact_store)


class TestPipelineStats:
    """Tests for PipelineStats dataclass."""

    def test_default_initialization(self):
        stats = PipelineStats()

        assert stats.pages_processed == 0
        assert stats.facts_saved == 0
        assert stats.errors == []

    def test_to_dict_reports_error_count(self):
        stats = PipelineStats(pages_processed=2, errors=["a", "b"])

        result = stats.to_dict()

        assert result["pages_processed"] == 2
        assert result["error_count"] == 2
        assert "errors" not in result

    def test_errors_list_isolation(self):
        first = PipelineStats()
        first.errors.append("boom")

        assert PipelineStats().errors == []


class TestPipelineInitialization:
    """Tests for component wiring."""

    def test_injected_components(self, fact_store):
        classifier = FinancialClassifier()
        pipeline = ExtractionPipeline(fact_store=fact_store, classifier=classifier)

        assert pipeline.fact_store is fact_store
        assert pipeline.classifier is classifier

    def test_citation_service_shares_fact_store(self, pipeline, fact_store):
        assert pipeline.citation_service.fact_store is fact_store


class TestPageProcessing:
    """Tests for turning pages into facts."""

    @pytest.mark.asyncio
    async def test_empty_input(self, pipeline):
        result = await pipeline.process_pages([])

        assert result["pages_processed"] == 0
        assert result["duration_seconds"] == 0

    @pytest.mark.asyncio
    async def test_spending_page(self, pipeline, fact_store):
        result = await pipeline.process_pages([spending_page()])

        assert result["pages_processed"] == 1
        assert result["facts_extracted"] == 2
        assert result["facts_saved"] == 2
        assert result["citations_stored"] == 2
        assert result["unclassified_facts"] == 1

        facts = {f["data_type"]: f for f in await fact_store.list_facts(active_only=False)}
        spending = facts["spending"]
        assert spending["amount"] == 12500.0
        assert spending["department"] == "Highways"
        assert spending["status"] == "active"
        assert spending["extraction_method"] == "table"
        assert spending["source_domain"] == "example-council.gov.uk"
        assert spending["scraped_at"] == "2024-05-01T09:00:00+00:00"
        assert spending["fact_id"] == f"fact-{spending['content_hash'][:16]}"
        assert spending["citation_metadata"]["source_url"] == SPENDING_URL
        assert spending["citation_metadata"]["type"] == "spending"
        assert spending["source_title"] == "Spending over £500"

        review = facts["financial"]
        assert review["status"] == "review"
        assert review["amount"] == 500
        assert review["value"] is None
        assert review["extraction_method"] == "text"

    @pytest.mark.asyncio
    async def test_review_facts_excluded_from_active(self, pipeline, fact_store):
        await pipeline.process_pages([spending_page()])

        active = await fact_store.list_facts()

        assert [f["data_type"] for f in active] == ["spending"]

    @pytest.mark.asyncio
    async def test_kpi_page_uses_kpi_method(self, pipeline, fact_store):
        await pipeline.process_pages([{"url": "https://www.example-council.gov.uk/performance", "html": KPI_PAGE}])

        facts = await fact_store.list_facts()

        assert len(facts) == 1
        assert facts[0]["data_type"] == "performance"
        assert facts[0]["value"] == 1250
        assert facts[0]["extraction_method"] == "kpi"

    @pytest.mark.asyncio
    async def test_file_citation_recorded(self, pipeline, fact_store):
        page = spending_page(
            file_url="https://www.example-council.gov.uk/files/spend-april.csv",
            parent_page_url=SPENDING_URL,
        )

        await pipeline.process_pages([page])

        fact = (await fact_store.list_facts())[0]
        assert fact["file_url"] == "https://www.example-council.gov.uk/files/spend-april.csv"
        assert fact["parent_page_url"] == SPENDING_URL
        assert fact["citation_metadata"]["file_type"] == "csv"

    @pytest.mark.asyncio
    async def test_reprocessing_refreshes_facts(self, pipeline, fact_store):
        await pipeline.process_pages([spending_page()])
        result = await pipeline.process_pages([spending_page()])

        assert result["facts_saved"] == 0
        assert result["facts_updated"] == 2
        assert len(await fact_store.list_facts(active_only=False)) == 2


class TestErrorHandling:
    """Tests for per-page failures."""

    @pytest.mark.asyncio
    async def test_failing_page_is_counted(self, fact_store):
        real = FinancialClassifier()
        classifier = MagicMock()

        def classify(html, url):
            if url.endswith("/broken"):
                raise ValueError("unparseable page")
            return real.classify(html, url)

        classifier.classify.side_effect = classify
        pipeline = ExtractionPipeline(page_store=PageStore(), fact_store=fact_store, classifier=classifier)

        result = await pipeline.process_pages([
            {"url": "https://www.example-council.gov.uk/broken", "html": "<p></p>"},
            spending_page(),
        ])

        assert result["pages_failed"] == 1
        assert result["pages_processed"] == 1
        assert result["error_count"] == 1
        assert "unparseable page" in pipeline.stats.errors[0]
        assert result["facts_saved"] == 2


class TestStoredPages:
    """Tests for incremental reprocessing."""

    @pytest.mark.asyncio
    async def test_process_stored_pages(self, fact_store):
        page_store = PageStore()
        await page_store.save_pages([spending_page()])
        pipeline = ExtractionPipeline(page_store=page_store, fact_store=fact_store)

        result = await pipeline.process_stored_pages()

        assert result["pages_processed"] == 1
        assert len(await fact_store.list_facts()) == 1
