"""Tests for the reference page fetcher, report renderer and notifier."""

import json
from datetime import datetime, timezone

import httpx
import pytest

from civic_pipeline.data_management.schemas.report_schema import (
    ExecutiveSummary,
    QualityMetrics,
    parse_executive_summary,
)
from civic_pipeline.pipelines.collaborators import (
    CITATION_REPORT_FILE,
    EXECUTIVE_SUMMARY_FILE,
    FetchedPage,
    HttpPageFetcher,
    JsonReportRenderer,
    LogNotifier,
    ReportAggregate,
)


def make_fetcher(urls, handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpPageFetcher(urls=urls, max_per_second=100, client=client)


class TestFetchedPage:
    def test_to_dict(self):
        page = FetchedPage(
            url="https://www.example-council.gov.uk/budget",
            html="<p>hi</p>",
            fetched_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
        )

        data = page.to_dict()

        assert data["url"] == "https://www.example-council.gov.uk/budget"
        assert data["fetched_at"] == "2024-05-01T00:00:00+00:00"
        assert data["file_url"] is None


class TestHttpPageFetcher:
    """Tests for seed URL fetching."""

    @pytest.mark.asyncio
    async def test_fetches_pages_with_titles(self):
        def handler(request):
            return httpx.Response(200, html="<html><head><title> Budget 2024 </title></head></html>")

        fetcher = make_fetcher(["https://a.gov.uk/budget"], handler)
        pages = await fetcher.fetch_pages()

        assert len(pages) == 1
        assert pages[0].url == "https://a.gov.uk/budget"
        assert pages[0].title == "Budget 2024"

    @pytest.mark.asyncio
    async def test_failed_urls_left_out(self):
        def handler(request):
            if request.url.path == "/error":
                return httpx.Response(500)
            if request.url.path == "/down":
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, html="<p>ok</p>")

        fetcher = make_fetcher(
            ["https://a.gov.uk/ok", "https://a.gov.uk/error", "https://a.gov.uk/down"],
            handler,
        )
        pages = await fetcher.fetch_pages()

        assert [p.url for p in pages] == ["https://a.gov.uk/ok"]
        assert pages[0].title is None

    @pytest.mark.asyncio
    async def test_no_urls(self):
        fetcher = make_fetcher([], lambda r: httpx.Response(200))

        assert await fetcher.fetch_pages() == []


class TestJsonReportRenderer:
    """Tests for report rendering."""

    @pytest.mark.asyncio
    async def test_writes_summary_and_citation_report(self, tmp_path):
        summary = ExecutiveSummary(quality_metrics=QualityMetrics(
            completeness_score=0.75,
            fresh_records=5,
            total_records=8,
        ))
        aggregate = ReportAggregate(
            summary=summary,
            citation_report={"total_records": 8},
            extraction_stats={"facts_extracted": 8},
        )

        paths = await JsonReportRenderer(str(tmp_path / "analysis")).render(aggregate)

        assert [p.name for p in paths] == [EXECUTIVE_SUMMARY_FILE, CITATION_REPORT_FILE]
        written = json.loads(paths[0].read_text())
        assert written["qualityMetrics"]["freshRecords"] == 5
        assert parse_executive_summary(paths[0].read_text()).quality_metrics.total_records == 8
        citation = json.loads(paths[1].read_text())
        assert citation == {"total_records": 8, "extraction": {"facts_extracted": 8}}


class TestLogNotifier:
    @pytest.mark.asyncio
    async def test_records_notifications(self):
        notifier = LogNotifier()

        await notifier.notify("Pipeline Run Complete", "Run finished")

        assert notifier.sent == [("Pipeline Run Complete", "Run finished")]
