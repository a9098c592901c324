"""Interfaces of the pipeline's external collaborators, plus reference adapters.

The orchestrator only depends on the three protocols below. The adapters
are small defaults good enough to run the pipeline end to end:

- HttpPageFetcher: fetches configured seed URLs with httpx, rate limited by aiometer
- JsonReportRenderer: writes executive-summary.json and citation-report.json
- LogNotifier: routes notifications to the log
"""

import functools
import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Protocol

import aiometer
import httpx
from bs4 import BeautifulSoup
from loguru import logger

from civic_pipeline.data_management.schemas.citation_schema import utc_now
from civic_pipeline.data_management.schemas.report_schema import ExecutiveSummary

EXECUTIVE_SUMMARY_FILE = "executive-summary.json"
CITATION_REPORT_FILE = "citation-report.json"


@dataclass
class FetchedPage:
    """A fetched council page."""

    url: str
    html: str
    title: Optional[str] = None
    fetched_at: datetime = field(default_factory=utc_now)
    file_url: Optional[str] = None
    parent_page_url: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "html": self.html,
            "title": self.title,
            "fetched_at": self.fetched_at.isoformat(),
            "file_url": self.file_url,
            "parent_page_url": self.parent_page_url,
        }


@dataclass
class ReportAggregate:
    """Everything the renderer needs for one report phase."""

    summary: ExecutiveSummary
    citation_report: dict[str, Any] = field(default_factory=dict)
    extraction_stats: dict[str, Any] = field(default_factory=dict)


class PageFetcher(Protocol):
    async def fetch_pages(self) -> list[FetchedPage]:
        """Fetch the pages to process in a full run."""
        ...


class ReportRenderer(Protocol):
    async def render(self, aggregate: ReportAggregate) -> list[Path]:
        """Write report artifacts, including executive-summary.json."""
        ...


class Notifier(Protocol):
    async def notify(self, subject: str, message: str) -> None:
        """Deliver a notification."""
        ...


class HttpPageFetcher:
    """
    Fetches a fixed list of URLs.

    Failed URLs are logged and left out of the result; a partially
    unreachable site still yields the pages that did load.
    """

    def __init__(
        self,
        urls: Optional[list[str]] = None,
        max_per_second: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 20.0,
    ):
        from civic_pipeline.config.settings import settings

        self.urls = list(urls) if urls is not None else list(settings.seed_urls)
        self.max_per_second = max_per_second or settings.max_requests_per_second
        self.user_agent = settings.user_agent
        self.timeout = timeout
        self._client = client
        self.logger = logger.bind(component="HttpPageFetcher")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=5),
                headers={"User-Agent": self.user_agent},
                follow_redirects=True,
            )
        return self._client

    async def _fetch_one(self, url: str) -> Optional[FetchedPage]:
        client = await self._get_client()
        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            self.logger.warning(f"HTTP error {e.response.status_code} fetching {url}")
            return None
        except httpx.HTTPError as e:
            self.logger.warning(f"Fetch failed for {url}: {e}")
            return None

        html = response.text
        title_tag = BeautifulSoup(html, "html.parser").find("title")
        return FetchedPage(
            url=str(response.url),
            html=html,
            title=title_tag.get_text(strip=True) if title_tag else None,
        )

    async def fetch_pages(self) -> list[FetchedPage]:
        if not self.urls:
            self.logger.warning("No seed URLs configured, nothing to fetch")
            return []

        self.logger.info(f"Fetching {len(self.urls)} pages at {self.max_per_second} req/sec")
        results = await aiometer.run_all(
            [functools.partial(self._fetch_one, url) for url in self.urls],
            max_per_second=self.max_per_second,
        )
        pages = [page for page in results if page is not None]
        self.logger.info(f"Fetched {len(pages)}/{len(self.urls)} pages")
        return pages

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


class JsonReportRenderer:
    """Writes the executive summary and citation report as JSON files."""

    def __init__(self, output_dir: Optional[str] = None):
        from civic_pipeline.config.settings import settings

        self.output_dir = Path(output_dir or settings.analysis_dir)
        self.logger = logger.bind(component="JsonReportRenderer")

    async def render(self, aggregate: ReportAggregate) -> list[Path]:
        self.output_dir.mkdir(parents=True, exist_ok=True)

        summary_path = self.output_dir / EXECUTIVE_SUMMARY_FILE
        summary_path.write_text(json.dumps(aggregate.summary.to_json_dict(), indent=2))

        citation_path = self.output_dir / CITATION_REPORT_FILE
        citation_path.write_text(json.dumps(
            {**aggregate.citation_report, "extraction": aggregate.extraction_stats},
            indent=2,
            default=str,
        ))

        self.logger.info(f"Rendered reports to {self.output_dir}")
        return [summary_path, citation_path]


class LogNotifier:
    """Sends notifications to the log instead of email or webhooks."""

    def __init__(self):
        self.logger = logger.bind(component="Notifier")
        self.sent: list[tuple[str, str]] = []

    async def notify(self, subject: str, message: str) -> None:
        self.sent.append((subject, message))
        self.logger.warning(f"[{subject}] {message}")
