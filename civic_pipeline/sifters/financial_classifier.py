"""Classifies the quantitative content of a council web page.

Four sources of structure are recognised in an HTML page:
1. Financial tables: a header mentioning amounts, costs, budgets, fees or a
   currency symbol. Rows become BudgetItem (header mentions budget or
   allocation) or SpendingRecord (anything else).
2. Chart scripts: ``labels: [...]`` and ``data: [...]`` arrays are paired
   positionally into StatisticalData.
3. Statistics tables (``table.data-table``, ``.statistics-table``,
   ``[data-chart]``) that are not financial: each numeric cell becomes
   StatisticalData.
4. KPI widgets (``.kpi``, ``.metric``, ``[data-metric]``, ...): a leading
   number plus unit becomes a PerformanceMetric.

Whatever text remains after removing the above is mined by the quantity
extractor and returned as unclassified facts for manual triage.

Records carry the ward they describe when the page says so: a ward column,
a ``data-ward`` attribute, or a page that mentions exactly one ward.

Malformed rows are skipped individually; a bad row never discards its table.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

from bs4 import BeautifulSoup, Tag
from loguru import logger
from pydantic import ValidationError

from civic_pipeline.data_management.schemas.fact_schema import (
    BudgetItem,
    ClassifiedRecord,
    ExtractedFact,
    PerformanceMetric,
    SpendingRecord,
    StatisticalData,
)
from civic_pipeline.sifters.quantity_extractor import (
    NUMBER,
    QuantityExtractor,
    parse_amount,
)
from civic_pipeline.sifters.ward_detector import WardDetector

FINANCIAL_KEYWORDS = ("amount", "cost", "budget", "spend", "price", "fee", "allocation", "£", "$")
BUDGET_KEYWORDS = ("budget", "allocation")

# Priority order: the first keyword that matches any header wins
AMOUNT_HEADERS = (
    "amount", "£", "$", "cost", "spend", "total", "value",
    "budget", "allocation", "price", "fee",
)
DESCRIPTION_HEADERS = ("description", "detail", "purpose", "item", "expense type", "narrative")
DEPARTMENT_HEADERS = ("department", "directorate", "service")
WARD_HEADERS = ("ward", "electoral division")
SUPPLIER_HEADERS = ("supplier", "vendor", "payee", "beneficiary")
CATEGORY_HEADERS = ("category", "type", "cost centre")
DATE_HEADERS = ("date",)
YEAR_HEADERS = ("year", "period")

KPI_SELECTOR = ".performance-indicator, .kpi, .metric, .statistic, [data-metric], .dashboard-item"
STATISTICS_TABLE_SELECTOR = "table.data-table, table.statistics-table, table[data-chart]"

YEAR_PATTERN = re.compile(r"\b(?:19|20)\d{2}(?:\s?[/-]\s?\d{2,4})?\b")
CHART_DATA_PATTERN = re.compile(r"\bdata\s*:\s*\[([^\[\]]*)\]")
CHART_LABELS_PATTERN = re.compile(r"\blabels\s*:\s*\[([^\[\]]*)\]")
KPI_VALUE_PATTERN = re.compile(NUMBER + r"\s*(?P<unit>%|[A-Za-z£$]+)?")


@dataclass
class ClassificationResult:
    """Everything recognised on one page."""

    source_url: str
    budget_items: list[BudgetItem] = field(default_factory=list)
    spending_records: list[SpendingRecord] = field(default_factory=list)
    statistics: list[StatisticalData] = field(default_factory=list)
    performance_metrics: list[PerformanceMetric] = field(default_factory=list)
    unclassified_facts: list[ExtractedFact] = field(default_factory=list)
    wards: list[str] = field(default_factory=list)

    def records(self) -> Iterator[ClassifiedRecord]:
        """Iterate over all classified records."""
        yield from self.budget_items
        yield from self.spending_records
        yield from self.statistics
        yield from self.performance_metrics

    @property
    def total_records(self) -> int:
        return (
            len(self.budget_items)
            + len(self.spending_records)
            + len(self.statistics)
            + len(self.performance_metrics)
        )

    def to_dict(self) -> dict[str, Any]:
        """Counts per category."""
        return {
            "source_url": self.source_url,
            "budget_items": len(self.budget_items),
            "spending_records": len(self.spending_records),
            "statistics": len(self.statistics),
            "performance_metrics": len(self.performance_metrics),
            "unclassified_facts": len(self.unclassified_facts),
            "wards": len(self.wards),
        }


def _find_column(
    headers: list[str],
    keywords: tuple[str, ...],
    taken: set[int],
) -> Optional[int]:
    for keyword in keywords:
        for index, header in enumerate(headers):
            if index not in taken and keyword in header:
                return index
    return None


def _cell(cells: list[str], index: Optional[int]) -> Optional[str]:
    if index is None or index >= len(cells):
        return None
    return cells[index] or None


def _text(element: Tag) -> str:
    return " ".join(element.get_text(" ", strip=True).split())


class FinancialClassifier:
    """
    Turns council HTML into budget, spending, statistical and KPI records.

    Usage:
        classifier = FinancialClassifier()
        result = classifier.classify(html, "https://www.example-council.gov.uk/spending")
        for item in result.budget_items:
            print(item.department, item.amount)
    """

    def __init__(
        self,
        extractor: Optional[QuantityExtractor] = None,
        ward_detector: Optional[WardDetector] = None,
    ):
        if ward_detector is None:
            from civic_pipeline.config.settings import settings
            ward_detector = WardDetector(settings.known_wards)

        self.extractor = extractor or QuantityExtractor()
        self.ward_detector = ward_detector
        self.logger = logger.bind(component="FinancialClassifier")

    def classify(self, html: str, source_url: str) -> ClassificationResult:
        """
        Classify all quantitative content in ``html``.

        Args:
            html: Raw page HTML
            source_url: URL the page was fetched from

        Returns:
            ClassificationResult with one list per record type
        """
        result = ClassificationResult(source_url=source_url)
        if not html:
            return result

        soup = BeautifulSoup(html, "html.parser")
        page_wards = self.ward_detector.detect(_text(soup))

        for table in soup.find_all("table"):
            if self._classify_financial_table(table, source_url, result):
                table.decompose()

        for table in soup.select(STATISTICS_TABLE_SELECTOR):
            result.statistics.extend(self._parse_statistics_table(table, source_url))
            table.decompose()

        for script in soup.find_all("script"):
            script_text = script.string or script.get_text()
            if "data" in script_text:
                result.statistics.extend(self._parse_chart_script(script_text, source_url))

        for element in self._kpi_elements(soup):
            metric = self._parse_kpi(element, source_url)
            if metric is not None:
                result.performance_metrics.append(metric)
                element.decompose()

        for element in soup.find_all(["script", "style", "noscript"]):
            element.decompose()

        result.unclassified_facts = self.extractor.extract(_text(soup))

        # A page about a single ward applies it to every record without one
        if len(page_wards) == 1:
            self._assign_ward(result, page_wards[0])
        result.wards = list(dict.fromkeys(
            page_wards + [record.ward for record in result.records() if record.ward]
        ))

        self.logger.debug("Page classified", **result.to_dict())
        return result

    def _assign_ward(self, result: ClassificationResult, ward: str) -> None:
        for name in ("budget_items", "spending_records", "statistics", "performance_metrics"):
            records = getattr(result, name)
            setattr(result, name, [
                record if record.ward else record.model_copy(update={"ward": ward})
                for record in records
            ])

    # -- financial tables -------------------------------------------------

    def _header_and_rows(self, table: Tag) -> tuple[list[str], list[Tag]]:
        rows = table.find_all("tr")
        if not rows:
            return [], []

        header_row = None
        thead = table.find("thead")
        if thead is not None:
            header_row = thead.find("tr")
        if header_row is None:
            header_row = next((r for r in rows if r.find("th") is not None), rows[0])

        headers = [
            _text(cell).lower()
            for cell in header_row.find_all(["th", "td"])
        ]
        body = [r for r in rows if r is not header_row and r.find("td") is not None]
        return headers, body

    def is_financial_table(self, headers: list[str]) -> bool:
        """True when any header contains a financial keyword."""
        return any(keyword in header for header in headers for keyword in FINANCIAL_KEYWORDS)

    def _classify_financial_table(
        self,
        table: Tag,
        source_url: str,
        result: ClassificationResult,
    ) -> bool:
        headers, rows = self._header_and_rows(table)
        if not headers or not self.is_financial_table(headers):
            return False

        is_budget = any(keyword in header for header in headers for keyword in BUDGET_KEYWORDS)
        amount_keywords = BUDGET_KEYWORDS + AMOUNT_HEADERS if is_budget else AMOUNT_HEADERS

        taken: set[int] = set()
        amount_col = _find_column(headers, amount_keywords, taken)
        if amount_col is None:
            return False
        taken.add(amount_col)

        columns = {}
        for name, keywords in (
            ("supplier", SUPPLIER_HEADERS),
            ("department", DEPARTMENT_HEADERS),
            ("ward", WARD_HEADERS),
            ("description", DESCRIPTION_HEADERS),
            ("category", CATEGORY_HEADERS),
            ("date", DATE_HEADERS),
            ("year", YEAR_HEADERS),
        ):
            index = _find_column(headers, keywords, taken)
            columns[name] = index
            if index is not None:
                taken.add(index)

        caption = table.find("caption")
        table_year = None
        caption_text = _text(caption) if caption is not None else ""
        year_match = YEAR_PATTERN.search(caption_text) or YEAR_PATTERN.search(" ".join(headers))
        if year_match:
            table_year = year_match.group(0)

        skipped = 0
        for row in rows:
            cells = [_text(cell) for cell in row.find_all(["td", "th"])]
            amount = parse_amount(_cell(cells, amount_col) or "")
            if amount is None or amount <= 0:
                skipped += 1
                continue

            # Fall back to the first non-amount cell for a description
            description = _cell(cells, columns["description"])
            if description is None:
                description = next(
                    (c for i, c in enumerate(cells) if i != amount_col and c), ""
                )

            ward = self.ward_detector.ward_for_cell(_cell(cells, columns["ward"]))

            try:
                if is_budget:
                    result.budget_items.append(BudgetItem(
                        department=_cell(cells, columns["department"]) or "Unknown",
                        category=_cell(cells, columns["category"]) or "General",
                        description=description,
                        amount=amount,
                        year=_cell(cells, columns["year"]) or table_year,
                        ward=ward,
                        source_url=source_url,
                        confidence=0.9 if columns["department"] is not None else 0.8,
                    ))
                else:
                    result.spending_records.append(SpendingRecord(
                        department=_cell(cells, columns["department"]) or "Unknown",
                        description=description,
                        supplier=_cell(cells, columns["supplier"]),
                        amount=amount,
                        category=_cell(cells, columns["category"]),
                        transaction_date=_cell(cells, columns["date"]),
                        ward=ward,
                        source_url=source_url,
                        confidence=0.9 if columns["supplier"] is not None else 0.8,
                    ))
            except ValidationError as e:
                skipped += 1
                self.logger.debug(f"Skipping malformed financial row: {e.error_count()} errors")

        if skipped:
            self.logger.debug(f"Skipped {skipped} rows without a usable amount in {source_url}")
        return True

    # -- statistics tables and charts -------------------------------------

    def _parse_statistics_table(self, table: Tag, source_url: str) -> list[StatisticalData]:
        headers, rows = self._header_and_rows(table)
        data: list[StatisticalData] = []
        wards_in_rows = bool(headers) and any(keyword in headers[0] for keyword in WARD_HEADERS)

        for row in rows:
            cells = [_text(cell) for cell in row.find_all(["td", "th"])]
            row_label = cells[0] if cells and parse_amount(cells[0]) is None else None
            ward = self.ward_detector.ward_for_cell(row_label) if wards_in_rows else None

            for index, cell in enumerate(cells):
                if index >= len(headers) or not headers[index]:
                    continue
                match = KPI_VALUE_PATTERN.search(cell)
                if match is None or (row_label is not None and index == 0):
                    continue
                metric = headers[index] if row_label is None else f"{row_label}: {headers[index]}"
                data.append(StatisticalData(
                    category="Table Data",
                    metric=metric,
                    value=float(match.group("number").replace(",", "")),
                    unit=match.group("unit") or "count",
                    period="current",
                    source_url=source_url,
                    confidence=0.9,
                    ward=ward,
                ))
        return data

    def _parse_chart_script(self, script: str, source_url: str) -> list[StatisticalData]:
        label_arrays = CHART_LABELS_PATTERN.findall(script)
        data_arrays = CHART_DATA_PATTERN.findall(script)
        if not label_arrays or not data_arrays:
            return []

        labels = self._parse_labels(label_arrays[0])
        data: list[StatisticalData] = []

        for raw_values in data_arrays:
            for label, raw in zip(labels, raw_values.split(",")):
                raw = raw.strip()
                try:
                    value = float(raw)
                except ValueError:
                    continue
                data.append(StatisticalData(
                    category="Chart Data",
                    metric=label,
                    value=value,
                    unit="count",
                    period="current",
                    source_url=source_url,
                    confidence=0.7,
                ))
        return data

    def _parse_labels(self, raw: str) -> list[str]:
        try:
            parsed = json.loads(f"[{raw}]")
            return [str(label) for label in parsed]
        except json.JSONDecodeError:
            return [part.strip().strip("'\"") for part in raw.split(",") if part.strip()]

    # -- KPI widgets ------------------------------------------------------

    def _kpi_elements(self, soup: BeautifulSoup) -> list[Tag]:
        # Outermost match only: a .dashboard-item wrapping a .kpi is one metric
        selected = soup.select(KPI_SELECTOR)
        chosen = set(map(id, selected))
        return [
            element for element in selected
            if not any(id(parent) in chosen for parent in element.parents)
        ]

    def _parse_kpi(self, element: Tag, source_url: str) -> Optional[PerformanceMetric]:
        text = _text(element)
        match = KPI_VALUE_PATTERN.search(text)
        if match is None:
            return None

        label_element = element.find(class_=re.compile(r"label|title|name"))
        metric = element.get("data-metric")
        if not metric and label_element is not None:
            metric = _text(label_element)
        if not metric:
            metric = (text[:match.start()] + text[match.end():]).strip(" :-") or "Unnamed metric"

        try:
            return PerformanceMetric(
                service=element.get("data-service") or "General",
                metric=metric,
                value=float(match.group("number").replace(",", "")),
                unit=match.group("unit"),
                period=element.get("data-period"),
                ward=self.ward_detector.ward_for_cell(element.get("data-ward")),
                source_url=source_url,
                confidence=0.8,
            )
        except ValidationError:
            return None
