"""Pattern-based extraction of money amounts, percentages and counts from text.

Every recognisable quantity is described by one row of ``DEFAULT_PATTERNS``:
the family it belongs to, a compiled regex, a normalizer that turns the match
into ``(value, unit)`` and the confidence assigned to that pattern. Adding a
new vocabulary (another currency, another counted noun) means appending a row;
the extraction loop never changes.

Overlap policy:
- Within one family, only the first match at a given offset is kept.
- Matches from different families are all kept, even when their spans
  overlap ("£300 households" yields a financial and a count fact). Callers
  that need a single reading per span can filter on ``offset``.

The extractor is pure and total: any ``str`` input yields a list, possibly
empty. Malformed number tokens such as ``1,2000`` are skipped.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional

from loguru import logger

from civic_pipeline.data_management.schemas.citation_schema import ConfidenceLevel
from civic_pipeline.data_management.schemas.fact_schema import ExtractedFact, FactKind

# A well-formed number: comma groups of exactly three digits or no commas at
# all, optional decimals, not glued to further digits on either side.
NUMBER = (
    r"(?<![\d,.])"
    r"(?P<number>\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)"
    r"(?![,.]?\d)"
)
MULTIPLIER = r"(?:\s?(?P<mult>(?i:million|billion|thousand|bn|m|k))\b)?"

MULTIPLIERS = {
    "thousand": Decimal(1_000),
    "k": Decimal(1_000),
    "million": Decimal(1_000_000),
    "m": Decimal(1_000_000),
    "billion": Decimal(1_000_000_000),
    "bn": Decimal(1_000_000_000),
}

CONTEXT_RADIUS = 50

PEOPLE_NOUNS = ("people", "residents", "households", "applications", "cases")
DURATION_NOUNS = ("years", "months", "days", "hours")


def _to_decimal(token: str) -> Decimal:
    return Decimal(token.replace(",", ""))


def _scaled(match: re.Match) -> Decimal:
    amount = _to_decimal(match.group("number"))
    mult = match.group("mult")
    if mult:
        amount *= MULTIPLIERS[mult.lower()]
    return amount


def _currency(unit: str) -> Callable[[re.Match], tuple[Decimal, str]]:
    def normalize(match: re.Match) -> tuple[Decimal, str]:
        return _scaled(match), unit
    return normalize


def _pence(match: re.Match) -> tuple[Decimal, str]:
    return _to_decimal(match.group("number")) / 100, "GBP"


def _percent(match: re.Match) -> tuple[Decimal, str]:
    return _to_decimal(match.group("number")), "%"


def _plural(noun: str) -> str:
    noun = noun.lower()
    if noun == "people" or noun.endswith("s"):
        return noun
    return noun + "s"


def _count(match: re.Match) -> tuple[Decimal, str]:
    return _to_decimal(match.group("number")), _plural(match.group("noun"))


def _noun_group(nouns: tuple[str, ...]) -> str:
    alternatives = "|".join(
        noun if noun == "people" else f"{noun[:-1]}s?" for noun in nouns
    )
    return rf"(?P<noun>(?i:{alternatives}))\b"


@dataclass(frozen=True)
class QuantityPattern:
    """One row of the extraction table."""

    name: str
    family: FactKind
    regex: re.Pattern
    normalize: Callable[[re.Match], tuple[Decimal, str]]
    confidence: ConfidenceLevel


DEFAULT_PATTERNS: tuple[QuantityPattern, ...] = (
    QuantityPattern(
        name="gbp",
        family=FactKind.FINANCIAL,
        regex=re.compile(r"£\s?" + NUMBER + MULTIPLIER),
        normalize=_currency("GBP"),
        confidence=ConfidenceLevel.HIGH,
    ),
    QuantityPattern(
        name="usd",
        family=FactKind.FINANCIAL,
        regex=re.compile(r"\$\s?" + NUMBER + MULTIPLIER),
        normalize=_currency("USD"),
        confidence=ConfidenceLevel.HIGH,
    ),
    QuantityPattern(
        name="pence",
        family=FactKind.FINANCIAL,
        regex=re.compile(NUMBER + r"\s?(?i:pence)\b"),
        normalize=_pence,
        confidence=ConfidenceLevel.HIGH,
    ),
    QuantityPattern(
        name="percent_sign",
        family=FactKind.PERCENTAGE,
        regex=re.compile(NUMBER + r"\s?%"),
        normalize=_percent,
        confidence=ConfidenceLevel.HIGH,
    ),
    QuantityPattern(
        name="percent_word",
        family=FactKind.PERCENTAGE,
        regex=re.compile(NUMBER + r"\s+(?i:percent|per\s+cent)\b"),
        normalize=_percent,
        confidence=ConfidenceLevel.HIGH,
    ),
    QuantityPattern(
        name="people_count",
        family=FactKind.COUNT,
        regex=re.compile(NUMBER + r"\s+" + _noun_group(PEOPLE_NOUNS)),
        normalize=_count,
        confidence=ConfidenceLevel.MEDIUM,
    ),
    QuantityPattern(
        name="duration_count",
        family=FactKind.COUNT,
        regex=re.compile(NUMBER + r"\s+" + _noun_group(DURATION_NOUNS)),
        normalize=_count,
        confidence=ConfidenceLevel.LOW,
    ),
)

_BARE_NUMBER = re.compile(NUMBER)


class QuantityExtractor:
    """
    Extracts quantities from free text using a table of patterns.

    Usage:
        extractor = QuantityExtractor()
        facts = extractor.extract("The council approved £2.5 million for roads")
        facts[0].value  # 2500000.0

    Attributes:
        patterns: Pattern rows applied in order
        context_radius: Characters of context kept either side of a match
    """

    def __init__(
        self,
        patterns: tuple[QuantityPattern, ...] = DEFAULT_PATTERNS,
        context_radius: int = CONTEXT_RADIUS,
    ):
        self.patterns = patterns
        self.context_radius = context_radius
        self.logger = logger.bind(component="QuantityExtractor")

    def extract(self, text: str) -> list[ExtractedFact]:
        """
        Extract every recognisable quantity from ``text``.

        Args:
            text: Arbitrary text, typically the visible text of a web page

        Returns:
            Facts ordered by position in the text
        """
        if not text or not isinstance(text, str):
            return []

        facts: list[ExtractedFact] = []
        seen: set[tuple[FactKind, int]] = set()

        for pattern in self.patterns:
            for match in pattern.regex.finditer(text):
                key = (pattern.family, match.start())
                if key in seen:
                    continue

                fact = self._build_fact(pattern, match, text)
                if fact is None:
                    continue

                seen.add(key)
                facts.append(fact)

        facts.sort(key=lambda f: (f.offset, f.kind.value))
        self.logger.debug(f"Extracted {len(facts)} quantities from {len(text)} chars")
        return facts

    def _build_fact(
        self,
        pattern: QuantityPattern,
        match: re.Match,
        text: str,
    ) -> Optional[ExtractedFact]:
        try:
            value, unit = pattern.normalize(match)
            numeric = float(value)
        except (InvalidOperation, ValueError, OverflowError, KeyError):
            return None

        start, end = match.span()
        context = text[max(0, start - self.context_radius):end + self.context_radius]

        return ExtractedFact(
            kind=pattern.family,
            value=numeric,
            unit=unit,
            context=" ".join(context.split()),
            confidence=pattern.confidence,
            offset=start,
            matched_text=match.group(0),
        )


_default_extractor = QuantityExtractor()


def extract_quantities(text: str) -> list[ExtractedFact]:
    """Extract quantities with the default pattern table."""
    return _default_extractor.extract(text)


def parse_amount(cell: str) -> Optional[float]:
    """
    Parse a money amount from a table cell.

    The first financial quantity wins; otherwise a bare well-formed number is
    accepted (spending tables often put the currency in the header only).

    Returns:
        The amount, or None when the cell holds no parseable number
    """
    if not cell or not isinstance(cell, str):
        return None

    for fact in _default_extractor.extract(cell):
        if fact.kind is FactKind.FINANCIAL:
            return fact.value

    match = _BARE_NUMBER.search(cell)
    if match is None:
        return None
    try:
        return float(_to_decimal(match.group("number")))
    except (InvalidOperation, ValueError):
        return None
