"""Ward detection in council page text.

Wards are the geographic units council data is reported against. A ward is
recognised from:
- the configured list of known ward names (CIVIC_KNOWN_WARDS), matched
  case-insensitively on word boundaries;
- "<Name> ward" phrases, e.g. "Astley Bridge ward";
- "ward of <Name>" and "Ward: <Name>" phrases.

Capitalised words that only start a sentence or qualify the noun ("The",
"Each", "Electoral") are stripped from phrase matches. Numbered wards
("Ward 12") are not names and are ignored.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional

NAME = r"[A-Z][a-z'’]+(?:(?:\s|-|\s+and\s+)[A-Z][a-z'’]+){0,3}"

SUFFIX_PATTERN = re.compile(rf"\b(?P<name>{NAME})\s+[Ww]ard\b")
PREFIX_PATTERN = re.compile(rf"\b[Ww]ard(?:\s+of|\s*:)\s*(?P<name>{NAME})")

LEADING_WORDS = {
    "a", "an", "the", "this", "that", "each", "every", "any", "your", "our",
    "in", "for", "by", "per", "of", "which", "whole", "council", "electoral",
    "local", "new", "old", "same", "single", "one",
}


@dataclass(frozen=True)
class WardMention:
    """A ward name found at a character offset."""

    name: str
    offset: int


def _strip_leading(name: str) -> Optional[str]:
    words = name.split()
    while words and words[0].lower() in LEADING_WORDS:
        words.pop(0)
    if not words or words[0].lower() == "and":
        return None
    return " ".join(words)


class WardDetector:
    """
    Finds ward names in free text.

    Usage:
        detector = WardDetector(["Little Lever and Darcy Lever"])
        detector.detect("Road repairs in Little Lever and Darcy Lever ward")
    """

    def __init__(self, known_wards: Iterable[str] = ()):
        self.known_wards = [w.strip() for w in known_wards if w and w.strip()]
        self._known_patterns = [
            (ward, re.compile(rf"\b{re.escape(ward)}\b", re.IGNORECASE))
            for ward in self.known_wards
        ]

    def _canonical(self, name: str) -> str:
        for ward in self.known_wards:
            if ward.lower() == name.lower():
                return ward
        return name

    def mentions(self, text: str) -> list[WardMention]:
        """Every ward mention, ordered by offset."""
        if not isinstance(text, str) or not text:
            return []

        found: dict[int, WardMention] = {}
        for ward, pattern in self._known_patterns:
            for match in pattern.finditer(text):
                found.setdefault(match.start(), WardMention(ward, match.start()))

        for pattern in (SUFFIX_PATTERN, PREFIX_PATTERN):
            for match in pattern.finditer(text):
                name = _strip_leading(match.group("name"))
                if name is None:
                    continue
                offset = match.start("name") + match.group("name").index(name)
                found.setdefault(offset, WardMention(self._canonical(name), offset))

        return sorted(found.values(), key=lambda m: m.offset)

    def detect(self, text: str) -> list[str]:
        """Distinct ward names in order of first mention."""
        names: dict[str, str] = {}
        for mention in self.mentions(text):
            names.setdefault(mention.name.lower(), mention.name)
        return list(names.values())

    def ward_for_cell(self, cell: Optional[str]) -> Optional[str]:
        """
        Ward named by a table cell in a ward column.

        Known wards and "<Name> ward" phrases are normalised; anything else is
        taken as written.
        """
        if not cell or not cell.strip():
            return None
        detected = self.detect(cell)
        if detected:
            return detected[0]
        return self._canonical(" ".join(cell.split()))
