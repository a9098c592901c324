"""Tests for WardDetector."""

import pytest

from civic_pipeline.sifters.ward_detector import WardDetector, WardMention


@pytest.fixture
def detector():
    return WardDetector(["Little Lever and Darcy Lever", "Breightmet"])


class TestDetect:
    """Tests for ward names in free text."""

    def test_suffix_phrase(self, detector):
        assert detector.detect("Road repairs in Astley Bridge ward start in May.") == ["Astley Bridge"]

    def test_prefix_phrases(self, detector):
        text = "Councillors for the Ward of Halliwell. Ward: Crompton"

        assert detector.detect(text) == ["Halliwell", "Crompton"]

    def test_leading_words_stripped(self, detector):
        assert detector.detect("The Riverside Ward budget") == ["Riverside"]

    def test_generic_and_numbered_wards_ignored(self, detector):
        assert detector.detect("Each ward has three councillors. Ward 12 meets on Tuesday.") == []

    def test_known_wards_case_insensitive_and_canonical(self, detector):
        text = "Spending in BREIGHTMET and in little lever and darcy lever ward"

        assert detector.detect(text) == ["Breightmet", "Little Lever and Darcy Lever"]

    def test_repeated_mentions_deduplicated(self, detector):
        text = "Riverside ward and riverside ward again, then Hillside ward"

        assert detector.detect(text) == ["Riverside", "Hillside"]

    def test_mentions_carry_offsets(self, detector):
        mentions = detector.mentions("Budget for Riverside ward")

        assert mentions == [WardMention("Riverside", 11)]

    @pytest.mark.parametrize("text", ["", None, 42])
    def test_non_text(self, detector, text):
        assert detector.detect(text) == []


class TestWardForCell:
    """Tests for ward columns in tables."""

    @pytest.mark.parametrize("cell,expected", [
        ("Riverside", "Riverside"),
        ("  Hulton   Park ", "Hulton Park"),
        ("Astley Bridge Ward", "Astley Bridge"),
        ("breightmet", "Breightmet"),
        ("", None),
        (None, None),
    ])
    def test_cell_values(self, detector, cell, expected):
        assert detector.ward_for_cell(cell) == expected
