"""Tests for free-text sanitisation of override reasons."""
import pytest

from procurement.services.sanitize import sanitize_text


@pytest.mark.parametrize("raw,expected", [
    ("Vendor confirmed by phone", "Vendor confirmed by phone"),
    ("  padded\n\ttext  ", "padded text"),
    ("<b>bold</b> reason", "bold reason"),
    ("<script>alert('x')</script>Legit reason", "Legit reason"),
    ("Tom &amp; Jerry", "Tom & Jerry"),
    ("", ""),
    (None, ""),
])
def test_sanitize_text(raw, expected):
    assert sanitize_text(raw) == expected


def test_sanitize_truncates_after_cleaning():
    assert sanitize_text("<i>abcdefghij</i>", max_length=5) == "abcde"


def test_markup_only_input_is_empty():
    assert sanitize_text("<p></p><br/>") == ""
