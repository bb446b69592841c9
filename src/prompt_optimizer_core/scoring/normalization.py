"""
Value normalization and parsing

Helpers shared by the comparison strategies: text normalization for
near-exact matching, and lenient parsers for numbers, dates, booleans,
and delimited lists.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import date

import pandas as pd

# Written number -> digits
_WORD_TO_NUMBER = {
    "zero": "0", "one": "1", "two": "2", "three": "3", "four": "4",
    "five": "5", "six": "6", "seven": "7", "eight": "8", "nine": "9",
    "ten": "10", "eleven": "11", "twelve": "12", "thirteen": "13",
    "fourteen": "14", "fifteen": "15", "sixteen": "16", "seventeen": "17",
    "eighteen": "18", "nineteen": "19", "twenty": "20", "thirty": "30",
    "forty": "40", "fifty": "50", "sixty": "60", "seventy": "70",
    "eighty": "80", "ninety": "90", "hundred": "100", "thousand": "1000",
}

# "sixty (60)" -> "sixty"
_REDUNDANT_PAREN_RES = [
    (re.compile(rf"\b{word}\s*\({digit}\)", re.IGNORECASE), word)
    for word, digit in _WORD_TO_NUMBER.items()
]
_WORD_RES = [
    (re.compile(rf"\b{word}\b", re.IGNORECASE), digit)
    for word, digit in _WORD_TO_NUMBER.items()
]

_YEARS_RE = re.compile(r"(\d+)\s*years?", re.IGNORECASE)
_WEEKS_RE = re.compile(r"(\d+)\s*weeks?", re.IGNORECASE)
_DAYS_RE = re.compile(r"(\d+)\s*days?", re.IGNORECASE)

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")
_CURRENCY_RE = re.compile(r"[$€£¥,\s]")
_LEADING_NUMBER_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

_TITLES_RE = re.compile(r"\b(mr|mrs|ms|dr|prof|sir|dame|lord|lady)\b\.?", re.IGNORECASE)
_PARENTHETICAL_RE = re.compile(r"\([^)]*\)")

_TRUE_VALUES = {"true", "yes", "y", "1", "✓", "checked"}
_FALSE_VALUES = {"false", "no", "n", "0", "unchecked"}


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def normalize_duration(text: str) -> str:
    """
    Rewrite durations in months

    "2 years" -> "24 months", "8 weeks" -> "2 months", "90 days" -> "3 months".
    Day counts under 28 are left as days.
    """
    text = _YEARS_RE.sub(lambda m: f"{int(m.group(1)) * 12} months", text)
    text = _WEEKS_RE.sub(lambda m: f"{_round_half_up(int(m.group(1)) / 4.33)} months", text)

    def _days(m: re.Match) -> str:
        days = int(m.group(1))
        if days >= 28:
            months = _round_half_up(days / 30)
            if months > 0:
                return f"{months} months"
        return f"{days} days"

    return _DAYS_RE.sub(_days, text)


def normalize_text(text: str | None) -> str:
    """
    Normalize text for near-exact comparison

    - Unicode normalization (NFKC) and lowercase
    - Drop redundant parenthetical numbers ("sixty (60)" -> "sixty")
    - Written numbers to digits ("sixty" -> "60")
    - Durations to months
    - Remove punctuation, collapse whitespace

    Args:
        text: Text to normalize

    Returns:
        Normalized text ("" for None)
    """
    if not text:
        return ""
    normalized = unicodedata.normalize("NFKC", text).lower()
    for pattern, word in _REDUNDANT_PAREN_RES:
        normalized = pattern.sub(word, normalized)
    for pattern, digit in _WORD_RES:
        normalized = pattern.sub(digit, normalized)
    normalized = normalize_duration(normalized)
    normalized = _PUNCTUATION_RE.sub("", normalized)
    return _WHITESPACE_RE.sub(" ", normalized).strip()


def extract_core_name(text: str | None) -> str:
    """Strip titles and parenthetical roles from a name, then normalize"""
    if not text:
        return ""
    cleaned = _PARENTHETICAL_RE.sub("", text.lower())
    cleaned = _TITLES_RE.sub("", cleaned)
    return normalize_text(cleaned)


def parse_number(text: str | None) -> float | None:
    """Parse a number, ignoring currency symbols, thousands separators, and whitespace"""
    if not text:
        return None
    cleaned = _CURRENCY_RE.sub("", text)
    m = _LEADING_NUMBER_RE.match(cleaned)
    if not m:
        return None
    return float(m.group(0))


def parse_date(text: str | None) -> date | None:
    """Parse a date in any format pandas understands; None when unparseable"""
    if not text or not text.strip():
        return None
    try:
        parsed = pd.to_datetime(text.strip(), errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(parsed):
        return None
    return parsed.date()


def parse_boolean(text: str | None) -> bool | None:
    """Parse yes/no style values; None when the text is not a boolean"""
    if not text:
        return None
    normalized = text.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    return None


def detect_separator(*values: str) -> str:
    """Pipe when any value contains one, otherwise comma"""
    if any("|" in v for v in values):
        return "|"
    return ","


def parse_list(text: str | None, separator: str) -> list[str]:
    """Split on separator and normalize each item, dropping empties"""
    if not text:
        return []
    items = (normalize_text(item) for item in text.split(separator))
    return [item for item in items if item]
