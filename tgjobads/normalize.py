import re
import unicodedata
from typing import List

DASHES = "‒–—―−"
CURRENCY_SYMBOLS = "$€₽£"

_DASH_RE = re.compile(f"[{DASHES}]")
_SPACE_BEFORE_SEPARATOR_RE = re.compile(r"\s+([.,;:!?])")
_THOUSANDS_RE = re.compile(r"(?<=\d)[ ,.\u00a0\u202f'](?=\d{3}(?!\d))")
_RANGE_GAP_RE = re.compile(rf"(?<=[\dk{re.escape(CURRENCY_SYMBOLS)}])\s*-\s*(?=[\d{re.escape(CURRENCY_SYMBOLS)}])")
_DIGIT_SIGN_GAP_RE = re.compile(rf"(?<=\d)\s+(?=[{re.escape(CURRENCY_SYMBOLS)}])")
_SIGN_DIGIT_GAP_RE = re.compile(rf"(?<=[{re.escape(CURRENCY_SYMBOLS)}])\s+(?=\d)")
_HASHTAG_RE = re.compile(r"#\w+", re.UNICODE)

# Order matters: longer names first so "рублей" is not left as "лей", and
# Belarusian rubles before any "руб" entry
CURRENCY_NAMES = [
    ("белорусских рублей", "byn"),
    ("бел. руб.", "byn"),
    ("бел.руб.", "byn"),
    ("бел. руб", "byn"),
    ("бел.руб", "byn"),
    ("долларов", "$"),
    ("доллара", "$"),
    ("доллар", "$"),
    ("dollars", "$"),
    ("usd", "$"),
    ("рублей", "₽"),
    ("рубля", "₽"),
    ("рубль", "₽"),
    ("рубли", "₽"),
    ("руб.", "₽"),
    ("руб", "₽"),
    ("rub", "₽"),
    ("euro", "€"),
    ("евро", "€"),
    ("eur", "€"),
]


def normalize_text(s: str) -> str:
    return " ".join(s.strip().lower().split())


def normalize_ad_text(text: str) -> str:
    """Lower-case, NFC, no space before separators, whitespace collapsed."""
    text = unicodedata.normalize("NFC", text)
    text = _SPACE_BEFORE_SEPARATOR_RE.sub(r"\1", text)
    return normalize_text(text)


def normalize_salary_text(text: str) -> str:
    """
    Normalize a salary fragment for pattern matching.

    Unifies dashes, replaces currency names with symbols, drops thousands
    separators and tightens spacing around ranges and currency signs, so
    "от 80 000 до 100 000 рублей" becomes "от 80000 до 100000₽".
    """
    text = unicodedata.normalize("NFKC", text).lower()
    text = _DASH_RE.sub("-", text)
    text = normalize_text(text)

    for name, symbol in CURRENCY_NAMES:
        text = re.sub(rf"(?<![a-zа-яё]){re.escape(name)}(?![a-zа-яё])", symbol, text)

    text = _THOUSANDS_RE.sub("", text)
    text = _RANGE_GAP_RE.sub("-", text)
    text = _DIGIT_SIGN_GAP_RE.sub("", text)
    text = _SIGN_DIGIT_GAP_RE.sub("", text)
    return normalize_text(text)


def extract_hashtags(text: str) -> List[str]:
    """Return hashtags in order of appearance, lower-cased, without duplicates."""
    seen = set()
    result = []
    for tag in _HASHTAG_RE.findall(text):
        tag = tag.lower()
        if tag not in seen:
            seen.add(tag)
            result.append(tag)
    return result
