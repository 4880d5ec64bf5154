"""
Free-text salary parsing.

Turns a salary fragment such as "$80,000–$100,000/year" or
"от 150 тыс. руб. в месяц" into raw bounds, currency and period. Nothing
is converted here; see normalizer.py.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..models import Currency, Period
from ..normalize import normalize_salary_text

SYMBOL_CURRENCIES = {
    "$": Currency.USD,
    "€": Currency.EUR,
    "₽": Currency.RUB,
    "£": Currency.GBP,
    "₸": Currency.KZT,
    "₴": Currency.UAH,
}

# Codes and names left untouched by normalize_salary_text
WORD_CURRENCIES = [
    ("gbp", Currency.GBP),
    ("фунтов", Currency.GBP),
    ("kzt", Currency.KZT),
    ("тенге", Currency.KZT),
    ("uah", Currency.UAH),
    ("грн", Currency.UAH),
    ("гривен", Currency.UAH),
    ("byn", Currency.BYN),
]

PERIOD_PATTERNS: List[Tuple[Period, re.Pattern]] = [
    (Period.HOUR, re.compile(r"/\s*(h|hr|hour|час)\b|per hour|hourly|в час|за час")),
    (Period.DAY, re.compile(r"/\s*(d|day|день)\b|per day|daily|в день|за день")),
    (Period.WEEK, re.compile(r"/\s*(w|wk|week|нед\w*)\b|per week|weekly|в неделю")),
    (Period.MONTH, re.compile(r"/\s*(mo|mon|month|мес\w*)\b|per month|monthly|в месяц|ежемесячно")),
    (Period.YEAR, re.compile(r"/\s*(y|yr|year|год)\b|per year|per annum|annual\w*|yearly|в год|годовой")),
    (Period.PROJECT, re.compile(r"per project|за проект|fixed price")),
]

_SYMBOLS = "".join(re.escape(s) for s in SYMBOL_CURRENCIES)
_AMOUNT = rf"[{_SYMBOLS}]?\s?(\d+(?:[.,]\d+)?)\s?(k|к|тысяч|тыс\.?)?(?![a-zа-яё])\s?[{_SYMBOLS}]?"

_RANGE_RE = re.compile(rf"{_AMOUNT}\s?-\s?{_AMOUNT}")
_FROM_TO_RE = re.compile(rf"(?<![a-zа-яё])(?:from|от)\s?{_AMOUNT}\s?(?:to|до)\s?{_AMOUNT}")
_FROM_RE = re.compile(rf"(?<![a-zа-яё])(?:from|от|min\.?|starting at)\s?{_AMOUNT}")
_TO_RE = re.compile(rf"(?<![a-zа-яё])(?:up to|to|до|max\.?)\s?{_AMOUNT}")
_SINGLE_RE = re.compile(_AMOUNT)


_SALARY_HINT_RE = re.compile(
    rf"[{_SYMBOLS}]|salary|compensation|\bpay\b|зарплат|зп\b|з/п|оклад|вилка|доход|"
    r"\b(usd|eur|rub|gbp|kzt|uah|byn)\b|руб|долл|евро|тенге|грн"
)


@dataclass(frozen=True)
class ParsedSalary:
    lower_bound: Optional[float]
    upper_bound: Optional[float]
    currency: Optional[Currency]
    period: Optional[Period]


def _amount(number: str, multiplier: Optional[str]) -> float:
    value = float(number.replace(",", "."))
    if multiplier:
        value *= 1000
    return value


def detect_currency(text: str) -> Optional[Currency]:
    """First currency sign or code in already normalized text."""
    positions = []
    for symbol, currency in SYMBOL_CURRENCIES.items():
        idx = text.find(symbol)
        if idx >= 0:
            positions.append((idx, currency))
    for word, currency in WORD_CURRENCIES:
        match = re.search(rf"(?<![a-zа-яё]){re.escape(word)}(?![a-zа-яё])", text)
        if match:
            positions.append((match.start(), currency))
    if not positions:
        return None
    return min(positions, key=lambda p: p[0])[1]


def detect_period(text: str) -> Optional[Period]:
    for period, pattern in PERIOD_PATTERNS:
        if pattern.search(text):
            return period
    return None


def find_salary_fragment(ad_text: str) -> Optional[str]:
    """First line of an ad that mentions pay and contains a digit."""
    for line in ad_text.splitlines():
        lowered = line.lower()
        if any(ch.isdigit() for ch in line) and _SALARY_HINT_RE.search(lowered):
            return line.strip()
    return None


def parse_salary(text: str) -> Optional[ParsedSalary]:
    """Return the parsed salary, or None when the text carries no amount."""
    if not text or not text.strip():
        return None

    normalized = normalize_salary_text(text)
    lower: Optional[float] = None
    upper: Optional[float] = None

    match = _FROM_TO_RE.search(normalized) or _RANGE_RE.search(normalized)
    if match:
        lo_num, lo_mul, hi_num, hi_mul = match.groups()
        # "80-100k" shares the suffix of the upper bound
        if hi_mul and not lo_mul:
            lo_mul = hi_mul
        lower = _amount(lo_num, lo_mul)
        upper = _amount(hi_num, hi_mul)
    else:
        match = _FROM_RE.search(normalized)
        if match:
            lower = _amount(*match.groups())
        else:
            match = _TO_RE.search(normalized)
            if match:
                upper = _amount(*match.groups())
            else:
                # Prefer an amount carrying a currency sign over bare numbers
                singles = list(_SINGLE_RE.finditer(normalized))
                signed = [m for m in singles if any(s in m.group(0) for s in SYMBOL_CURRENCIES)]
                match = (signed or singles or [None])[0]
                if match:
                    lower = _amount(*match.groups())

    if lower is None and upper is None:
        return None

    return ParsedSalary(
        lower_bound=lower,
        upper_bound=upper,
        currency=detect_currency(normalized),
        period=detect_period(normalized),
    )
