"""
Currency exchange rates for salary normalization.

A rate is "units of the reporting currency per one unit of the source
currency" on a given day. Lookups fall back to the nearest earlier day
within a bounded gap (weekends and holidays have no fixing); anything
further away is treated as missing.
"""

import csv
import threading
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

import requests
from bs4 import BeautifulSoup

from ..logger import get_logger
from ..models import CURRENCY_TO_WIRE, Currency, currency_from_code
from ..retry import RetryError, exponential_backoff, should_retry_http_status

logger = get_logger()


class RateNotFoundError(LookupError):
    """No usable rate for (currency, date)."""

    def __init__(self, currency: Currency, on_date: date):
        super().__init__(f"No rate for {currency.name} on {on_date.isoformat()}")
        self.currency = currency
        self.on_date = on_date


class RateProvider(Protocol):
    def get_rate(self, currency: Currency, on_date: date) -> float:
        ...


class RateTable:
    """In-memory rate table for one reporting currency, with a CSV cache."""

    def __init__(self, target: Currency = Currency.USD, max_gap_days: int = 7):
        self.target = target
        self.max_gap_days = max_gap_days
        self._rates: Dict[Currency, Dict[date, float]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return sum(len(days) for days in self._rates.values())

    def add(self, currency: Currency, on_date: date, rate: float) -> None:
        if rate <= 0:
            raise ValueError(f"Rate must be positive, got {rate}")
        with self._lock:
            self._rates.setdefault(currency, {})[on_date] = rate

    def get_rate(self, currency: Currency, on_date: date) -> float:
        if currency is self.target:
            return 1.0

        days = self._rates.get(currency, {})
        for offset in range(self.max_gap_days + 1):
            rate = days.get(on_date - timedelta(days=offset))
            if rate is not None:
                return rate
        raise RateNotFoundError(currency, on_date)

    def load_csv(self, path: Path) -> int:
        """Load `source,target,date,rate` rows; rows for another target are skipped."""
        if not path.exists():
            return 0

        loaded = 0
        with open(path, "r", encoding="utf-8", newline="") as f:
            for row in csv.reader(f):
                if len(row) != 4:
                    continue
                source, target, day, value = row
                if currency_from_code(target) is not self.target:
                    continue
                currency = currency_from_code(source)
                if currency is None:
                    logger.warning("Skipping rate for unknown currency", currency=source, path=str(path))
                    continue
                self.add(currency, date.fromisoformat(day), float(value))
                loaded += 1
        return loaded

    def save_csv(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8", newline="") as f:
            writer = csv.writer(f)
            for currency in sorted(self._rates, key=lambda c: c.name):
                for day in sorted(self._rates[currency]):
                    writer.writerow([
                        CURRENCY_TO_WIRE[currency],
                        CURRENCY_TO_WIRE[self.target],
                        day.isoformat(),
                        repr(self._rates[currency][day]),
                    ])


# Bank of Russia internal currency ids for XML_dynamic.asp
CBR_CODES = {
    Currency.USD: "R01235",
    Currency.EUR: "R01239",
    Currency.GBP: "R01035",
    Currency.KZT: "R01335",
    Currency.UAH: "R01720",
    Currency.BYN: "R01090B",
}


@exponential_backoff(max_retries=3, base_delay=1.0, exceptions=(requests.exceptions.Timeout, requests.exceptions.ConnectionError))
def _fetch_with_retry(url: str, params: dict):
    """Fetch URL with automatic retry on transient errors."""
    return requests.get(url, params=params, timeout=15)


def parse_cbr_records(xml: str) -> List[Tuple[date, float]]:
    """(date, RUB per one unit) pairs from an XML_dynamic response."""
    soup = BeautifulSoup(xml, "html.parser")
    result = []
    for record in soup.find_all("record"):
        value = record.find("value")
        if value is None or not record.get("date"):
            continue
        nominal = record.find("nominal")
        units = float(nominal.text.strip().replace(",", ".")) if nominal is not None else 1.0
        rub = float(value.text.strip().replace(",", "."))
        day = datetime.strptime(record["date"], "%d.%m.%Y").date()
        result.append((day, rub / units))
    return result


class CbrRateClient:
    """Historical rates from the Bank of Russia, cross-converted to the table's target."""

    def __init__(self, api_url: str):
        self.api_url = api_url

    def fetch(self, currency: Currency, start: date, end: date) -> Dict[date, float]:
        if currency is Currency.RUB:
            raise ValueError("RUB is the base currency of the feed")
        code = CBR_CODES.get(currency)
        if code is None:
            raise ValueError(f"No feed code for {currency.name}")

        params = {
            "date_req1": start.strftime("%d/%m/%Y"),
            "date_req2": end.strftime("%d/%m/%Y"),
            "VAL_NM_RQ": code,
        }
        logger.record_external_call()
        try:
            resp = _fetch_with_retry(self.api_url, params)
            resp.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else 0
            logger.record_error(f"HTTPError_{status}")
            if should_retry_http_status(status):
                logger.warning("Rate feed temporarily unavailable", currency=currency.name, status=status)
            else:
                logger.error("Rate feed request failed", currency=currency.name, status=status)
            raise
        except (RetryError, requests.exceptions.RequestException) as e:
            logger.record_error(type(e).__name__)
            logger.error("Rate feed request failed", currency=currency.name, error=str(e))
            raise
        return dict(parse_cbr_records(resp.text))

    def fill(self, table: RateTable, currencies: Iterable[Currency], start: date, end: Optional[date] = None) -> int:
        """Fetch rates for `currencies` into `table`; returns the number of rows added."""
        end = end or date.today()
        rub_per: Dict[Currency, Dict[date, float]] = {}

        wanted = set(currencies) | {table.target}
        for currency in sorted(wanted - {Currency.RUB}, key=lambda c: c.name):
            rub_per[currency] = self.fetch(currency, start, end)

        def rub_rate(currency: Currency, day: date) -> Optional[float]:
            if currency is Currency.RUB:
                return 1.0
            return rub_per.get(currency, {}).get(day)

        added = 0
        days = sorted({d for series in rub_per.values() for d in series})
        for currency in wanted - {table.target}:
            for day in days:
                source = rub_rate(currency, day)
                target = rub_rate(table.target, day)
                if source is None or target is None:
                    continue
                table.add(currency, day, source / target)
                added += 1

        logger.info("Rates loaded", target=table.target.name, rows=added)
        return added
