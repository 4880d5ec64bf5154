"""
Tests for salary parsing, exchange rates and normalization.
"""

import pytest
from datetime import date

from tgjobads.models import Currency, Period, ProcessingStatus, SalaryRecord
from tgjobads.salaries.normalizer import (
    RATE_UNAVAILABLE,
    UNKNOWN_CURRENCY,
    UNKNOWN_PERIOD,
    UNPARSEABLE,
    NormalizationError,
    SalaryNormalizer,
    round_money,
)
from tgjobads.salaries.parser import (
    ParsedSalary,
    detect_currency,
    detect_period,
    find_salary_fragment,
    parse_salary,
)
from tgjobads.salaries.rates import CbrRateClient, RateNotFoundError, RateTable, parse_cbr_records

from conftest import BASE_AD_TEXT, OTHER_AD_TEXT, THIRD_AD_TEXT

DAY = date(2025, 3, 3)

CBR_XML = (
    '<?xml version="1.0" encoding="windows-1251"?>'
    '<ValCurs ID="R01335" DateRange1="01.03.2025" DateRange2="04.03.2025" name="Foreign Currency Market Dynamic">'
    '<Record Date="01.03.2025" Id="R01335"><Nominal>100</Nominal><Value>17,8012</Value></Record>'
    '<Record Date="04.03.2025" Id="R01335"><Nominal>100</Nominal><Value>17,9500</Value></Record>'
    '</ValCurs>'
)


@pytest.fixture
def rates():
    table = RateTable(Currency.USD)
    table.add(Currency.EUR, date(2025, 3, 1), 1.1)
    table.add(Currency.KZT, date(2025, 3, 1), 0.002)
    return table


@pytest.fixture
def normalizer(rates):
    return SalaryNormalizer(Currency.USD, rates)


class TestParseSalary:
    """Test free-text salary parsing."""

    def test_dollar_range_per_year(self):
        parsed = parse_salary("$80,000–$100,000/year")
        assert parsed == ParsedSalary(80000, 100000, Currency.USD, Period.YEAR)

    def test_russian_from_with_thousands(self):
        parsed = parse_salary("от 150 тыс. руб. в месяц")
        assert parsed == ParsedSalary(150000, None, Currency.RUB, Period.MONTH)

    def test_from_to(self):
        parsed = parse_salary("от 80 000 до 100 000 рублей")
        assert parsed.lower_bound == 80000
        assert parsed.upper_bound == 100000
        assert parsed.currency is Currency.RUB
        assert parsed.period is None

    def test_shared_k_suffix(self):
        """'80-100k' applies the multiplier to both bounds."""
        parsed = parse_salary("80-100k €")
        assert (parsed.lower_bound, parsed.upper_bound) == (80000, 100000)
        assert parsed.currency is Currency.EUR

    def test_up_to(self):
        parsed = parse_salary("up to 5000 EUR per month")
        assert parsed == ParsedSalary(None, 5000, Currency.EUR, Period.MONTH)

    def test_belarusian_rubles_are_not_russian(self):
        assert parse_salary("2000 бел.руб в месяц") == ParsedSalary(2000, None, Currency.BYN, Period.MONTH)
        assert parse_salary("от 1500 белорусских рублей").currency is Currency.BYN
        assert parse_salary("от 1500 рублей").currency is Currency.RUB

    def test_single_amount_prefers_currency_sign(self):
        parsed = parse_salary(THIRD_AD_TEXT)
        assert parsed == ParsedSalary(35, None, Currency.USD, Period.HOUR)

    def test_no_amount(self):
        assert parse_salary("competitive salary") is None
        assert parse_salary("") is None

    def test_detectors(self):
        assert detect_currency("300000 тенге") is Currency.KZT
        assert detect_currency("5000") is None
        assert detect_period("$50 per day") is Period.DAY
        assert detect_period("fixed price 500$") is Period.PROJECT
        assert detect_period("5000$") is None


class TestFindSalaryFragment:
    """Test locating the salary line of an ad."""

    def test_picks_salary_line(self):
        text = "Python developer\nTeam of 5\nSalary: 3000-4000 USD\n#middle"
        assert find_salary_fragment(text) == "Salary: 3000-4000 USD"

    def test_no_salary(self):
        assert find_salary_fragment("Python developer\nTeam of 5") is None

    def test_fixture_ads(self):
        assert parse_salary(find_salary_fragment(BASE_AD_TEXT)) == ParsedSalary(
            4000, 5500, Currency.USD, Period.MONTH
        )
        assert parse_salary(find_salary_fragment(OTHER_AD_TEXT)) == ParsedSalary(
            300000, None, Currency.KZT, Period.MONTH
        )


class TestRateTable:
    """Test rate lookups and the CSV cache."""

    def test_reporting_currency_is_one(self, rates):
        assert rates.get_rate(Currency.USD, DAY) == 1.0

    def test_nearest_earlier_day(self, rates):
        assert rates.get_rate(Currency.EUR, date(2025, 3, 8)) == 1.1

    def test_gap_too_large(self, rates):
        with pytest.raises(RateNotFoundError):
            rates.get_rate(Currency.EUR, date(2025, 3, 9))

    def test_no_later_rates_used(self, rates):
        with pytest.raises(RateNotFoundError):
            rates.get_rate(Currency.EUR, date(2025, 2, 28))

    def test_rejects_non_positive(self, rates):
        with pytest.raises(ValueError):
            rates.add(Currency.EUR, DAY, 0)

    def test_csv_cache(self, rates, tmp_path):
        path = tmp_path / "cache" / "rates.csv"
        rates.save_csv(path)

        restored = RateTable(Currency.USD)
        assert restored.load_csv(path) == 2
        assert restored.get_rate(Currency.KZT, DAY) == 0.002

        # Rows for another reporting currency are ignored
        assert RateTable(Currency.EUR).load_csv(path) == 0

    def test_missing_cache(self, tmp_path):
        assert RateTable().load_csv(tmp_path / "missing.csv") == 0


class TestCbrFeed:
    """Test the Bank of Russia feed parsing and cross rates."""

    def test_parse_records(self):
        records = parse_cbr_records(CBR_XML)
        assert [d for d, _ in records] == [date(2025, 3, 1), date(2025, 3, 4)]
        assert records[0][1] == pytest.approx(0.178012)

    def test_fill_cross_rates(self, monkeypatch):
        """Rates are converted through RUB into the reporting currency."""
        series = {
            Currency.USD: {date(2025, 3, 1): 90.0},
            Currency.EUR: {date(2025, 3, 1): 99.0},
        }
        client = CbrRateClient("http://rates.invalid")
        monkeypatch.setattr(client, "fetch", lambda currency, start, end: series[currency])

        table = RateTable(Currency.USD)
        added = client.fill(table, [Currency.EUR, Currency.RUB], date(2025, 3, 1), date(2025, 3, 1))

        assert added == 2
        assert table.get_rate(Currency.EUR, date(2025, 3, 1)) == pytest.approx(1.1)
        assert table.get_rate(Currency.RUB, date(2025, 3, 1)) == pytest.approx(1 / 90)

    def test_rub_is_not_fetched(self):
        with pytest.raises(ValueError):
            CbrRateClient("http://rates.invalid").fetch(Currency.RUB, DAY, DAY)


class TestSalaryNormalizer:
    """Test conversion to a monthly reporting-currency figure."""

    def test_year_to_month(self, normalizer):
        result = normalizer.normalize(parse_salary("$80,000–$100,000/year"), DAY)
        assert (result.lower, result.upper) == (6666.67, 8333.33)
        assert result.currency is Currency.USD
        assert result.period is Period.MONTH

    def test_hour_and_week(self, normalizer):
        hourly = normalizer.normalize(ParsedSalary(35, None, Currency.USD, Period.HOUR), DAY)
        weekly = normalizer.normalize(ParsedSalary(1200, 1200, Currency.USD, Period.WEEK), DAY)
        assert (hourly.lower, hourly.upper) == (5880.0, 5880.0)
        assert weekly.lower == 5200.0

    def test_currency_conversion(self, normalizer):
        result = normalizer.normalize(ParsedSalary(1000, 2000, Currency.EUR, Period.MONTH), DAY)
        assert (result.lower, result.upper) == (1100.0, 2200.0)

    def test_swapped_bounds(self, normalizer):
        result = normalizer.normalize(ParsedSalary(5000, 4000, Currency.USD, Period.MONTH), DAY)
        assert (result.lower, result.upper) == (4000.0, 5000.0)

    def test_missing_period_defaults_to_month(self, normalizer):
        result = normalizer.normalize(ParsedSalary(3000, None, Currency.USD, None), DAY)
        assert result.lower == result.upper == 3000.0

    @pytest.mark.parametrize("parsed,reason", [
        (ParsedSalary(None, None, Currency.USD, Period.MONTH), UNPARSEABLE),
        (ParsedSalary(1000, None, None, Period.MONTH), UNKNOWN_CURRENCY),
        (ParsedSalary(1000, None, Currency.USD, Period.PROJECT), UNKNOWN_PERIOD),
        (ParsedSalary(1000, None, Currency.GBP, Period.MONTH), RATE_UNAVAILABLE),
    ])
    def test_failures(self, normalizer, parsed, reason):
        with pytest.raises(NormalizationError) as exc_info:
            normalizer.normalize(parsed, DAY)
        assert exc_info.value.reason == reason

    def test_no_default_period(self, rates):
        strict = SalaryNormalizer(Currency.USD, rates, default_period=None)
        with pytest.raises(NormalizationError) as exc_info:
            strict.normalize(ParsedSalary(1000, None, Currency.USD, None), DAY)
        assert exc_info.value.reason == UNKNOWN_PERIOD

    def test_round_half_up(self):
        assert round_money(2.675) == 2.68
        assert round_money(0.125) == 0.13


class TestSalaryRecordStates:
    """Test the record state machine."""

    def test_completed(self, normalizer):
        record = SalaryRecord(ad_id="ad-1", date=DAY)
        normalizer.process(record, "$80,000–$100,000/year")

        assert record.status is ProcessingStatus.COMPLETED
        assert record.lower_bound == 80000
        assert record.period is Period.YEAR
        assert (record.lower_bound_normalized, record.upper_bound_normalized) == (6666.67, 8333.33)
        assert record.currency_normalized is Currency.USD
        assert record.failure_reason is None

    def test_completed_is_idempotent(self, normalizer):
        """A completed record is not touched again."""
        record = SalaryRecord(ad_id="ad-1", date=DAY)
        normalizer.process(record, "$80,000–$100,000/year")
        snapshot = SalaryRecord(**vars(record))

        normalizer.process(record, "$1–$2/hour")
        assert record == snapshot

    def test_missing_rate_fails_then_recovers(self, rates):
        normalizer = SalaryNormalizer(Currency.USD, rates)
        record = SalaryRecord(ad_id="ad-1", date=DAY)

        normalizer.process(record, "£3000 per month")
        assert record.status is ProcessingStatus.FAILED
        assert record.failure_reason == RATE_UNAVAILABLE
        assert record.lower_bound == 3000
        assert record.lower_bound_normalized is None
        assert record.currency_normalized is None

        rates.add(Currency.GBP, date(2025, 3, 1), 1.25)
        normalizer.process(record, "£3000 per month")
        assert record.status is ProcessingStatus.COMPLETED
        assert record.lower_bound_normalized == 3750.0

    def test_unparseable(self, normalizer):
        record = SalaryRecord(ad_id="ad-1", date=DAY)
        normalizer.process(record, "")
        assert record.status is ProcessingStatus.FAILED
        assert record.failure_reason == UNPARSEABLE
