"""
Salary normalization to the reporting currency and a monthly period.

Responsibilities:
- Convert parsed bounds to MONTH with fixed multipliers.
- Convert currency through a RateProvider keyed by (currency, date).
- Drive the per-record state machine
  NOT_STARTED/FAILED -> IN_PROGRESS -> COMPLETED | FAILED.

Non-Responsibilities:
- No rate fetching (RateProvider collaborator).
- No position level classification.

Invariant:
Normalized fields are written together or not at all; the same input
with the same rate table always yields the same output.
"""

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from fractions import Fraction
from typing import Dict, Optional

from ..logger import get_logger
from ..models import Currency, Period, ProcessingStatus, SalaryRecord
from .parser import ParsedSalary, parse_salary
from .rates import RateNotFoundError, RateProvider

logger = get_logger()

# Multipliers to a monthly figure (168 working hours, 21 working days)
PERIOD_TO_MONTH: Dict[Period, Fraction] = {
    Period.HOUR: Fraction(168),
    Period.DAY: Fraction(21),
    Period.WEEK: Fraction(52, 12),
    Period.MONTH: Fraction(1),
    Period.YEAR: Fraction(1, 12),
}

UNPARSEABLE = "unparseable"
UNKNOWN_CURRENCY = "unknown_currency"
UNKNOWN_PERIOD = "unknown_period"
RATE_UNAVAILABLE = "rate_unavailable"


class NormalizationError(ValueError):
    """A salary that cannot be normalized; `reason` is stored on the record."""

    def __init__(self, reason: str, message: str = ""):
        super().__init__(message or reason)
        self.reason = reason


@dataclass(frozen=True)
class NormalizedSalary:
    lower: float
    upper: float
    currency: Currency
    period: Period = Period.MONTH


def round_money(value) -> float:
    """Round half-up to cents."""
    return float(Decimal(str(float(value))).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


class SalaryNormalizer:

    def __init__(
        self,
        reporting_currency: Currency,
        rates: Optional[RateProvider] = None,
        default_period: Optional[Period] = Period.MONTH,
    ):
        """
        Args:
            reporting_currency: Currency every normalized bound is expressed in
            rates: Rate lookup; required only for foreign-currency salaries
            default_period: Period assumed when the text states none
                (None makes a missing period a failure)
        """
        self.reporting_currency = reporting_currency
        self.rates = rates
        self.default_period = default_period

    def normalize(self, parsed: ParsedSalary, on_date: date) -> NormalizedSalary:
        lower, upper = parsed.lower_bound, parsed.upper_bound
        if lower is None and upper is None:
            raise NormalizationError(UNPARSEABLE, "Salary has no bounds")

        # Point estimate: a single bound stands for both
        if lower is None:
            lower = upper
        if upper is None:
            upper = lower
        if lower > upper:
            lower, upper = upper, lower

        period = parsed.period or self.default_period
        multiplier = PERIOD_TO_MONTH.get(period)
        if multiplier is None:
            raise NormalizationError(UNKNOWN_PERIOD, f"Cannot convert period {period} to MONTH")

        if parsed.currency is None:
            raise NormalizationError(UNKNOWN_CURRENCY, "Salary currency not recognized")

        rate = Fraction(1)
        if parsed.currency is not self.reporting_currency:
            if self.rates is None:
                raise NormalizationError(RATE_UNAVAILABLE, "No rate provider configured")
            try:
                rate = Fraction(self.rates.get_rate(parsed.currency, on_date))
            except RateNotFoundError as e:
                raise NormalizationError(RATE_UNAVAILABLE, str(e)) from e

        factor = multiplier * rate
        return NormalizedSalary(
            lower=round_money(Fraction(lower) * factor),
            upper=round_money(Fraction(upper) * factor),
            currency=self.reporting_currency,
        )

    def process(self, record: SalaryRecord, text: str, on_date: Optional[date] = None) -> SalaryRecord:
        """Parse and normalize `text` into `record`; the record ends COMPLETED or FAILED."""
        if record.status is ProcessingStatus.COMPLETED:
            return record
        return self.apply(record, parse_salary(text) if text else None, on_date)

    def apply(self, record: SalaryRecord, parsed: Optional[ParsedSalary], on_date: Optional[date] = None) -> SalaryRecord:
        """Normalize an already parsed salary into `record` (None means unparseable)."""
        if record.status is ProcessingStatus.COMPLETED:
            return record

        on_date = on_date or record.date
        record.status = ProcessingStatus.IN_PROGRESS

        if parsed is None:
            return self._fail(record, UNPARSEABLE)

        record.lower_bound = parsed.lower_bound
        record.upper_bound = parsed.upper_bound
        record.currency = parsed.currency
        record.period = parsed.period

        try:
            result = self.normalize(parsed, on_date)
        except NormalizationError as e:
            logger.debug("Salary normalization failed", ad_id=record.ad_id, reason=e.reason)
            return self._fail(record, e.reason)

        record.lower_bound_normalized = result.lower
        record.upper_bound_normalized = result.upper
        record.currency_normalized = result.currency
        record.failure_reason = None
        record.status = ProcessingStatus.COMPLETED
        return record

    @staticmethod
    def _fail(record: SalaryRecord, reason: str) -> SalaryRecord:
        record.lower_bound_normalized = None
        record.upper_bound_normalized = None
        record.currency_normalized = None
        record.failure_reason = reason
        record.status = ProcessingStatus.FAILED
        return record
