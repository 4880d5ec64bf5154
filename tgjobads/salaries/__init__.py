"""Salary parsing, exchange rates and normalization."""

from .normalizer import NormalizationError, NormalizedSalary, SalaryNormalizer
from .parser import ParsedSalary, parse_salary
from .rates import CbrRateClient, RateNotFoundError, RateProvider, RateTable

__all__ = [
    "CbrRateClient",
    "NormalizationError",
    "NormalizedSalary",
    "ParsedSalary",
    "RateNotFoundError",
    "RateProvider",
    "RateTable",
    "SalaryNormalizer",
    "parse_salary",
]
