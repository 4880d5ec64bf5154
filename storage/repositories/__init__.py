"""SQLAlchemy repositories converting rows to domain objects."""

from .ads import AdRepository
from .salaries import SalaryRepository
from .vectors import VectorRepository

__all__ = ["AdRepository", "SalaryRepository", "VectorRepository"]
