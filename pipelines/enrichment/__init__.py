"""Salary normalization and position level classification stages."""
