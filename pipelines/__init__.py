"""Batch pipeline stages."""
