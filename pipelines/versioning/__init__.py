"""Model version tracking."""
