"""Re-vectorization and re-clustering after a model version change."""
