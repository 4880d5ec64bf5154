"""Shingling, MinHash, LSH banding and TF-IDF scoring."""
