"""Position level classifiers."""

from .resolver import RuleBasedClassifier, resolve_from_tags

__all__ = ["RuleBasedClassifier", "resolve_from_tags"]
