"""
TF-IDF term weighting used as an internal scoring signal.

Responsibilities:
- Accumulate corpus document frequencies (parallel per-shard partial
  counts, merged additively).
- Score an ad by its TF-IDF-weighted term-count total (content richness),
  used to break ties when electing a canonical stack member.
- Provide cosine similarity of TF-IDF vectors as a refinement signal.

Non-Responsibilities:
- No clustering decisions; scores are never persisted.

Invariant:
idf(t) = ln(N / df(t)). Weights drift with the corpus; `needs_refit`
reports when the corpus size moved beyond the configured drift.
"""

from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np
from sklearn.feature_extraction.text import CountVectorizer


def build_analyzer() -> Callable[[str], List[str]]:
    """Unicode word tokenizer shared by fitting and scoring."""
    return CountVectorizer(lowercase=True, token_pattern=r"(?u)\b\w\w+\b").build_analyzer()


class TfidfScorer:

    def __init__(self, vocabulary_size: int = 1_000_000, drift: float = 0.1):
        if vocabulary_size <= 0:
            raise ValueError("vocabulary_size must be positive")
        self.vocabulary_size = vocabulary_size
        self.drift = drift
        self._analyzer = build_analyzer()
        self.corpus_size = 0
        self.idf: Dict[str, float] = {}

    @property
    def is_fitted(self) -> bool:
        return self.corpus_size > 0

    def _document_frequencies(self, texts: Sequence[str]) -> Counter:
        df: Counter = Counter()
        for text in texts:
            df.update(set(self._analyzer(text)))
        return df

    def fit(self, texts: Sequence[str], workers: int = 1, shards: Optional[int] = None) -> "TfidfScorer":
        """Recompute idf over the whole corpus."""
        texts = list(texts)
        shard_count = max(1, shards or workers)
        shard_size = max(1, -(-len(texts) // shard_count))
        chunks = [texts[i:i + shard_size] for i in range(0, len(texts), shard_size)]

        total: Counter = Counter()
        if workers > 1 and len(chunks) > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                for partial in executor.map(self._document_frequencies, chunks):
                    total.update(partial)
        else:
            for chunk in chunks:
                total.update(self._document_frequencies(chunk))

        self.corpus_size = len(texts)
        if not total or self.corpus_size == 0:
            self.idf = {}
            return self

        # Ties on df are broken by term so the vocabulary is deterministic
        ranked = sorted(total.items(), key=lambda item: (-item[1], item[0]))[: self.vocabulary_size]
        terms = [t for t, _ in ranked]
        df = np.array([c for _, c in ranked], dtype=np.float64)
        weights = np.log(self.corpus_size / df)
        self.idf = dict(zip(terms, weights.tolist()))
        return self

    def needs_refit(self, corpus_size: int) -> bool:
        if not self.is_fitted:
            return corpus_size > 0
        return abs(corpus_size - self.corpus_size) > self.drift * self.corpus_size

    def term_frequencies(self, text: str) -> Counter:
        return Counter(self._analyzer(text))

    def weights(self, text: str) -> Dict[str, float]:
        tf = self.term_frequencies(text)
        return {t: count * self.idf[t] for t, count in tf.items() if t in self.idf}

    def score(self, text: str) -> float:
        """Sum of tf * idf over the ad's terms."""
        return float(sum(self.weights(text).values()))

    def similarity(self, a: str, b: str) -> float:
        """Cosine similarity of the two TF-IDF vectors; 0.0 if either is empty."""
        wa = self.weights(a)
        wb = self.weights(b)
        if not wa or not wb:
            return 0.0
        terms = sorted(set(wa) | set(wb))
        va = np.array([wa.get(t, 0.0) for t in terms])
        vb = np.array([wb.get(t, 0.0) for t in terms])
        norm = np.linalg.norm(va) * np.linalg.norm(vb)
        if norm == 0:
            return 0.0
        return float(np.dot(va, vb) / norm)
