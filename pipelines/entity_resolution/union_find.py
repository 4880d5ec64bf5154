"""
Disjoint-set arena over dense integer indices.

Parent and rank live in two parallel lists; items never hold references
to each other. All mutation goes through `add`, `union` and `find`, which
are serialized by one lock.
"""

import threading
from typing import Dict, List


class UnionFind:

    def __init__(self):
        self._parent: List[int] = []
        self._rank: List[int] = []
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._parent)

    def add(self) -> int:
        with self._lock:
            index = len(self._parent)
            self._parent.append(index)
            self._rank.append(0)
            return index

    def find(self, index: int) -> int:
        with self._lock:
            root = index
            while self._parent[root] != root:
                root = self._parent[root]
            # Path compression
            while self._parent[index] != root:
                self._parent[index], index = root, self._parent[index]
            return root

    def union(self, a: int, b: int) -> int:
        """Merge the sets of a and b; returns the new root."""
        with self._lock:
            ra, rb = self.find(a), self.find(b)
            if ra == rb:
                return ra
            if self._rank[ra] < self._rank[rb]:
                ra, rb = rb, ra
            self._parent[rb] = ra
            if self._rank[ra] == self._rank[rb]:
                self._rank[ra] += 1
            return ra

    def components(self) -> Dict[int, List[int]]:
        """Root -> member indices, members in ascending order."""
        with self._lock:
            groups: Dict[int, List[int]] = {}
            for index in range(len(self._parent)):
                groups.setdefault(self.find(index), []).append(index)
            return groups
