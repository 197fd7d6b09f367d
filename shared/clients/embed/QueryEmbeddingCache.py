"""Bounded LRU cache for query embeddings."""

from collections import OrderedDict


class QueryEmbeddingCache:
    """LRU cache of query vectors keyed by (provider, query text).

    Only read-path (query) embeddings are cached. get() and put() never await,
    so the size check and the insert can not interleave with other tasks.
    """

    def __init__(self, max_size: int = 100):
        self.max_size = max(0, int(max_size))
        self._entries: OrderedDict[tuple[str, str], list[float]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, provider: str, text: str) -> list[float] | None:
        key = (provider, text)
        vector = self._entries.get(key)
        if vector is None:
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return vector

    def put(self, provider: str, text: str, vector: list[float]) -> None:
        if self.max_size == 0:
            return
        key = (provider, text)
        self._entries[key] = vector
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
