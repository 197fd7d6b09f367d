"""Layered similarity retrieval.

Index search first; if the index is unavailable or returns nothing, a bounded
brute-force cosine scan over a chunk sample; if that finds nothing usable
either, a plain text match. Optionally the hits are widened with sibling
chunks of the same documents.
"""

import math
import re

from pydantic import BaseModel

from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.clients.store.models.Chunk import ScoredChunk
from shared.helper.HelperConfig import HelperConfig
from shared.helper.similarity import cosine_similarity
from shared.models.errors import IndexUnavailableError

_TERM_RE = re.compile(r"\w+", re.UNICODE)


class IndexResult(BaseModel):
    hits: list[ScoredChunk]


class FallbackResult(BaseModel):
    reason: str


class RetrievalService:
    def __init__(self, helper_config: HelperConfig, store: StoreClientInterface):
        self.logging = helper_config.get_logger().child("retrieval")
        self._store = store
        self.sample_size = int(helper_config.get_number_val("RETRIEVAL_SAMPLE_SIZE", default=100))
        self.neighbors = int(helper_config.get_number_val("RETRIEVAL_NEIGHBORS", default=2))
        self.expansion_decay = float(helper_config.get_number_val("RETRIEVAL_EXPANSION_DECAY", default=0.05))
        self.text_score = float(helper_config.get_number_val("RETRIEVAL_TEXT_SCORE", default=0.1))

    ##########################################
    ################ SEARCH ##################
    ##########################################

    async def search(self, vector: list[float], query: str, k: int, expand: bool = False) -> list[ScoredChunk]:
        """Retrieve the k best chunks for a query vector.

        Args:
            vector (list[float]): Query embedding.
            query (str): Raw query text, used by the text fallback.
            k (int): Maximum number of results.
            expand (bool): Widen the result with sibling chunks of the best hits.

        Returns:
            list[ScoredChunk]: At most k chunks, best first. Empty for an empty store.
        """
        if k <= 0:
            return []

        seed_count = math.ceil(k / (1 + self.neighbors)) if expand and self.neighbors > 0 else k
        result = await self._search_index(vector, seed_count)
        if isinstance(result, IndexResult):
            hits = result.hits
        else:
            self.logging.info("Vector index not usable (%s). Falling back to brute-force scan.", result.reason)
            hits = await self._brute_force(vector, seed_count)

        if not hits:
            hits = await self._text_search(query, k)
            if hits:
                self.logging.info("Similarity search found nothing, %d text match(es) for '%s'.", len(hits), query[:50])

        if expand and hits:
            hits = await self._expand(hits, k)
        return hits[:k]

    async def _search_index(self, vector: list[float], k: int) -> IndexResult | FallbackResult:
        try:
            hits = await self._store.do_vector_search(vector, k)
        except IndexUnavailableError as exc:
            return FallbackResult(reason=exc.message)
        if not hits:
            return FallbackResult(reason="index returned no hits")
        return IndexResult(hits=hits)

    async def _brute_force(self, vector: list[float], k: int) -> list[ScoredChunk]:
        """Exact cosine ranking over a bounded sample of chunks."""
        sample = await self._store.do_sample_chunks(self.sample_size)
        scored: list[ScoredChunk] = []
        skipped = 0
        for candidate in sample:
            if len(candidate.chunk.embedding) != len(vector):
                skipped += 1
                continue
            score = cosine_similarity(vector, candidate.chunk.embedding)
            scored.append(candidate.model_copy(update={"score": score}))
        if skipped:
            self.logging.warning("Brute-force scan skipped %d chunk(s) with a different vector dimension.", skipped)
        scored.sort(key=lambda candidate: candidate.score, reverse=True)
        return scored[:k]

    async def _text_search(self, query: str, k: int) -> list[ScoredChunk]:
        terms = list(dict.fromkeys(term for term in _TERM_RE.findall(query.lower()) if len(term) > 1))
        if not terms:
            return []
        matches = await self._store.do_text_search(terms, k)
        return [match.model_copy(update={"score": self.text_score}) for match in matches]

    ##########################################
    ############## EXPANSION #################
    ##########################################

    async def _expand(self, seeds: list[ScoredChunk], k: int) -> list[ScoredChunk]:
        """Append sibling chunks of the seeds, deduplicated, with position-decayed scores.

        Seeds keep their order and scores. The candidate at merged position i gets
        max(0, 1 - i * expansion_decay).
        """
        siblings = await self._store.do_fetch_siblings([seed.chunk.id for seed in seeds], self.neighbors)
        merged = list(seeds)
        seen = {seed.chunk.id for seed in seeds}
        for seed in seeds:
            for sibling in siblings.get(seed.chunk.id, []):
                if sibling.chunk.id in seen:
                    continue
                seen.add(sibling.chunk.id)
                position = len(merged)
                merged.append(sibling.model_copy(update={"score": max(0.0, 1.0 - position * self.expansion_decay)}))
        return merged[:k]
