import pytest

from services.document_cache.RetrievalService import RetrievalService
from shared.clients.store.memory.StoreClientMemory import StoreClientMemory
from shared.clients.store.models.Chunk import ChunkOrigin, StoredChunk, make_chunk_id
from shared.clients.store.models.Document import StoredDocument
from shared.clients.store.models.Stats import IndexInfo
from shared.helper.similarity import cosine_similarity

VECTORS = {
    "north": [1.0, 0.0, 0.0],
    "east": [0.0, 1.0, 0.0],
    "up": [0.0, 0.0, 1.0],
    "north east": [0.7, 0.7, 0.0],
}


async def build_store(helper_config, documents: dict[str, list[str]]) -> StoreClientMemory:
    store = StoreClientMemory(helper_config=helper_config)
    await store.boot()
    await store.do_initialize(IndexInfo(dimensions=3, provider="ollama", model="nomic-embed-text"))
    for document_id, contents in documents.items():
        document = StoredDocument(
            id=document_id, name=f"{document_id}.md", content_hash=f"hash-{document_id}",
            uploaded_at="2026-01-01T00:00:00+00:00",
        )
        chunks = [
            StoredChunk(
                id=make_chunk_id(document_id, i), document_id=document_id, content=content,
                index=i, size=len(content), embedding=VECTORS[content],
            )
            for i, content in enumerate(contents)
        ]
        await store.do_replace_chunks(document_id, chunks, document=document)
    return store


def test_cosine_similarity_edge_cases():
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([], []) == 0.0
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0
    assert cosine_similarity([1.0], [1.0, 0.0]) == 0.0


async def test_empty_store_returns_nothing(helper_config):
    store = await build_store(helper_config, {})
    retrieval = RetrievalService(helper_config=helper_config, store=store)
    assert await retrieval.search([1.0, 0.0, 0.0], "north", k=5) == []


async def test_index_path_ranks_by_similarity(helper_config):
    store = await build_store(helper_config, {"a": ["north", "east"], "b": ["north east"]})
    retrieval = RetrievalService(helper_config=helper_config, store=store)
    hits = await retrieval.search([1.0, 0.0, 0.0], "north", k=2)
    assert [hit.chunk.content for hit in hits] == ["north", "north east"]
    assert all(hit.origin == ChunkOrigin.INDEX for hit in hits)
    assert hits[0].score >= hits[1].score


async def test_brute_force_matches_index_top_hit(helper_config, env):
    documents = {"a": ["north", "east", "up"], "b": ["north east"]}
    indexed = RetrievalService(helper_config=helper_config, store=await build_store(helper_config, documents))
    env.setenv("STORE_MEMORY_VECTOR_INDEX", "false")
    scanned = RetrievalService(helper_config=helper_config, store=await build_store(helper_config, documents))
    for query in ([0.9, 0.1, 0.0], [0.1, 0.9, 0.0], [0.0, 0.2, 0.9]):
        index_hits = await indexed.search(query, "", k=1)
        scan_hits = await scanned.search(query, "", k=1)
        assert scan_hits[0].chunk.id == index_hits[0].chunk.id
        assert scan_hits[0].origin == ChunkOrigin.BRUTE_FORCE


async def test_brute_force_skips_other_dimensions(helper_config, env):
    env.setenv("STORE_MEMORY_VECTOR_INDEX", "false")
    store = await build_store(helper_config, {"a": ["north"]})
    retrieval = RetrievalService(helper_config=helper_config, store=store)
    assert await retrieval._brute_force([1.0, 0.0], k=3) == []


async def test_text_fallback_when_similarity_finds_nothing(helper_config, env):
    env.setenv("STORE_MEMORY_VECTOR_INDEX", "false")
    store = await build_store(helper_config, {"a": ["north", "east"]})
    retrieval = RetrievalService(helper_config=helper_config, store=store)
    # no chunk has a vector of this length, so similarity yields nothing
    hits = await retrieval.search([1.0, 0.0], "EAST wind", k=5)
    assert [hit.chunk.content for hit in hits] == ["east"]
    assert hits[0].origin == ChunkOrigin.TEXT
    assert hits[0].score == pytest.approx(0.1)


async def test_text_fallback_ignores_single_letter_terms(helper_config, env):
    env.setenv("STORE_MEMORY_VECTOR_INDEX", "false")
    store = await build_store(helper_config, {"a": ["north"]})
    retrieval = RetrievalService(helper_config=helper_config, store=store)
    assert await retrieval.search([1.0], "n o", k=5) == []


async def test_expansion_adds_siblings_with_decayed_scores(helper_config):
    store = await build_store(helper_config, {"a": ["east", "north", "up"], "b": ["north east"]})
    retrieval = RetrievalService(helper_config=helper_config, store=store)
    hits = await retrieval.search([1.0, 0.0, 0.0], "north", k=3, expand=True)
    assert hits[0].chunk.content == "north"
    assert hits[0].score == pytest.approx(1.0)
    assert [hit.chunk.index for hit in hits[1:]] == [0, 2]
    assert [hit.origin for hit in hits[1:]] == [ChunkOrigin.EXPANSION, ChunkOrigin.EXPANSION]
    assert [hit.score for hit in hits[1:]] == [pytest.approx(0.95), pytest.approx(0.9)]


async def test_expansion_never_duplicates_chunks(helper_config, env):
    env.setenv("RETRIEVAL_NEIGHBORS", "1")
    store = await build_store(helper_config, {"a": ["north", "north east"]})
    retrieval = RetrievalService(helper_config=helper_config, store=store)
    hits = await retrieval.search([1.0, 0.1, 0.0], "north", k=4, expand=True)
    ids = [hit.chunk.id for hit in hits]
    assert len(ids) == len(set(ids)) == 2


async def test_results_are_truncated_to_k(helper_config):
    store = await build_store(helper_config, {"a": ["north", "east", "up"], "b": ["north east"]})
    retrieval = RetrievalService(helper_config=helper_config, store=store)
    assert len(await retrieval.search([0.5, 0.5, 0.5], "", k=2)) == 2
    assert await retrieval.search([0.5, 0.5, 0.5], "", k=0) == []
