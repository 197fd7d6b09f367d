import asyncio

import httpx
import pytest

from services.document_cache.ContentChunker import compute_document_id
from services.document_cache.DocumentCacheService import CONTEXT_SEPARATOR
from shared.models.document import DocumentInput, IngestStatus
from shared.models.errors import (
    DimensionMismatchError,
    EmptyDocumentError,
    ErrorKind,
    OperationTimeoutError,
)
from shared.models.search import SubQuery
from tests.conftest import DIMENSIONS


async def test_ingest_creates_then_skips_unchanged(cache_service, fake_ollama):
    created = await cache_service.ingest_document(DocumentInput(name="a.md", content="# Title\n\nHello world."))
    assert created.status == IngestStatus.CREATED
    assert created.chunk_count == 1
    assert created.document_id == compute_document_id("a.md")
    calls = fake_ollama.embed_calls

    again = await cache_service.ingest_document(DocumentInput(name="a.md", content="# Title\n\nHello world."))
    assert again.status == IngestStatus.UNCHANGED
    assert fake_ollama.embed_calls == calls
    stats = await cache_service.stats()
    assert (stats.document_count, stats.chunk_count) == (1, 1)


async def test_ingest_pins_the_collection(cache_service):
    await cache_service.ingest_document(DocumentInput(name="a.md", content="alpha beta"))
    stats = await cache_service.stats()
    assert stats.index.dimensions == DIMENSIONS
    assert (stats.index.provider, stats.index.model) == ("ollama", "nomic-embed-text")
    assert stats.embedding["configured"] == ["ollama"]


async def test_update_replaces_all_chunks(cache_service):
    long_text = "alpha beta gamma delta. " * 400
    first = await cache_service.ingest_document(DocumentInput(name="notes.txt", content=long_text))
    assert first.chunk_count > 1

    updated = await cache_service.ingest_document(DocumentInput(name="notes.txt", content="graph vector"))
    assert updated.status == IngestStatus.UPDATED
    assert updated.chunk_count == 1
    stats = await cache_service.stats()
    assert stats.chunk_count == 1
    hits = await cache_service.search("alpha", limit=10)
    assert all("alpha" not in hit.chunk_text for hit in hits)


async def test_same_content_under_another_name_is_a_duplicate(cache_service, fake_ollama):
    original = await cache_service.ingest_document(DocumentInput(name="a.md", content="graph cache"))
    calls = fake_ollama.embed_calls
    duplicate = await cache_service.ingest_document(DocumentInput(name="copy-of-a.md", content="graph cache"))
    assert duplicate.status == IngestStatus.DUPLICATE
    assert duplicate.duplicate_of == original.document_id
    assert fake_ollama.embed_calls == calls
    assert (await cache_service.stats()).document_count == 1


async def test_update_to_content_stored_elsewhere_removes_previous_version(cache_service, fake_ollama):
    await cache_service.ingest_document(DocumentInput(name="a.md", content="alpha"))
    other = await cache_service.ingest_document(DocumentInput(name="b.md", content="beta"))
    calls = fake_ollama.embed_calls

    result = await cache_service.ingest_document(DocumentInput(name="a.md", content="beta"))
    assert result.status == IngestStatus.DUPLICATE
    assert result.duplicate_of == other.document_id
    assert fake_ollama.embed_calls == calls
    stats = await cache_service.stats()
    assert (stats.document_count, stats.chunk_count) == (1, 1)
    hits = await cache_service.search("alpha", limit=10)
    assert all("alpha" not in hit.chunk_text for hit in hits)


async def test_empty_document_fails_before_embedding(cache_service, fake_ollama):
    with pytest.raises(EmptyDocumentError):
        await cache_service.ingest_document(DocumentInput(name="empty.md", content="  \n "))
    assert fake_ollama.embed_calls == 0


async def test_chunk_metadata_carries_provenance(cache_service, context):
    await cache_service.ingest_document(
        DocumentInput(name="a.md", content="hello world", metadata={"lang": "en"}, source="api_upload")
    )
    chunk = (await context.store.do_sample_chunks(limit=1))[0].chunk
    assert chunk.metadata == {
        "lang": "en",
        "chunkIndex": 0,
        "source": "api_upload",
        "embeddingProvider": "ollama",
        "embeddingModel": "nomic-embed-text",
    }


async def test_search_returns_best_hit_with_document(cache_service):
    await cache_service.ingest_document(DocumentInput(name="greeting.md", content="hello world", metadata={"k": "v"}))
    await cache_service.ingest_document(DocumentInput(name="graphs.md", content="graph vector cache"))
    hits = await cache_service.search("hello", limit=1)
    assert len(hits) == 1
    assert hits[0].document_name == "greeting.md"
    assert hits[0].document_metadata == {"k": "v"}
    assert hits[0].chunk_id == f"{compute_document_id('greeting.md')}_chunk_0"
    assert hits[0].score > 0


async def test_search_on_empty_cache_and_blank_query(cache_service, fake_ollama):
    assert await cache_service.search("hello") == []
    assert await cache_service.search("   ") == []
    assert fake_ollama.inputs == ["hello"]


async def test_search_timeout(cache_service, context, monkeypatch):
    async def slow_embed(text, provider=None):
        await asyncio.sleep(1)
        return [0.0] * DIMENSIONS

    monkeypatch.setattr(context.embed_manager, "do_embed_query", slow_embed)
    with pytest.raises(OperationTimeoutError):
        await cache_service.search("hello", timeout=0.05)


async def test_query_with_other_dimension_is_rejected(cache_service, fake_ollama):
    await cache_service.ingest_document(DocumentInput(name="a.md", content="hello world"))
    fake_ollama.dimensions = 5
    with pytest.raises(DimensionMismatchError):
        await cache_service.search("graph")


async def test_search_with_context_formats_sources(cache_service):
    await cache_service.ingest_document(DocumentInput(name="one.md", content="hello world"))
    await cache_service.ingest_document(DocumentInput(name="two.md", content="hello python"))
    result = await cache_service.search_with_context("hello", limit=2)
    assert result.total_documents == 2
    assert len(result.sources) == 2
    blocks = result.context.split(CONTEXT_SEPARATOR)
    assert blocks[0] == f"[Source 1: {result.sources[0].document_name}]\n{result.sources[0].chunk_text}"
    assert blocks[1].startswith("[Source 2: ")
    average = sum(hit.score for hit in result.sources) / 2
    assert result.confidence_score == pytest.approx(average * 100)
    assert 0 <= result.confidence_score <= 100


async def test_search_with_context_without_hits(cache_service):
    result = await cache_service.search_with_context("hello")
    assert (result.context, result.sources, result.confidence_score) == ("", [], 0.0)


async def test_fan_out_deduplicates_and_labels(cache_service):
    await cache_service.ingest_document(DocumentInput(name="ab.md", content="alpha beta"))
    await cache_service.ingest_document(DocumentInput(name="ag.md", content="alpha gamma"))
    result = await cache_service.search_many([
        SubQuery(query="alpha", label="first", limit=5),
        SubQuery(query="gamma", label="second", limit=5),
    ])
    ids = [hit.chunk_id for hit in result.hits]
    assert len(ids) == len(set(ids)) == 2
    assert {hit.query_label for hit in result.hits} == {"first"}
    assert result.labels_covered == ["first", "second"]
    assert result.failed == {}


async def test_fan_out_isolates_failing_sub_query(cache_service, fake_ollama):
    await cache_service.ingest_document(DocumentInput(name="ab.md", content="alpha beta"))
    fake_ollama.failures["broken"] = httpx.Response(400, json={"error": "invalid input"})
    result = await cache_service.search_many([
        SubQuery(query="broken", label="bad"),
        SubQuery(query="alpha", label="good"),
    ])
    assert [hit.query_label for hit in result.hits] == ["good"]
    assert result.failed["bad"].kind == ErrorKind.EMBEDDING_PROVIDER
    assert result.labels_covered == ["good"]


async def test_remove_document(cache_service):
    created = await cache_service.ingest_document(DocumentInput(name="a.md", content="hello world"))
    assert await cache_service.remove_document(created.document_id) is True
    assert await cache_service.remove_document(created.document_id) is False
    stats = await cache_service.stats()
    assert (stats.document_count, stats.chunk_count) == (0, 0)


async def test_clear_resets_pin_and_query_cache(cache_service, context):
    await cache_service.ingest_document(DocumentInput(name="a.md", content="hello world"))
    await cache_service.search("hello")
    assert len(context.embed_manager.query_cache) == 1
    await cache_service.clear()
    stats = await cache_service.stats()
    assert (stats.document_count, stats.chunk_count, stats.index) == (0, 0, None)
    assert len(context.embed_manager.query_cache) == 0


async def test_health_check(cache_service):
    health = await cache_service.health_check()
    assert health.healthy is True
    assert health.store is True
    assert health.providers == {"ollama": True}


async def test_health_check_with_unreachable_provider(cache_service, fake_ollama, context):
    for client in context.embed_manager.get_clients():
        await client.close()
        await client.boot(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
    health = await cache_service.health_check()
    assert health.healthy is False
    assert health.providers == {"ollama": False}
