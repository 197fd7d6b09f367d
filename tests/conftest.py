import asyncio
import io
import json
import logging
import os
import re
import zipfile

os.environ.setdefault("LOG_TO_FILE", "false")

import httpx
import pytest

from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import ColorLogger
from services.document_cache.CacheContext import CacheContext
from services.document_cache.DocumentCacheService import DocumentCacheService

ENV_PREFIXES = ("EMBED_", "STORE_", "CHUNKER_", "RETRIEVAL_", "SYNC_", "API_SERVER_")

VOCABULARY = [
    "hello", "world", "title", "updated",
    "alpha", "beta", "gamma", "delta",
    "graph", "vector", "cache", "python",
]
DIMENSIONS = len(VOCABULARY) + 1


def fake_vector(text: str) -> list[float]:
    """Bag-of-words embedding over a fixed vocabulary plus a small bias component."""
    words = re.findall(r"\w+", text.lower())
    vector = [float(words.count(term)) for term in VOCABULARY]
    vector.append(0.01)
    return vector


class FakeOllama:
    """httpx.MockTransport handler emulating the Ollama endpoints used by the cache."""

    def __init__(self, dimensions: int = DIMENSIONS):
        self.dimensions = dimensions
        self.embed_calls = 0
        self.inputs: list[str] = []
        self.scripted: list[httpx.Response | Exception] = []
        self.failures: dict[str, httpx.Response] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/api/embed":
            self.embed_calls += 1
            body = json.loads(request.content)
            self.inputs.append(body["input"])
            if body["input"] in self.failures:
                return self.failures[body["input"]]
            if self.scripted:
                outcome = self.scripted.pop(0)
                if isinstance(outcome, Exception):
                    raise outcome
                return outcome
            vector = fake_vector(body["input"])
            if self.dimensions != DIMENSIONS:
                vector = (vector + [0.0] * self.dimensions)[: self.dimensions]
            return httpx.Response(200, json={"model": body["model"], "embeddings": [vector]})
        if path == "/api/show":
            return httpx.Response(200, json={"model_info": {"nomic-bert.embedding_length": self.dimensions}})
        if path == "/":
            return httpx.Response(200, text="Ollama is running")
        return httpx.Response(404, json={"error": "not found"})


class YieldingOllama(FakeOllama):
    """Async variant of FakeOllama. Every request suspends once, so concurrent ingests interleave."""

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0)
        return super().__call__(request)


WORD_NAMESPACE = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"


def make_docx(*paragraphs: str) -> bytes:
    """Smallest DOCX the Word loaders accept: a zip holding word/document.xml."""
    body = "".join(f"<w:p><w:r><w:t>{text}</w:t></w:r></w:p>" for text in paragraphs)
    document_xml = (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        f'<w:document xmlns:w="{WORD_NAMESPACE}"><w:body>{body}</w:body></w:document>'
    )
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("word/document.xml", document_xml)
    return buffer.getvalue()


def make_pdf(text: str) -> bytes:
    """Single page PDF showing text in Helvetica, with a valid cross-reference table."""
    stream = f"BT /F1 24 Tf 72 720 Td ({text}) Tj ET".encode("latin-1")
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Contents 4 0 R "
        b"/Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"
    xref_offset = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (len(objects) + 1, xref_offset)
    return bytes(out)


@pytest.fixture
def env(monkeypatch):
    for key in list(os.environ):
        if key.startswith(ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("EMBED_OLLAMA_BASE_URL", "http://ollama.test")
    monkeypatch.setenv("EMBED_RETRY_BASE_DELAY", "0")
    monkeypatch.setenv("EMBED_RETRY_MAX_DELAY", "0")
    monkeypatch.setenv("STORE_ENGINE", "memory")
    return monkeypatch


@pytest.fixture
def helper_config(env) -> HelperConfig:
    return HelperConfig(logger=ColorLogger(logging.getLogger("tests")))


@pytest.fixture
def fake_ollama() -> FakeOllama:
    return FakeOllama()


@pytest.fixture
async def context(helper_config, fake_ollama):
    context = CacheContext.from_config(helper_config=helper_config)
    await context.store.boot()
    await context.store.do_initialize()
    for client in context.embed_manager.get_clients():
        await client.boot(transport=httpx.MockTransport(fake_ollama))
    yield context
    await context.close()


@pytest.fixture
def cache_service(context) -> DocumentCacheService:
    return DocumentCacheService(context=context)
