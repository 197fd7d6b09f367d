import asyncio
import json
from typing import Any, Awaitable

from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncManagedTransaction
from neo4j.exceptions import AuthError, DriverError, Neo4jError, ServiceUnavailable, SessionExpired

from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.clients.store.models.Chunk import ChunkOrigin, ScoredChunk, StoredChunk
from shared.clients.store.models.Document import StoredDocument
from shared.clients.store.models.Stats import IndexInfo, StoreStats
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.errors import (
    IndexUnavailableError,
    NotFoundError,
    OperationTimeoutError,
    StoreConnectivityError,
    StoreQueryError,
)

META_ID = "default"

# chunk projection without the embedding, used wherever vectors are not needed
CHUNK_FIELDS = "{.id, .documentId, .content, .index, .size, .metadata}"
CHUNK_FIELDS_WITH_EMBEDDING = "{.id, .documentId, .content, .index, .size, .metadata, .embedding}"
DOCUMENT_FIELDS = "{.id, .name, .hash, .content, .size, .uploadedAt, .source, .metadata}"


class StoreClientNeo4j(StoreClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._uri = self.get_config_val("URI", default=None, val_type="string")
        self._user = self.get_config_val("USER", default="neo4j", val_type="string")
        self._password = self.get_config_val("PASSWORD", default="", val_type="string")
        self._database = self.get_config_val("DATABASE", default="neo4j", val_type="string")
        self._driver: AsyncDriver | None = None

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Neo4j"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="URI", val_type="string", default=None, description="Bolt URI, e.g. bolt://localhost:7687"),
            EnvConfig(env_key="USER", val_type="string", default="neo4j"),
            EnvConfig(env_key="PASSWORD", val_type="string", default=""),
            EnvConfig(env_key="DATABASE", val_type="string", default="neo4j"),
        ]

    def _describe_connection(self) -> str:
        password_state = "set" if self._password else "not set"
        return f"uri={self._uri}, user='{self._user}', password {password_state}"

    ################ PARSING ##################
    @staticmethod
    def _load_metadata(raw: Any) -> dict:
        if not raw:
            return {}
        if isinstance(raw, dict):
            return raw
        return json.loads(raw)

    def _to_document(self, record: dict) -> StoredDocument:
        return StoredDocument(
            id=record["id"],
            name=record.get("name") or "",
            content_hash=record.get("hash") or "",
            content=record.get("content") or "",
            size=record.get("size") or 0,
            uploaded_at=record.get("uploadedAt") or "",
            source=record.get("source") or "api_upload",
            metadata=self._load_metadata(record.get("metadata")),
        )

    def _to_chunk(self, record: dict) -> StoredChunk:
        return StoredChunk(
            id=record["id"],
            document_id=record["documentId"],
            content=record.get("content") or "",
            index=record.get("index") or 0,
            size=record.get("size") or 0,
            embedding=list(record.get("embedding") or []),
            metadata=self._load_metadata(record.get("metadata")),
        )

    def _to_scored(self, record: dict, origin: ChunkOrigin, score: float = 0.0) -> ScoredChunk:
        return ScoredChunk(
            chunk=self._to_chunk(record["chunk"]),
            document=self._to_document(record["document"]),
            score=score,
            origin=origin,
        )

    ##########################################
    ############## LIFECYCLE #################
    ##########################################

    async def boot(self, driver: AsyncDriver | None = None) -> None:
        """Create the driver and verify that the server is reachable.

        Args:
            driver (AsyncDriver | None): Pre-built driver, mainly for tests.

        Raises:
            StoreConnectivityError: If the server can not be reached or rejects the credentials.
        """
        auth = (self._user, self._password) if self._password else None
        self._driver = driver or AsyncGraphDatabase.driver(self._uri, auth=auth)
        await self._guard(self._driver.verify_connectivity(), action="connect")
        self.logging.info("Connected to graph store (%s).", self._describe_connection())

    async def close(self) -> None:
        if self._driver:
            await self._driver.close()
            self._driver = None

    async def do_healthcheck(self) -> bool:
        try:
            records = await self._read("RETURN 1 AS ok", action="healthcheck")
        except (StoreConnectivityError, StoreQueryError, OperationTimeoutError) as exc:
            self.logging.warning("Graph store healthcheck failed: %s", exc)
            return False
        return bool(records) and records[0].get("ok") == 1

    ##########################################
    ############### EXECUTION ################
    ##########################################

    async def _guard(self, awaitable: Awaitable, action: str) -> Any:
        """Run a driver call under the store timeout and translate driver errors."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise OperationTimeoutError(f"Graph store operation '{action}' timed out after {self.timeout}s.") from exc
        except AuthError as exc:
            raise StoreConnectivityError(
                f"Graph store rejected the credentials ({self._describe_connection()}): {exc}",
                hint="Check STORE_NEO4J_USER and STORE_NEO4J_PASSWORD.",
            ) from exc
        except (ServiceUnavailable, SessionExpired) as exc:
            raise StoreConnectivityError(f"Graph store is not reachable ({self._describe_connection()}): {exc}") from exc
        except Neo4jError as exc:
            raise StoreQueryError(f"Graph store operation '{action}' failed: {exc}") from exc
        except DriverError as exc:
            raise StoreConnectivityError(f"Graph store driver error ({self._describe_connection()}): {exc}") from exc

    def _session(self):
        if self._driver is None:
            raise StoreConnectivityError("Graph store driver not initialised.", hint="Call boot() before using the store.")
        return self._driver.session(database=self._database)

    async def _read(self, query: str, action: str, **params: Any) -> list[dict]:
        async def work(tx: AsyncManagedTransaction) -> list[dict]:
            result = await tx.run(query, **params)
            return await result.data()

        async def run() -> list[dict]:
            async with self._session() as session:
                return await session.execute_read(work)

        return await self._guard(run(), action=action)

    async def _write(self, queries: list[tuple[str, dict]], action: str) -> list[list[dict]]:
        """Run several statements in a single write transaction."""
        async def work(tx: AsyncManagedTransaction) -> list[list[dict]]:
            results: list[list[dict]] = []
            for query, params in queries:
                result = await tx.run(query, **params)
                results.append(await result.data())
            return results

        async def run() -> list[list[dict]]:
            async with self._session() as session:
                return await session.execute_write(work)

        return await self._guard(run(), action=action)

    async def _schema(self, query: str, action: str) -> None:
        """Run a schema statement in an auto-commit transaction."""
        async def run() -> None:
            async with self._session() as session:
                result = await session.run(query)
                await result.consume()

        await self._guard(run(), action=action)

    ##########################################
    ################ SCHEMA ##################
    ##########################################

    async def do_initialize(self, index_info: IndexInfo | None = None) -> IndexInfo | None:
        await self._schema(
            "CREATE CONSTRAINT document_id IF NOT EXISTS FOR (d:Document) REQUIRE d.id IS UNIQUE",
            action="initialize",
        )
        await self._schema(
            "CREATE CONSTRAINT chunk_id IF NOT EXISTS FOR (c:Chunk) REQUIRE c.id IS UNIQUE",
            action="initialize",
        )
        await self._schema(
            "CREATE CONSTRAINT cache_meta_id IF NOT EXISTS FOR (m:CacheMeta) REQUIRE m.id IS UNIQUE",
            action="initialize",
        )
        await self._schema(
            "CREATE INDEX document_hash IF NOT EXISTS FOR (d:Document) ON (d.hash)",
            action="initialize",
        )

        if index_info is None:
            records = await self._read(
                "MATCH (m:CacheMeta {id: $id}) "
                "RETURN m.indexName AS name, m.dimensions AS dimensions, m.provider AS provider, "
                "m.model AS model, m.similarity AS similarity",
                action="initialize",
                id=META_ID,
            )
            self._index_info = IndexInfo(**records[0]) if records else None
        else:
            results = await self._write(
                [(
                    "MERGE (m:CacheMeta {id: $id}) "
                    "ON CREATE SET m.indexName = $name, m.dimensions = $dimensions, m.provider = $provider, "
                    "m.model = $model, m.similarity = $similarity "
                    "RETURN m.indexName AS name, m.dimensions AS dimensions, m.provider AS provider, "
                    "m.model AS model, m.similarity AS similarity",
                    {"id": META_ID, **index_info.model_dump()},
                )],
                action="initialize",
            )
            pinned = IndexInfo(**results[0][0])
            self.check_index_compatibility(pinned, index_info)
            self._index_info = pinned

        if self._index_info is not None:
            await self._ensure_vector_index(self._index_info)
        return self._index_info

    async def _ensure_vector_index(self, index_info: IndexInfo) -> None:
        # schema commands do not accept parameters, dimensions is a validated int
        query = (
            f"CREATE VECTOR INDEX {index_info.name} IF NOT EXISTS FOR (c:Chunk) ON (c.embedding) "
            f"OPTIONS {{indexConfig: {{`vector.dimensions`: {int(index_info.dimensions)}, "
            f"`vector.similarity_function`: '{index_info.similarity}'}}}}"
        )
        try:
            await self._schema(query, action="create vector index")
            self.vector_index_available = True
        except StoreQueryError as exc:
            self.vector_index_available = False
            self.logging.warning(
                "Vector index '%s' could not be created, similarity search will use the brute-force scan: %s",
                index_info.name, exc,
            )

    ##########################################
    ################ READS ###################
    ##########################################

    async def do_get_document(self, document_id: str) -> StoredDocument | None:
        records = await self._read(
            f"MATCH (d:Document {{id: $id}}) RETURN d {DOCUMENT_FIELDS} AS document",
            action="get document",
            id=document_id,
        )
        return self._to_document(records[0]["document"]) if records else None

    async def do_find_document_by_hash(self, content_hash: str) -> StoredDocument | None:
        records = await self._read(
            f"MATCH (d:Document {{hash: $hash}}) RETURN d {DOCUMENT_FIELDS} AS document LIMIT 1",
            action="find document by hash",
            hash=content_hash,
        )
        return self._to_document(records[0]["document"]) if records else None

    async def do_list_documents(self, source: str | None = None) -> dict[str, str]:
        records = await self._read(
            "MATCH (d:Document) WHERE $source IS NULL OR d.source = $source RETURN d.id AS id, d.hash AS hash",
            action="list documents",
            source=source,
        )
        return {record["id"]: record["hash"] for record in records}

    async def do_stats(self) -> StoreStats:
        records = await self._read(
            "OPTIONAL MATCH (d:Document) WITH count(d) AS documents "
            "OPTIONAL MATCH (c:Chunk) RETURN documents, count(c) AS chunks",
            action="stats",
        )
        record = records[0] if records else {"documents": 0, "chunks": 0}
        return StoreStats(
            document_count=record["documents"],
            chunk_count=record["chunks"],
            index=self._index_info,
            vector_index_available=self.vector_index_available,
        )

    ##########################################
    ################ WRITES ##################
    ##########################################

    def _upsert_statement(self, document: StoredDocument) -> tuple[str, dict]:
        return (
            "MERGE (d:Document {id: $id}) "
            "SET d.name = $name, d.hash = $hash, d.content = $content, d.size = $size, "
            "d.uploadedAt = $uploaded_at, d.source = $source, d.metadata = $metadata",
            {
                "id": document.id,
                "name": document.name,
                "hash": document.content_hash,
                "content": document.content,
                "size": document.size,
                "uploaded_at": document.uploaded_at,
                "source": document.source,
                "metadata": json.dumps(document.metadata),
            },
        )

    async def do_upsert_document(self, document: StoredDocument) -> None:
        await self._write([self._upsert_statement(document)], action="upsert document")

    async def do_replace_chunks(self, document_id: str, chunks: list[StoredChunk], document: StoredDocument | None = None) -> None:
        self.check_chunk_dimensions(chunks)
        statements: list[tuple[str, dict]] = []
        if document is not None:
            statements.append(self._upsert_statement(document))
        statements.append((
            "MATCH (d:Document {id: $document_id}) "
            "OPTIONAL MATCH (d)-[:CONTAINS]->(c:Chunk) "
            "WITH d, collect(c) AS old "
            "FOREACH (x IN old | DETACH DELETE x) "
            "RETURN d.id AS id",
            {"document_id": document_id},
        ))
        statements.append((
            "MATCH (d:Document {id: $document_id}) "
            "UNWIND $chunks AS chunk "
            "CREATE (c:Chunk {id: chunk.id, documentId: chunk.documentId, content: chunk.content, "
            "index: chunk.index, size: chunk.size, embedding: chunk.embedding, metadata: chunk.metadata}) "
            "CREATE (d)-[:CONTAINS]->(c)",
            {
                "document_id": document_id,
                "chunks": [
                    {
                        "id": chunk.id,
                        "documentId": chunk.document_id,
                        "content": chunk.content,
                        "index": chunk.index,
                        "size": chunk.size,
                        "embedding": chunk.embedding,
                        "metadata": json.dumps(chunk.metadata),
                    }
                    for chunk in chunks
                ],
            },
        ))
        results = await self._write(statements, action="replace chunks")
        if not results[-2]:
            raise NotFoundError(f"Document '{document_id}' does not exist.", hint="Upsert the document before its chunks.")

    async def do_remove_document(self, document_id: str) -> bool:
        results = await self._write(
            [(
                "MATCH (d:Document {id: $id}) "
                "OPTIONAL MATCH (d)-[:CONTAINS]->(c:Chunk) "
                "WITH d, collect(c) AS chunks "
                "FOREACH (x IN chunks | DETACH DELETE x) "
                "DETACH DELETE d "
                "RETURN count(*) AS removed",
                {"id": document_id},
            )],
            action="remove document",
        )
        return bool(results[0]) and results[0][0]["removed"] > 0

    async def do_clear(self) -> None:
        await self._write(
            [("MATCH (n) WHERE n:Document OR n:Chunk OR n:CacheMeta DETACH DELETE n", {})],
            action="clear",
        )
        index_name = self._index_info.name if self._index_info else IndexInfo.model_fields["name"].default
        await self._schema(f"DROP INDEX {index_name} IF EXISTS", action="clear")
        self._index_info = None
        self.vector_index_available = False

    ##########################################
    ############### RETRIEVAL ################
    ##########################################

    async def do_vector_search(self, vector: list[float], k: int) -> list[ScoredChunk]:
        if not self.vector_index_available or self._index_info is None:
            raise IndexUnavailableError("Vector index is not available in the graph store.")
        try:
            records = await self._read(
                "CALL db.index.vector.queryNodes($index_name, $k, $vector) YIELD node AS chunk, score "
                "MATCH (d:Document)-[:CONTAINS]->(chunk) "
                f"RETURN chunk {CHUNK_FIELDS} AS chunk, d {DOCUMENT_FIELDS} AS document, score "
                "ORDER BY score DESC",
                action="vector search",
                index_name=self._index_info.name,
                k=k,
                vector=vector,
            )
        except StoreQueryError as exc:
            raise IndexUnavailableError(f"Vector index query failed: {exc.message}") from exc
        # neo4j reports cosine scores as (1 + cos) / 2
        return [self._to_scored(record, ChunkOrigin.INDEX, score=2.0 * record["score"] - 1.0) for record in records]

    async def do_sample_chunks(self, limit: int) -> list[ScoredChunk]:
        records = await self._read(
            "MATCH (d:Document)-[:CONTAINS]->(c:Chunk) WHERE c.embedding IS NOT NULL "
            f"RETURN c {CHUNK_FIELDS_WITH_EMBEDDING} AS chunk, d {DOCUMENT_FIELDS} AS document LIMIT $limit",
            action="sample chunks",
            limit=limit,
        )
        return [self._to_scored(record, ChunkOrigin.BRUTE_FORCE) for record in records]

    async def do_text_search(self, terms: list[str], limit: int) -> list[ScoredChunk]:
        lowered = [term.lower() for term in terms if term]
        if not lowered:
            return []
        records = await self._read(
            "MATCH (d:Document)-[:CONTAINS]->(c:Chunk) "
            "WHERE any(term IN $terms WHERE toLower(c.content) CONTAINS term) "
            f"RETURN c {CHUNK_FIELDS} AS chunk, d {DOCUMENT_FIELDS} AS document "
            "ORDER BY d.id, c.index LIMIT $limit",
            action="text search",
            terms=lowered,
            limit=limit,
        )
        return [self._to_scored(record, ChunkOrigin.TEXT) for record in records]

    async def do_fetch_siblings(self, chunk_ids: list[str], per_chunk: int) -> dict[str, list[ScoredChunk]]:
        siblings: dict[str, list[ScoredChunk]] = {chunk_id: [] for chunk_id in chunk_ids}
        if not chunk_ids or per_chunk <= 0:
            return siblings
        records = await self._read(
            "UNWIND $ids AS cid "
            "MATCH (d:Document)-[:CONTAINS]->(seed:Chunk {id: cid}) "
            "MATCH (d)-[:CONTAINS]->(c2:Chunk) WHERE c2.id <> cid "
            "WITH cid, d, seed, c2 ORDER BY abs(c2.index - seed.index), c2.index "
            "WITH cid, d, collect(c2)[0..$limit] AS neighbours "
            "UNWIND neighbours AS c "
            f"RETURN cid, c {CHUNK_FIELDS} AS chunk, d {DOCUMENT_FIELDS} AS document",
            action="fetch siblings",
            ids=chunk_ids,
            limit=per_chunk,
        )
        for record in records:
            siblings[record["cid"]].append(self._to_scored(record, ChunkOrigin.EXPANSION))
        return siblings
