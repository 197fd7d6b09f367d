"""Error taxonomy for the document cache.

Every error raised by the cache core derives from CacheError and carries a
machine-readable kind, a human-readable message and a remediation hint.
"""

from enum import Enum

from pydantic import BaseModel


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    TRANSIENT_PROVIDER = "transient_provider"
    PROVIDER_EXHAUSTED = "provider_exhausted"
    UNKNOWN_MODEL = "unknown_model"
    EMBEDDING_PROVIDER = "embedding_provider"
    STORE_CONNECTIVITY = "store_connectivity"
    STORE_QUERY = "store_query"
    INDEX_UNAVAILABLE = "index_unavailable"
    EMPTY_DOCUMENT = "empty_document"
    DIMENSION_MISMATCH = "dimension_mismatch"
    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"
    UNSUPPORTED_DOCUMENT = "unsupported_document"
    DOCUMENT_PARSING = "document_parsing"
    FORBIDDEN_PATH = "forbidden_path"


class ErrorDetail(BaseModel):
    """Serialisable view of a CacheError.

    Attributes:
        kind:    Machine-readable error kind.
        message: Human-readable description.
        hint:    Remediation hint, if one is known.
    """

    kind: ErrorKind
    message: str
    hint: str | None = None


class CacheError(Exception):
    """Base class of all document cache errors."""

    kind: ErrorKind = ErrorKind.STORE_QUERY
    default_hint: str | None = None

    def __init__(self, message: str, hint: str | None = None):
        super().__init__(message)
        self.message = message
        self.hint = hint if hint is not None else self.default_hint

    def to_detail(self) -> ErrorDetail:
        return ErrorDetail(kind=self.kind, message=self.message, hint=self.hint)

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message


class ConfigurationError(CacheError):
    kind = ErrorKind.CONFIGURATION
    default_hint = "Check the environment variables of the affected component."


class TransientProviderError(CacheError):
    """Retryable provider failure (timeout, transport error, 5xx, 429)."""

    kind = ErrorKind.TRANSIENT_PROVIDER

    def __init__(self, message: str, hint: str | None = None, timed_out: bool = False):
        super().__init__(message, hint=hint)
        self.timed_out = timed_out


class ProviderExhaustedError(CacheError):
    kind = ErrorKind.PROVIDER_EXHAUSTED
    default_hint = "The embedding provider kept failing. Check that it is running and not overloaded."


class UnknownModelError(CacheError):
    kind = ErrorKind.UNKNOWN_MODEL


class EmbeddingProviderError(CacheError):
    """Non-retryable provider failure, e.g. a rejected request."""

    kind = ErrorKind.EMBEDDING_PROVIDER


class StoreConnectivityError(CacheError):
    kind = ErrorKind.STORE_CONNECTIVITY
    default_hint = "Check that the graph store is running and that URI, user and password are correct."


class StoreQueryError(CacheError):
    kind = ErrorKind.STORE_QUERY


class IndexUnavailableError(CacheError):
    kind = ErrorKind.INDEX_UNAVAILABLE
    default_hint = "The store has no usable vector index. Similarity search falls back to a scan."


class EmptyDocumentError(CacheError):
    kind = ErrorKind.EMPTY_DOCUMENT
    default_hint = "Provide a document with non-whitespace content."


class DimensionMismatchError(CacheError):
    kind = ErrorKind.DIMENSION_MISMATCH
    default_hint = "Clear the cache before switching embedding provider, or configure the provider the cache was built with."


class OperationTimeoutError(CacheError):
    kind = ErrorKind.TIMEOUT
    default_hint = "Raise the timeout or check the latency of the provider and store."


class NotFoundError(CacheError):
    kind = ErrorKind.NOT_FOUND


class UnsupportedDocumentError(CacheError):
    kind = ErrorKind.UNSUPPORTED_DOCUMENT


class DocumentParsingError(CacheError):
    """A supported file could not be turned into text."""

    kind = ErrorKind.DOCUMENT_PARSING
    default_hint = "Check that the file is not corrupted or password protected."


class ForbiddenPathError(CacheError):
    kind = ErrorKind.FORBIDDEN_PATH
    default_hint = "Only folders below SYNC_SOURCE_DIR can be synchronised."
