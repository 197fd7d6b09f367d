"""Content hashing, document identity and chunking."""

import hashlib
import re

from langchain_text_splitters import MarkdownTextSplitter, RecursiveCharacterTextSplitter

from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import EmptyDocumentError

MARKDOWN_CHUNK_SIZE = 8000
MARKDOWN_CHUNK_OVERLAP = 1000
TEXT_CHUNK_SIZE = 4000
TEXT_CHUNK_OVERLAP = 800

MARKDOWN_EXTENSIONS = (".md", ".markdown")
_HEADING_RE = re.compile(r"^#{1,6}\s+\S", re.MULTILINE)


def compute_content_hash(text: str) -> str:
    """SHA-256 hex digest of the UTF-8 encoded text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def compute_document_id(name: str) -> str:
    """Stable document identity derived from its name (md5 hex)."""
    return hashlib.md5(name.encode("utf-8")).hexdigest()


class ContentChunker:
    """Splits documents into overlapping chunks.

    Markdown goes through a heading-aware splitter with large chunks, everything
    else through the recursive character splitter.
    """

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        markdown_size = int(helper_config.get_number_val("CHUNKER_MARKDOWN_SIZE", default=MARKDOWN_CHUNK_SIZE))
        markdown_overlap = int(helper_config.get_number_val("CHUNKER_MARKDOWN_OVERLAP", default=MARKDOWN_CHUNK_OVERLAP))
        text_size = int(helper_config.get_number_val("CHUNKER_TEXT_SIZE", default=TEXT_CHUNK_SIZE))
        text_overlap = int(helper_config.get_number_val("CHUNKER_TEXT_OVERLAP", default=TEXT_CHUNK_OVERLAP))

        self._markdown_splitter = MarkdownTextSplitter(chunk_size=markdown_size, chunk_overlap=markdown_overlap)
        self._text_splitter = RecursiveCharacterTextSplitter(
            chunk_size=text_size,
            chunk_overlap=text_overlap,
            separators=["\n\n", "\n", ". ", " ", ""],
        )

    @staticmethod
    def detect_kind(text: str, name: str | None = None) -> str:
        """Return "markdown" for .md names or text with ATX headings, "text" otherwise."""
        if name and name.lower().endswith(MARKDOWN_EXTENSIONS):
            return "markdown"
        if _HEADING_RE.search(text):
            return "markdown"
        return "text"

    def split(self, text: str, kind: str | None = None, name: str | None = None) -> list[str]:
        """Split a document into ordered chunks.

        Args:
            text (str): Full document text.
            kind (str | None): "markdown" or "text". Detected from name and content if None.
            name (str | None): Document name, used for detection.

        Returns:
            list[str]: At least one non-empty chunk.

        Raises:
            EmptyDocumentError: If the text is empty or whitespace only.
        """
        if not text or not text.strip():
            raise EmptyDocumentError(f"Document '{name or '<unnamed>'}' has no content to chunk.")

        kind = kind or self.detect_kind(text, name)
        splitter = self._markdown_splitter if kind == "markdown" else self._text_splitter
        chunks = [chunk for chunk in splitter.split_text(text) if chunk.strip()]
        if not chunks:
            chunks = [text.strip()]
        self.logging.debug("Split '%s' (%s, %d chars) into %d chunk(s).", name or "<unnamed>", kind, len(text), len(chunks))
        return chunks
