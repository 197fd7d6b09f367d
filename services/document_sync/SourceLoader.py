"""Reads source files (text, markdown, PDF, DOCX) into SourceDocument models."""

import shutil
import tempfile
from pathlib import Path

from langchain_community.document_loaders import Docx2txtLoader, PyPDFLoader

from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import (
    ConfigurationError,
    DocumentParsingError,
    ForbiddenPathError,
    UnsupportedDocumentError,
)
from shared.models.sync import SourceDocument

# .doc is read as text, binary Word files fail to decode and are skipped
TEXT_EXTENSIONS = (".md", ".markdown", ".txt", ".json", ".csv", ".xml", ".doc")
LOADER_BY_EXTENSION = {
    ".pdf": PyPDFLoader,
    ".docx": Docx2txtLoader,
}
SUPPORTED_EXTENSIONS = TEXT_EXTENSIONS + tuple(LOADER_BY_EXTENSION)

PAGE_SEPARATOR = "\n\n"


class SourceLoader:
    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()

    ##########################################
    ################ PARSING #################
    ##########################################

    def read_file(self, file_path: Path) -> str:
        """Extract the text of a single file.

        PDF and DOCX files go through the langchain document loaders, PDF pages
        are joined by blank lines. Everything else in TEXT_EXTENSIONS is read as UTF-8.

        Raises:
            UnsupportedDocumentError: If the extension is not supported.
            DocumentParsingError: If the file can not be parsed or decoded, or a PDF/DOCX holds no text.
        """
        suffix = file_path.suffix.lower()
        loader_class = LOADER_BY_EXTENSION.get(suffix)
        if loader_class is not None:
            try:
                pages = loader_class(str(file_path)).load()
            except Exception as e:
                raise DocumentParsingError(f"Failed to parse '{file_path.name}': {e}") from e
            text = PAGE_SEPARATOR.join(page.page_content for page in pages)
            if not text.strip():
                raise DocumentParsingError(f"'{file_path.name}' contains no extractable text.")
            return text

        if suffix in TEXT_EXTENSIONS:
            try:
                return file_path.read_text(encoding="utf-8")
            except UnicodeDecodeError as e:
                raise DocumentParsingError(f"'{file_path.name}' is not valid UTF-8.") from e

        raise UnsupportedDocumentError(
            f"File type '{suffix or file_path.name}' is not supported.",
            hint=f"Supported: {', '.join(SUPPORTED_EXTENSIONS)}",
        )

    def parse_upload(self, filename: str, data: bytes) -> SourceDocument:
        """Turn an uploaded file into a SourceDocument.

        The bytes are written to a temporary folder so the file based loaders
        can read them. The folder is removed afterwards.

        Args:
            filename (str): Client supplied file name, only its last path part is used.
            data (bytes): Raw file content.

        Returns:
            SourceDocument: Named after the file, with filename, extension and size as metadata.

        Raises:
            UnsupportedDocumentError: If the extension is not supported.
            DocumentParsingError: If the file can not be parsed.
        """
        name = Path(filename).name
        suffix = Path(name).suffix.lower()
        if suffix not in SUPPORTED_EXTENSIONS:
            raise UnsupportedDocumentError(
                f"File type '{suffix or name}' is not supported.",
                hint=f"Supported: {', '.join(SUPPORTED_EXTENSIONS)}",
            )

        temp_dir = tempfile.mkdtemp(prefix="document_cache_")
        try:
            temp_path = Path(temp_dir) / name
            temp_path.write_bytes(data)
            content = self.read_file(temp_path)
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)

        self.logging.info("Parsed upload '%s' (%d bytes).", name, len(data))
        return SourceDocument(name=name, content=content, metadata={"filename": name, "extension": suffix, "size": len(data)})

    ##########################################
    ################ FOLDERS #################
    ##########################################

    def resolve_path(self, path: str | None = None) -> Path:
        """Resolve a sync folder against SYNC_SOURCE_DIR.

        Relative paths are taken relative to SYNC_SOURCE_DIR. The result must
        stay inside it, symlinks included.

        Raises:
            ConfigurationError: If SYNC_SOURCE_DIR is not set.
            ForbiddenPathError: If the folder lies outside SYNC_SOURCE_DIR.
        """
        root = Path(self.helper_config.get_string_val("SYNC_SOURCE_DIR")).resolve()
        if not path:
            return root
        candidate = Path(path)
        resolved = (candidate if candidate.is_absolute() else root / candidate).resolve()
        if not resolved.is_relative_to(root):
            raise ForbiddenPathError(f"Sync folder '{path}' is outside of '{root}'.")
        return resolved

    def load_directory(self, path: str | Path) -> list[SourceDocument]:
        """Load every supported file below path.

        Documents are named by their POSIX path relative to path, so the same
        file keeps its identity across runs. Hidden files and directories are skipped,
        and so are files that can not be parsed.

        Args:
            path (str | Path): Root folder of the source.

        Returns:
            list[SourceDocument]: One document per readable file, sorted by name.

        Raises:
            ConfigurationError: If path is not a directory.
        """
        root = Path(path)
        if not root.is_dir():
            raise ConfigurationError(f"Sync source '{root}' is not a directory.", hint="Set SYNC_SOURCE_DIR to an existing folder.")

        documents: list[SourceDocument] = []
        for file_path in sorted(root.rglob("*")):
            relative = file_path.relative_to(root)
            if any(part.startswith(".") for part in relative.parts):
                continue
            if not file_path.is_file() or file_path.suffix.lower() not in SUPPORTED_EXTENSIONS:
                continue
            try:
                content = self.read_file(file_path)
            except DocumentParsingError as e:
                self.logging.warning("Skipping '%s': %s", relative.as_posix(), e.message)
                continue
            documents.append(
                SourceDocument(
                    name=relative.as_posix(),
                    content=content,
                    metadata={"path": relative.as_posix(), "extension": file_path.suffix.lower()},
                )
            )
        self.logging.info("Loaded %d document(s) from '%s'.", len(documents), root)
        return documents
