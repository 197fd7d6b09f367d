import pytest

from services.document_sync.SourceLoader import SourceLoader
from shared.models.errors import (
    ConfigurationError,
    DocumentParsingError,
    ForbiddenPathError,
    UnsupportedDocumentError,
)
from tests.conftest import make_docx, make_pdf


def test_loads_supported_files_by_relative_path(helper_config, tmp_path):
    (tmp_path / "guides").mkdir()
    (tmp_path / "a.md").write_text("# Title\n\nHello world.", encoding="utf-8")
    (tmp_path / "guides" / "setup.txt").write_text("install it", encoding="utf-8")
    (tmp_path / "image.png").write_bytes(b"\x89PNG")

    documents = SourceLoader(helper_config=helper_config).load_directory(tmp_path)
    assert [document.name for document in documents] == ["a.md", "guides/setup.txt"]
    assert documents[0].content == "# Title\n\nHello world."
    assert documents[1].metadata == {"path": "guides/setup.txt", "extension": ".txt"}


def test_skips_hidden_and_undecodable_files(helper_config, tmp_path):
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "notes.md").write_text("internal", encoding="utf-8")
    (tmp_path / ".draft.md").write_text("draft", encoding="utf-8")
    (tmp_path / "latin1.txt").write_bytes("caf\xe9".encode("latin-1"))
    (tmp_path / "ok.md").write_text("fine", encoding="utf-8")

    documents = SourceLoader(helper_config=helper_config).load_directory(str(tmp_path))
    assert [document.name for document in documents] == ["ok.md"]


def test_missing_directory_is_a_configuration_error(helper_config, tmp_path):
    with pytest.raises(ConfigurationError):
        SourceLoader(helper_config=helper_config).load_directory(tmp_path / "nope")


def test_loads_pdf_and_docx_files(helper_config, tmp_path):
    (tmp_path / "report.pdf").write_bytes(make_pdf("Graph vector report"))
    (tmp_path / "notes.docx").write_bytes(make_docx("Cache notes", "Second paragraph"))

    documents = SourceLoader(helper_config=helper_config).load_directory(tmp_path)
    by_name = {document.name: document for document in documents}
    assert sorted(by_name) == ["notes.docx", "report.pdf"]
    assert "Graph vector report" in by_name["report.pdf"].content
    assert "Cache notes" in by_name["notes.docx"].content
    assert "Second paragraph" in by_name["notes.docx"].content
    assert by_name["report.pdf"].metadata["extension"] == ".pdf"


def test_broken_pdf_is_skipped_in_folders(helper_config, tmp_path):
    (tmp_path / "broken.pdf").write_bytes(b"not a pdf at all")
    (tmp_path / "ok.md").write_text("fine", encoding="utf-8")

    loader = SourceLoader(helper_config=helper_config)
    assert [document.name for document in loader.load_directory(tmp_path)] == ["ok.md"]
    with pytest.raises(DocumentParsingError):
        loader.read_file(tmp_path / "broken.pdf")


def test_parse_upload(helper_config):
    document = SourceLoader(helper_config=helper_config).parse_upload("../uploads/notes.docx", make_docx("Uploaded text"))
    assert document.name == "notes.docx"
    assert document.content.strip() == "Uploaded text"
    assert document.metadata["extension"] == ".docx"


def test_parse_upload_rejects_unsupported_types(helper_config):
    with pytest.raises(UnsupportedDocumentError):
        SourceLoader(helper_config=helper_config).parse_upload("image.png", b"\x89PNG")


def test_sync_paths_stay_below_the_source_dir(helper_config, env, tmp_path):
    root = tmp_path / "docs"
    (root / "team").mkdir(parents=True)
    env.setenv("SYNC_SOURCE_DIR", str(root))
    loader = SourceLoader(helper_config=helper_config)

    assert loader.resolve_path() == root.resolve()
    assert loader.resolve_path("team") == (root / "team").resolve()
    assert loader.resolve_path(str(root / "team")) == (root / "team").resolve()
    with pytest.raises(ForbiddenPathError):
        loader.resolve_path("..")
    with pytest.raises(ForbiddenPathError):
        loader.resolve_path("/etc")


def test_sync_path_without_source_dir(helper_config):
    with pytest.raises(ConfigurationError):
        SourceLoader(helper_config=helper_config).resolve_path("docs")
