import asyncio

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from server.dependencies.auth import verify_api_key
from server.models.requests import TextDocumentRequest
from server.models.responses import RemoveResponse
from shared.models.document import DocumentInput, IngestResult
from shared.models.errors import NotFoundError, UnsupportedDocumentError

router = APIRouter(prefix="/documents", tags=["documents"])


@router.post("/text")
async def ingest_text_document(
    request: Request,
    body: TextDocumentRequest,
    _: None = Depends(verify_api_key),
) -> IngestResult:
    """Ingest a document given as plain text.

    Args:
        request (Request): FastAPI request (provides app.state.cache_service).
        body (TextDocumentRequest): Name, content, metadata and source of the document.
        _ (None): Auth dependency result (unused).

    Returns:
        IngestResult: Identity, status (created/updated/unchanged/duplicate) and chunk count.
    """
    cache_service = request.app.state.cache_service
    document = DocumentInput(name=body.name, content=body.content, metadata=body.metadata, source=body.source)
    return await cache_service.ingest_document(document, timeout=request.app.state.request_timeout)


@router.post("/upload")
async def upload_document(
    request: Request,
    file: UploadFile = File(...),
    source: str = Form("api_upload"),
    _: None = Depends(verify_api_key),
) -> IngestResult:
    """Ingest an uploaded file (PDF, DOCX, markdown or text) via multipart form.

    Args:
        request (Request): FastAPI request (provides app.state.source_loader and cache_service).
        file (UploadFile): The uploaded file.
        source (str): Source scope stored on the document.
        _ (None): Auth dependency result (unused).

    Returns:
        IngestResult: Identity, status and chunk count.

    Raises:
        UnsupportedDocumentError: Missing file name, unsupported type or file too large (rendered as 400).
        DocumentParsingError: If the file can not be parsed (rendered as 422).
    """
    if not file.filename:
        raise UnsupportedDocumentError("Filename is required.")

    data = await file.read()
    max_bytes = request.app.state.max_upload_bytes
    if len(data) > max_bytes:
        raise UnsupportedDocumentError(
            f"File '{file.filename}' is too large ({len(data)} bytes).",
            hint=f"Maximum size is {max_bytes // (1024 * 1024)} MB, see API_SERVER_MAX_UPLOAD_MB.",
        )

    parsed = await asyncio.to_thread(request.app.state.source_loader.parse_upload, file.filename, data)
    document = DocumentInput(name=parsed.name, content=parsed.content, metadata=parsed.metadata, source=source)
    cache_service = request.app.state.cache_service
    return await cache_service.ingest_document(document, timeout=request.app.state.request_timeout)


@router.delete("/{document_id}")
async def remove_document(
    request: Request,
    document_id: str,
    _: None = Depends(verify_api_key),
) -> RemoveResponse:
    """Delete a document and all of its chunks."""
    cache_service = request.app.state.cache_service
    removed = await cache_service.remove_document(document_id, timeout=request.app.state.request_timeout)
    if not removed:
        raise NotFoundError(f"Document '{document_id}' does not exist.")
    return RemoveResponse(document_id=document_id, removed=True)
