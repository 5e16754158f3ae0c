"""Upload validation, text extraction and ingestion of source files."""

import logging
import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import fitz  # PyMuPDF
from dotenv import load_dotenv

from sourcelens.constants import MAX_UPLOAD_FILES, MAX_UPLOAD_SIZE_BYTES
from sourcelens.exceptions import ValidationError
from sourcelens.service.document_store import DocumentStore
from sourcelens.service.models import ContentFormat, Document, SourceMetadata

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".pdf", ".txt", ".md", ".json"}
TRANSCRIPT_MIME_TYPES = {"application/json", "text/json"}


@dataclass
class UploadedFile:
    """Raw bytes of one uploaded file with its declared type."""

    file_name: str
    data: bytes
    mime_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class ExtractedText:
    text: str
    content_format: ContentFormat = ContentFormat.PLAIN
    file_type: str = "text"
    extra: dict[str, Any] = field(default_factory=dict)


def validate_upload_batch(files: list[UploadedFile]) -> None:
    """Reject a batch before any store call.

    Raises:
        ValidationError: If the batch is empty, has more than 50 files, or
                         any file is empty or larger than 100MB.
    """
    if not files:
        raise ValidationError("No files provided")
    if len(files) > MAX_UPLOAD_FILES:
        raise ValidationError(
            f"Too many files: {len(files)} (maximum {MAX_UPLOAD_FILES} per upload)"
        )
    for upload in files:
        if not upload.file_name:
            raise ValidationError("Uploaded file has no name")
        if upload.size == 0:
            raise ValidationError(f"File {upload.file_name} is empty")
        if upload.size > MAX_UPLOAD_SIZE_BYTES:
            limit_mb = MAX_UPLOAD_SIZE_BYTES // (1024 * 1024)
            raise ValidationError(f"File {upload.file_name} exceeds the {limit_mb}MB limit")


def detect_content_format(file_name: str, mime_type: str | None = None) -> ContentFormat:
    """Transcripts are JSON files; everything else is plain text."""
    if (mime_type or "").lower() in TRANSCRIPT_MIME_TYPES:
        return ContentFormat.TRANSCRIPT
    if Path(file_name).suffix.lower() == ".json":
        return ContentFormat.TRANSCRIPT
    return ContentFormat.PLAIN


def extract_text_from_pdf(data: bytes) -> tuple[str, dict[str, Any]]:
    """Extract all text from PDF bytes.

    Returns:
        tuple: Concatenated page text and document metadata (page count,
               title and author when present)

    Raises:
        ValidationError: If PyMuPDF cannot read the document.
    """
    try:
        doc = fitz.open(stream=data, filetype="pdf")
        try:
            text = "".join(page.get_text() for page in doc)
            metadata: dict[str, Any] = {"pageCount": len(doc)}
            pdf_metadata = doc.metadata or {}
        finally:
            doc.close()
    # fitz.FileDataError and MuPDF page errors both derive from RuntimeError
    except RuntimeError as e:
        raise ValidationError(f"Could not read PDF: {e}") from e

    if pdf_metadata.get("title"):
        metadata["title"] = pdf_metadata["title"]
    if pdf_metadata.get("author"):
        metadata["author"] = pdf_metadata["author"]
    return text, metadata


def extract_text(upload: UploadedFile) -> ExtractedText:
    """Turn an uploaded file into text tagged with its content format."""
    is_pdf = upload.mime_type == "application/pdf" or upload.file_name.lower().endswith(".pdf")
    if is_pdf:
        text, metadata = extract_text_from_pdf(upload.data)
        logger.info(f"📄 Extracted {len(text)} characters from PDF {upload.file_name}")
        return ExtractedText(text=text, file_type="pdf", extra=metadata)

    text = upload.data.decode("utf-8", errors="replace")
    content_format = detect_content_format(upload.file_name, upload.mime_type)
    file_type = "transcript" if content_format is ContentFormat.TRANSCRIPT else "text"
    return ExtractedText(text=text, content_format=content_format, file_type=file_type)


async def ingest_upload(document_store: DocumentStore, upload: UploadedFile) -> list[Document]:
    """Extract one upload and store it as chunk documents with its original."""
    extracted = extract_text(upload)
    metadata = SourceMetadata(
        file_name=upload.file_name,
        file_type=extracted.file_type,
        content_format=extracted.content_format,
        extra=extracted.extra,
    )
    return await document_store.ingest_source(
        extracted.text,
        metadata,
        content_format=extracted.content_format,
        original=upload.data,
        content_type=upload.mime_type,
    )


def load_directory(directory: Path) -> list[UploadedFile]:
    """Read every supported file in ``directory`` (not recursive)."""
    uploads = []
    for path in sorted(directory.iterdir()):
        if not path.is_file() or path.suffix.lower() not in SUPPORTED_EXTENSIONS:
            continue
        mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        uploads.append(UploadedFile(file_name=path.name, data=path.read_bytes(), mime_type=mime_type))
    return uploads
