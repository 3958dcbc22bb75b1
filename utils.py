"""
Study.AI - Utility Functions
Input validation, safety checks, upload ingestion
"""

import base64
import io
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

import docx
import PyPDF2

import settings

logger = logging.getLogger(__name__)

# Configuration
MAX_QUERY_LENGTH = 500
PDF_PREVIEW_CHARS = 600

TEXT_EXTENSIONS = {
    "txt", "md", "csv", "json", "js", "jsx", "ts", "tsx", "py", "html",
    "css", "xml", "log", "sql", "ini", "yaml", "yml",
}
CONVERT_FIRST_EXTENSIONS = {"pptx", "ppt", "xlsx", "xls", "odt"}
# Fallback when the browser sends no image MIME type
IMAGE_EXTENSIONS = {
    "png": "image/png", "jpg": "image/jpeg", "jpeg": "image/jpeg", "webp": "image/webp",
    "gif": "image/gif", "bmp": "image/bmp", "svg": "image/svg+xml", "heic": "image/heic",
}

# Safety patterns
INJECTION_PATTERNS = [
    "ignore previous instructions",
    "ignore all instructions",
    "disregard the above",
    "you are now",
    "new instructions:",
    "forget everything",
    "system:",
    "jailbreak",
]


class UnsupportedFileError(Exception):
    """The upload's format cannot be ingested."""


class FileIngestError(Exception):
    """The upload has a supported format but could not be read."""


@dataclass
class IngestResult:
    """
    Outcome of an upload.

    Exactly one of `file` (sent inline to the model) or `text` (placed in
    the text/prompt tab) is set.
    """
    filename: str
    kind: str
    file: Optional[Dict[str, str]] = None
    text: str = ""
    details: Dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "filename": self.filename,
            "kind": self.kind,
            "file": self.file,
            "text": self.text,
            "details": self.details,
        }


def validate_input(user_query: str, max_length: int = MAX_QUERY_LENGTH) -> Dict:
    """
    Validate user input
    Returns: {"error": bool, "message": str}
    """
    # Check for empty input
    if not user_query or not user_query.strip():
        return {
            "error": True,
            "message": "Please enter a message."
        }

    # Check length
    if len(user_query) > max_length:
        return {
            "error": True,
            "message": f"Message too long. Please keep it under {max_length} characters."
        }

    return {"error": False}


def check_safety(user_input: str) -> Dict:
    """
    Check for prompt injection
    Returns: {"safe": bool, "message": str}
    """
    input_lower = (user_input or "").lower()

    for pattern in INJECTION_PATTERNS:
        if pattern in input_lower:
            return {
                "safe": False,
                "message": "Invalid input detected. Please rephrase your request without instructions aimed at the assistant itself."
            }

    return {"safe": True}


def extract_pdf_text(source: Union[str, bytes, io.BytesIO], max_pages: Optional[int] = None) -> str:
    """
    Extract text from a PDF file path or in-memory bytes
    Returns: Extracted text as string
    """
    max_pages = max_pages or settings.MAX_PDF_PAGES
    if isinstance(source, bytes):
        source = io.BytesIO(source)

    try:
        pdf_reader = PyPDF2.PdfReader(source)
        num_pages = len(pdf_reader.pages)
    except Exception as e:
        raise FileIngestError(f"Failed to read PDF: {e}") from e

    if num_pages > max_pages:
        raise FileIngestError(f"PDF has {num_pages} pages. Maximum allowed is {max_pages}.")

    text = ""
    for page_num, page in enumerate(pdf_reader.pages):
        page_text = page.extract_text()
        if page_text:
            text += f"\n[Page {page_num + 1}]\n{page_text}"
    return text


def pdf_page_count(raw: bytes) -> int:
    try:
        return len(PyPDF2.PdfReader(io.BytesIO(raw)).pages)
    except Exception as e:
        raise FileIngestError(f"Failed to read PDF: {e}") from e


def extract_docx_text(raw: bytes) -> str:
    try:
        document = docx.Document(io.BytesIO(raw))
    except Exception as e:
        raise FileIngestError("Could not extract text from this Word document.") from e
    return "\n".join(p.text for p in document.paragraphs).strip()


def _extension(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lstrip(".").lower()


def _to_file_data(filename: str, mimetype: str, raw: bytes) -> Dict[str, str]:
    return {
        "name": filename,
        "mimeType": mimetype,
        "data": base64.b64encode(raw).decode("ascii"),
    }


def ingest_upload(filename: str, mimetype: str, raw: bytes) -> IngestResult:
    """
    Route an upload the way the data portal does.

    Word documents and text files become pasted text; PDFs and images are
    kept whole and sent inline to the model.
    """
    ext = _extension(filename)
    mimetype = (mimetype or "").lower()

    if not raw:
        raise FileIngestError("The uploaded file is empty.")

    if ext == "docx":
        text = extract_docx_text(raw)
        if not text:
            raise FileIngestError("Could not extract text from this Word document.")
        return IngestResult(filename, "docx", text=text, details={"chars": len(text)})

    if ext == "pdf" or mimetype == "application/pdf":
        pages = pdf_page_count(raw)
        if pages > settings.MAX_PDF_PAGES:
            raise FileIngestError(
                f"PDF has {pages} pages. Maximum allowed is {settings.MAX_PDF_PAGES}."
            )
        try:
            preview = extract_pdf_text(raw)[:PDF_PREVIEW_CHARS].strip()
        except Exception:
            # Scanned PDFs still go to the model inline
            logger.warning("Text preview failed for %s", filename, exc_info=True)
            preview = ""
        return IngestResult(
            filename,
            "pdf",
            file=_to_file_data(filename, "application/pdf", raw),
            details={"pages": pages, "preview": preview},
        )

    if mimetype.startswith("image/") or ext in IMAGE_EXTENSIONS:
        image_type = mimetype if mimetype.startswith("image/") else IMAGE_EXTENSIONS[ext]
        return IngestResult(
            filename,
            "image",
            file=_to_file_data(filename, image_type, raw),
            details={"bytes": len(raw)},
        )

    if mimetype.startswith("text/") or ext in TEXT_EXTENSIONS:
        text = raw.decode("utf-8", errors="replace")
        if len(text) > settings.MAX_CONTEXT_CHARS:
            raise FileIngestError(
                f"Text is too long ({len(text)} characters). Maximum allowed is {settings.MAX_CONTEXT_CHARS}."
            )
        return IngestResult(filename, "text", text=text, details={"chars": len(text)})

    if ext in CONVERT_FIRST_EXTENSIONS:
        raise UnsupportedFileError(f"The format .{ext.upper()} requires conversion to PDF before upload.")

    raise UnsupportedFileError(f"The format .{ext or 'unknown'} is not supported.")
