import asyncio
import re
from typing import Optional, Union

import fitz  # PyMuPDF
from pydantic import BaseModel

from core.config import settings
from core.logger import logger
from utils.data_uri import DataUriError, decode_data_uri

PDF_MIME = "application/pdf"
PDF_DATE_RE = re.compile(r"^D:(\d{4})(\d{2})?(\d{2})?(\d{2})?(\d{2})?(\d{2})?")


class PdfMetadata(BaseModel):
    page_count: Optional[int] = None
    title: Optional[str] = None
    author: Optional[str] = None
    subject: Optional[str] = None
    creator: Optional[str] = None
    producer: Optional[str] = None
    creation_date: Optional[str] = None
    modification_date: Optional[str] = None
    word_count: Optional[int] = None
    char_count: Optional[int] = None
    file_size_bytes: Optional[int] = None


class PdfExtractionResult(BaseModel):
    success: bool
    extracted_text: str = ""
    error: Optional[str] = None
    metadata: Optional[PdfMetadata] = None


class PdfExtractionError(Exception):
    pass


def _format_pdf_date(value: Optional[str]) -> Optional[str]:
    """Converts a PDF date (D:YYYYMMDDHHmmSS) to ISO 8601, leaving other strings as they are."""
    if not value:
        return None
    match = PDF_DATE_RE.match(value)
    if not match:
        return value
    year, month, day, hour, minute, second = (part or default for part, default in zip(
        match.groups(), ("0000", "01", "01", "00", "00", "00")
    ))
    return f"{year}-{month}-{day}T{hour}:{minute}:{second}"


def _clean(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


def _extract(pdf_bytes: bytes) -> tuple:
    with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
        if doc.needs_pass or doc.is_encrypted:
            raise PdfExtractionError("PDF is password protected or encrypted and cannot be processed")
        text = "".join(page.get_text() for page in doc)
        return text, doc.page_count, dict(doc.metadata or {})


async def extract_text_from_pdf(
    pdf: Union[bytes, str],
    max_size: Optional[int] = None,
    timeout: Optional[float] = None,
) -> PdfExtractionResult:
    """
    Extract text and metadata from a PDF given as bytes or a data URI.

    Never raises: every failure comes back as success=False with a message.
    """
    max_size = max_size or settings.PDF_MAX_SIZE_MB * 1024 * 1024
    timeout = timeout or settings.PDF_TIMEOUT_SECONDS

    if isinstance(pdf, str):
        try:
            _, pdf_bytes = decode_data_uri(pdf, expected_mime=PDF_MIME)
        except DataUriError as e:
            return PdfExtractionResult(success=False, error=str(e))
    else:
        pdf_bytes = pdf

    if not pdf_bytes:
        return PdfExtractionResult(success=False, error="Invalid input: PDF data is empty.")

    if len(pdf_bytes) > max_size:
        return PdfExtractionResult(
            success=False,
            error=f"PDF file too large ({round(len(pdf_bytes) / 1024 / 1024)}MB). "
                  f"Maximum allowed: {round(max_size / 1024 / 1024)}MB.",
        )

    if not pdf_bytes.startswith(b"%PDF"):
        return PdfExtractionResult(
            success=False, error="Invalid file format: File does not appear to be a valid PDF."
        )

    try:
        text, page_count, info = await asyncio.wait_for(asyncio.to_thread(_extract, pdf_bytes), timeout=timeout)
    except asyncio.TimeoutError:
        logger.error("PDF extraction timed out", timeout=timeout)
        return PdfExtractionResult(
            success=False, error=f"PDF processing timeout ({int(timeout)} seconds) - file may be too complex"
        )
    except PdfExtractionError as e:
        return PdfExtractionResult(success=False, error=str(e))
    except Exception as e:
        logger.error("PDF extraction failed", error=str(e))
        message = str(e).lower()
        if "password" in message or "encrypt" in message:
            error = "PDF is password protected or encrypted and cannot be processed"
        elif "memory" in message:
            error = "PDF too large or complex to process in available memory"
        elif "format" in message or "broken" in message or "cannot open" in message:
            error = "Invalid PDF file format or corrupted file"
        else:
            error = f"PDF processing error: {e}"
        return PdfExtractionResult(success=False, error=error)

    text = text.strip()
    if not text:
        return PdfExtractionResult(
            success=False,
            error="No text content found. PDF might contain only images, be scanned without OCR, or be corrupted.",
            metadata=PdfMetadata(page_count=page_count, word_count=0, char_count=0, file_size_bytes=len(pdf_bytes)),
        )

    metadata = PdfMetadata(
        page_count=page_count or None,
        title=_clean(info.get("title")),
        author=_clean(info.get("author")),
        subject=_clean(info.get("subject")),
        creator=_clean(info.get("creator")),
        producer=_clean(info.get("producer")),
        creation_date=_format_pdf_date(_clean(info.get("creationDate"))),
        modification_date=_format_pdf_date(_clean(info.get("modDate"))),
        word_count=len(text.split()),
        char_count=len(text),
        file_size_bytes=len(pdf_bytes),
    )
    logger.info("PDF text extracted", pages=page_count, chars=metadata.char_count)
    return PdfExtractionResult(success=True, extracted_text=text, metadata=metadata)
