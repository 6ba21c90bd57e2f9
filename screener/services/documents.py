"""
Resume / cover letter download and text extraction.

Attachment URLs are pre-signed links, so no ATS credentials are sent.
The document kind is decided from the URL first (query strings are common,
so this is a substring test) and from the Content-Type header second.

Nothing raises past this module: a failed download or an unparseable file
yields empty text (or None for the LLM payload) and a log line. A missing
resume is a normal outcome for callers.
"""

import asyncio
import base64
import io
import logging
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import unquote, urlsplit

import docx
import httpx
import pdfplumber

logger = logging.getLogger(__name__)

PDF = "pdf"
DOCX = "docx"
DOC = "doc"
TEXT = "text"
UNKNOWN = "unknown"

CONTENT_TYPES = {
    PDF: "application/pdf",
    DOC: "application/msword",
    DOCX: "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}
OPAQUE_CONTENT_TYPES = ("", "application/octet-stream", "binary/octet-stream")


@dataclass
class FetchedDocument:
    kind: str
    data: bytes
    content_type: str = ""


@dataclass
class PdfContent:
    base64: str


@dataclass
class TextContent:
    content: str


DocumentContent = Union[PdfContent, TextContent]


def classify(url: str, content_type: str = "") -> str:
    url_lower = url.lower()
    content_type = content_type.lower()

    if ".pdf" in url_lower or "pdf" in content_type:
        return PDF
    if ".docx" in url_lower or "wordprocessingml" in content_type:
        return DOCX
    if ".doc" in url_lower or "msword" in content_type:
        return DOC
    if ".txt" in url_lower or "text/plain" in content_type:
        return TEXT
    return UNKNOWN


def filename_from_url(url: str) -> str:
    name = urlsplit(url).path.rsplit("/", 1)[-1]
    return unquote(name) or "document"


def guess_content_type(url: str, header: str = "") -> str:
    """Content type to serve an attachment inline; PDF when nothing better is known."""
    ext = filename_from_url(url).lower().rsplit(".", 1)[-1]
    if ext == "pdf" or ".pdf" in url.lower():
        return CONTENT_TYPES[PDF]
    if ext == "doc":
        return CONTENT_TYPES[DOC]
    if ext == "docx":
        return CONTENT_TYPES[DOCX]
    if header.lower() in OPAQUE_CONTENT_TYPES:
        return CONTENT_TYPES[PDF]
    return header


def pdf_to_text(data: bytes) -> str:
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        return "\n".join(page.extract_text() or "" for page in pdf.pages)


def word_to_text(data: bytes) -> str:
    document = docx.Document(io.BytesIO(data))
    return "\n".join(paragraph.text for paragraph in document.paragraphs)


def decode_text(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


class DocumentExtractor:
    """Downloads attachments and turns them into text or LLM document blocks."""

    def __init__(
        self,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str) -> Optional[FetchedDocument]:
        try:
            response = await self._get_client().get(url, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.error(f"Error fetching document {url[:100]}: {e}")
            return None

        if response.is_error:
            logger.warning(f"Failed to fetch document: {response.status_code}")
            return None

        content_type = response.headers.get("content-type", "")
        return FetchedDocument(
            kind=classify(url, content_type),
            data=response.content,
            content_type=content_type,
        )

    async def fetch_attachment(self, url: str, api_key: str = "") -> httpx.Response:
        """
        Raw download for the attachment proxy.

        Most URLs are pre-signed and need no credentials; on 401 the request
        is repeated once with Greenhouse basic auth. Transport errors raise.
        """
        client = self._get_client()
        response = await client.get(url, timeout=self.timeout)
        if response.status_code == 401 and api_key:
            logger.info("Attachment requires auth, retrying with Greenhouse credentials")
            response = await client.get(
                url, auth=httpx.BasicAuth(api_key, ""), timeout=self.timeout
            )
        return response

    async def _run(self, fn, data: bytes) -> str:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, fn, data)

    async def _to_text(self, document: FetchedDocument) -> str:
        try:
            if document.kind == PDF:
                return await self._run(pdf_to_text, document.data)
            if document.kind == DOCX:
                return await self._run(word_to_text, document.data)
        except Exception as e:
            logger.error(f"{document.kind.upper()} extraction failed: {e}")
            return ""
        if document.kind == DOC:
            # python-docx reads OOXML only; binary Word 97 files have no parser
            logger.warning("Unsupported format: legacy .doc file, no text extracted")
            return ""
        return decode_text(document.data)

    async def extract_text(self, url: Optional[str]) -> str:
        """Plain text of the document at url, or "" when unavailable."""
        if not url:
            return ""
        document = await self.fetch(url)
        if document is None:
            return ""
        text = await self._to_text(document)
        logger.debug(f"Extracted {len(text)} chars from {document.kind}")
        return text

    async def fetch_for_llm(self, url: Optional[str]) -> Optional[DocumentContent]:
        """PDFs stay binary for direct attachment; other formats become text."""
        if not url:
            return None
        document = await self.fetch(url)
        if document is None:
            return None

        if document.kind == PDF:
            logger.info(f"PDF document fetched, size: {len(document.data)} bytes")
            return PdfContent(base64=base64.b64encode(document.data).decode("ascii"))

        text = await self._to_text(document)
        if not text:
            return None
        return TextContent(content=text)
