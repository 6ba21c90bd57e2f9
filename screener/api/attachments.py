import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import JSONResponse

from screener.config import Settings
from screener.services.documents import DocumentExtractor, filename_from_url, guess_content_type
from screener.api.deps import get_current_settings, get_extractor

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/proxy")
async def proxy_attachment(
    url: str = Query(..., min_length=1),
    settings: Settings = Depends(get_current_settings),
    extractor: DocumentExtractor = Depends(get_extractor),
):
    """Serve a resume or cover letter inline so the browser can preview it."""
    logger.info(f"Proxying attachment: {url[:100]}")
    try:
        upstream = await extractor.fetch_attachment(url, settings.greenhouse_api_key)
    except httpx.HTTPError as e:
        logger.error(f"Error proxying attachment: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to proxy attachment: {e}")

    if upstream.is_error:
        logger.error(f"Failed to fetch attachment: {upstream.status_code} {upstream.text[:500]}")
        return JSONResponse(
            status_code=upstream.status_code,
            content={
                "error": "Failed to fetch attachment",
                "status": upstream.status_code,
                "statusText": upstream.reason_phrase,
            },
        )

    # Header values must be latin-1; keep the ASCII part of the name
    filename = filename_from_url(url).encode("ascii", "ignore").decode().replace('"', "") or "document"
    content_type = guess_content_type(url, upstream.headers.get("content-type", ""))
    return Response(
        content=upstream.content,
        media_type=content_type,
        headers={
            "Content-Disposition": f'inline; filename="{filename}"',
            "Cache-Control": "public, max-age=3600",
            "X-Content-Type-Options": "nosniff",
        },
    )
