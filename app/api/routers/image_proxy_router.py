"""
Image Proxy Router.
Streams NFT media with gateway fallbacks and a placeholder of last resort.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response, StreamingResponse
from starlette.background import BackgroundTask

from app.api.services.image_proxy_service import ImageProxyService, get_image_proxy_service

# Create router
router = APIRouter()


@router.get("/image-proxy")
async def image_proxy(
    url: Optional[str] = Query(None, description="URL-encoded media URL (http(s), ipfs://, ar://)"),
    service: ImageProxyService = Depends(get_image_proxy_service),
) -> Response:
    """
    Proxy an image.

    Successful upstream bodies are streamed with a one-year Cache-Control;
    unusable URLs and exhausted fallbacks get a placeholder SVG with status 200.
    """
    result = await service.fetch(url)

    if result.is_placeholder:
        return Response(content=result.body, media_type=result.content_type, headers=result.headers)

    return StreamingResponse(
        result.stream,
        media_type=result.content_type,
        headers=result.headers,
        background=BackgroundTask(result.close),
    )
