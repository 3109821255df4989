import logging

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse, Response

from app.services.image_cache import ImageCache, get_image_cache
from app.services.streamed import StreamedClient, UpstreamError, get_streamed_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/images", tags=["Images"])


async def _serve_image(path: str, client: StreamedClient, cache: ImageCache) -> Response:
    try:
        content = await cache.get_or_fetch(path, lambda: client.get_bytes(path))
    except (UpstreamError, OSError) as exc:
        logger.warning(f"Image {path} unavailable: {exc}")
        return PlainTextResponse("Image not found", status_code=404)

    return Response(
        content=content,
        media_type="image/webp",
        headers={"Cache-Control": f"public, max-age={cache.max_age_seconds}"},
    )


@router.get("/badge/{badge_id}.webp")
async def badge_image(
    badge_id: str,
    client: StreamedClient = Depends(get_streamed_client),
    cache: ImageCache = Depends(get_image_cache),
):
    return await _serve_image(f"/images/badge/{badge_id}.webp", client, cache)


@router.get("/poster/{badge1}/{badge2}.webp")
async def poster_image(
    badge1: str,
    badge2: str,
    client: StreamedClient = Depends(get_streamed_client),
    cache: ImageCache = Depends(get_image_cache),
):
    return await _serve_image(f"/images/poster/{badge1}/{badge2}.webp", client, cache)


@router.get("/proxy/{poster}.webp")
async def proxied_poster(
    poster: str,
    client: StreamedClient = Depends(get_streamed_client),
    cache: ImageCache = Depends(get_image_cache),
):
    return await _serve_image(f"/images/proxy/{poster}.webp", client, cache)
