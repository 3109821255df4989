import logging
from typing import List

from fastapi import APIRouter, Depends

from app.api._proxy import proxy_json
from app.schemas.blocker import BlockedResponse, ErrorResponse
from app.schemas.sports import Stream
from app.services.streamed import StreamedClient, get_streamed_client

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Streams"])


@router.get(
    "/stream/{source}/{stream_id}",
    responses={
        200: {"model": List[Stream]},
        403: {"model": BlockedResponse},
        429: {"model": BlockedResponse},
        500: {"model": ErrorResponse},
    },
)
async def get_streams(source: str, stream_id: str, client: StreamedClient = Depends(get_streamed_client)):
    """Stream sources for a match. Guarded by the referrer and user-agent checks."""
    logger.info(f"Fetching streams for source: {source}, id: {stream_id}")
    return await proxy_json(
        client,
        f"/stream/{source}/{stream_id}",
        "Failed to fetch streams from source API",
        forward_status=True,
    )
