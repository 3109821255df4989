from typing import List

from fastapi import APIRouter, Depends

from app.api._proxy import proxy_json
from app.schemas.blocker import ErrorResponse
from app.schemas.sports import Sport
from app.services.streamed import StreamedClient, get_streamed_client

router = APIRouter(tags=["Sports"])


@router.get("/sports", responses={200: {"model": List[Sport]}, 500: {"model": ErrorResponse}})
async def list_sports(client: StreamedClient = Depends(get_streamed_client)):
    """Sports categories"""
    return await proxy_json(client, "/sports", "Failed to fetch sports")
