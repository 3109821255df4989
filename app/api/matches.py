import logging
from typing import List

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.api._proxy import proxy_json
from app.schemas.blocker import ErrorResponse
from app.schemas.sports import Match
from app.services.streamed import (
    StreamedClient,
    UpstreamError,
    UpstreamUnavailable,
    find_match,
    get_streamed_client,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Matches"])

_list_responses = {200: {"model": List[Match]}, 500: {"model": ErrorResponse}}


def _with_ids(matches):
    if not isinstance(matches, list):
        return matches
    valid = [m for m in matches if isinstance(m, dict) and m.get("id")]
    logger.info(f"All matches fetched: {len(matches)} matches, {len(valid)} with valid ids")
    return valid


# Fixed paths are declared before /matches/{sport} so they are not captured by it.
@router.get("/matches/all", responses=_list_responses)
async def all_matches(client: StreamedClient = Depends(get_streamed_client)):
    return await proxy_json(
        client,
        "/matches/all",
        "Failed to fetch all matches from source API",
        forward_status=True,
        transform=_with_ids,
    )


@router.get("/matches/all/popular", responses=_list_responses)
async def all_popular_matches(client: StreamedClient = Depends(get_streamed_client)):
    return await proxy_json(client, "/matches/all/popular", "Failed to fetch all popular matches")


@router.get("/matches/all-today", responses=_list_responses)
async def todays_matches(client: StreamedClient = Depends(get_streamed_client)):
    return await proxy_json(client, "/matches/all-today", "Failed to fetch today's matches")


@router.get("/matches/all-today/popular", responses=_list_responses)
async def todays_popular_matches(client: StreamedClient = Depends(get_streamed_client)):
    return await proxy_json(
        client, "/matches/all-today/popular", "Failed to fetch popular today's matches"
    )


@router.get("/matches/live", responses=_list_responses)
async def live_matches(client: StreamedClient = Depends(get_streamed_client)):
    return await proxy_json(client, "/matches/live", "Failed to fetch live matches")


@router.get("/matches/live/popular", responses=_list_responses)
async def live_popular_matches(client: StreamedClient = Depends(get_streamed_client)):
    return await proxy_json(client, "/matches/live/popular", "Failed to fetch popular live matches")


@router.get("/matches/{sport}", responses=_list_responses)
async def sport_matches(sport: str, client: StreamedClient = Depends(get_streamed_client)):
    return await proxy_json(client, f"/matches/{sport}", "Failed to fetch matches")


@router.get("/matches/{sport}/popular", responses=_list_responses)
async def sport_popular_matches(sport: str, client: StreamedClient = Depends(get_streamed_client)):
    return await proxy_json(
        client, f"/matches/{sport}/popular", "Failed to fetch popular matches for sport"
    )


@router.get(
    "/match/{match_id}",
    responses={200: {"model": Match}, 404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def get_match(match_id: str, client: StreamedClient = Depends(get_streamed_client)):
    """Look a single match up inside the full match list."""
    logger.info(f"Fetching match with ID: {match_id}")
    try:
        matches = await client.get_json("/matches/all")
    except UpstreamUnavailable:
        return JSONResponse({"error": "Failed to fetch match"}, status_code=500)
    except UpstreamError as exc:
        return JSONResponse({"error": "Failed to fetch matches"}, status_code=exc.status_code)

    match = find_match(matches if isinstance(matches, list) else [], match_id)
    if match is None:
        logger.info(f"Match not found with ID: {match_id}")
        return JSONResponse({"error": "Match not found"}, status_code=404)

    logger.info(f"Match found: {match.get('title')}")
    return match
