from typing import Any, Callable, Optional

from fastapi.responses import JSONResponse

from app.services.streamed import StreamedClient, UpstreamError


async def proxy_json(
    client: StreamedClient,
    path: str,
    error_message: str,
    *,
    forward_status: bool = False,
    transform: Optional[Callable[[Any], Any]] = None,
):
    """Fetch ``path`` upstream and return it, or an ``{"error": ...}`` body.

    With ``forward_status`` an upstream HTTP error keeps its status code;
    otherwise every failure is reported as 500.
    """
    try:
        data = await client.get_json(path)
    except UpstreamError as exc:
        status_code = exc.status_code if forward_status else 500
        return JSONResponse({"error": error_message}, status_code=status_code)
    if transform is not None:
        data = transform(data)
    return data
