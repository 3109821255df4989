"""Best-guess client address behind reverse proxies.

Headers are consulted in priority order, first match wins:

1. ``X-Forwarded-For`` - leftmost entry (the original client)
2. ``X-Real-IP``
3. ``X-Client-IP``
4. ``Forwarded`` - the ``for=`` parameter, quotes stripped
5. the socket peer address, or ``"unknown"``

Header names are looked up lowercase, as Starlette's ``Headers`` expects.
No syntax validation is done here. A malformed value simply fails every
later lookup.
"""

from __future__ import annotations

import re
from typing import Mapping, Optional

from fastapi import Request

_FORWARDED_FOR = re.compile(r"for=([^;,]+)", re.IGNORECASE)

UNKNOWN_ADDRESS = "unknown"


def resolve_client_address(headers: Mapping[str, str], remote_addr: Optional[str] = None) -> str:
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip

    client_ip = headers.get("x-client-ip")
    if client_ip:
        return client_ip

    forwarded = headers.get("forwarded")
    if forwarded:
        match = _FORWARDED_FOR.search(forwarded)
        if match:
            return match.group(1).replace('"', "")

    return remote_addr or UNKNOWN_ADDRESS


def get_client_address(request: Request) -> str:
    """Resolve the client address of a Starlette/FastAPI request.

    Usable as a FastAPI dependency or as a slowapi key function.
    """
    remote = request.client.host if request.client else None
    return resolve_client_address(request.headers, remote)
