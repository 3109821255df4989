from .sports import Sport, Match, Stream
from .blocker import BlockedResponse, ErrorResponse

__all__ = [
    "Sport",
    "Match",
    "Stream",
    "BlockedResponse",
    "ErrorResponse",
]
