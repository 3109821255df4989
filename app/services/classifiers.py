import re
from typing import Optional

# Automation tools, HTTP client libraries and scripting runtimes.
SUSPICIOUS_UA_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"bot",
        r"crawler",
        r"spider",
        r"scraper",
        r"curl",
        r"wget",
        r"python",
        r"java",
        r"go-http-client",
        r"okhttp",
        r"node\.js",
        r"axios",
        r"postman",
        r"insomnia",
    )
]

LOCAL_REFERRER_HOST = "localhost"


def is_suspicious_user_agent(user_agent: Optional[str]) -> bool:
    if not user_agent:
        return False
    return any(pattern.search(user_agent) for pattern in SUSPICIOUS_UA_PATTERNS)


def is_valid_referrer(referrer: Optional[str], host: Optional[str]) -> bool:
    """A referrer is valid when it points at this host (or localhost in dev)."""
    if not referrer:
        return False
    return (host or "") in referrer or LOCAL_REFERRER_HOST in referrer
