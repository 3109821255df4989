"""Application-wide request rate limiter instance.

Extracted into its own module so that API route modules can import
``limiter`` without creating a circular dependency through ``app.main``.
Keyed by the same proxy-aware client address the IP blocker uses.
"""

from slowapi import Limiter

from app.core.client_ip import get_client_address
from app.core.config import settings


limiter = Limiter(key_func=get_client_address, default_limits=[settings.API_RATE_LIMIT])
