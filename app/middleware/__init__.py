from .ip_blocker import IPBlockerMiddleware

__all__ = ["IPBlockerMiddleware"]
