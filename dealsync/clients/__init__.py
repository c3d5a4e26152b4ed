"""HTTP clients for the external record stores."""

from dealsync.clients.deal_client import PipedriveDealClient, RateLimiter

__all__ = ["PipedriveDealClient", "RateLimiter"]
