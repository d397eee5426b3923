"""HTTP API for the RAG service."""

from .app import create_app
from .rate_limit import RateLimiter

__all__ = ["create_app", "RateLimiter"]
