"""Request gate: authentication, CORS and rate limiting.

Everything here runs before a request reaches the pipeline.
"""

from src.smarty.gate.auth import extract_bearer_token, verify_bearer_token
from src.smarty.gate.cors import PreflightCORSMiddleware, cors_headers
from src.smarty.gate.rate_limit import (
    RateLimitDecision,
    RateLimiter,
    RateLimitRecord,
    client_identity,
)

__all__ = [
    "PreflightCORSMiddleware",
    "RateLimitDecision",
    "RateLimitRecord",
    "RateLimiter",
    "client_identity",
    "cors_headers",
    "extract_bearer_token",
    "verify_bearer_token",
]
