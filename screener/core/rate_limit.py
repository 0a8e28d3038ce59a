"""
In-memory per-IP rate limiter for public endpoints.
"""
import logging
import math
import time
from collections import defaultdict
from typing import Dict, List, Tuple
from fastapi import Request, HTTPException, status

from screener.core import config

logger = logging.getLogger(__name__)

# {(scope, ip): [timestamps of accepted requests]}
rate_limit_store: Dict[Tuple[str, str], List[float]] = defaultdict(list)


def get_client_ip(request: Request) -> str:
    """Extract client IP address from request."""
    # Behind a proxy the first forwarded address is the client
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"


def check_rate_limit(request: Request, scope: str, max_requests: int, window_seconds: int) -> int:
    """
    Check if client has exceeded rate limit.

    Args:
        request: FastAPI request object
        scope: Name of the limited endpoint; each scope is counted separately
        max_requests: Maximum number of requests allowed
        window_seconds: Time window in seconds

    Returns:
        Requests left in the current window

    Raises:
        HTTPException: 429 with Retry-After if rate limit exceeded
    """
    ip = get_client_ip(request)
    key = (scope, ip)
    now = time.time()

    # Clean old entries (older than window)
    cutoff = now - window_seconds
    rate_limit_store[key] = [timestamp for timestamp in rate_limit_store[key] if timestamp > cutoff]

    request_count = len(rate_limit_store[key])
    if request_count >= max_requests:
        retry_after = max(1, math.ceil(rate_limit_store[key][0] + window_seconds - now))
        logger.warning(f"Rate limit exceeded: scope={scope}, ip={ip} ({request_count} requests in {window_seconds}s)")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests. Please try again later.",
            headers={"Retry-After": str(retry_after)},
        )

    rate_limit_store[key].append(now)
    logger.debug(f"Rate limit check passed: scope={scope}, ip={ip} ({request_count + 1}/{max_requests})")
    return max_requests - request_count - 1


def public_apply_rate_limit(request: Request) -> int:
    """Dependency limiting public job applications per client IP."""
    return check_rate_limit(
        request,
        scope="public_apply",
        max_requests=config.PUBLIC_APPLY_RATE_LIMIT,
        window_seconds=config.PUBLIC_APPLY_RATE_WINDOW_SECONDS,
    )
