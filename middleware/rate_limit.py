"""Per-client rate limiting for the spreadsheet API."""
from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from services.engine_config import EngineSettings

logger = logging.getLogger(__name__)

# Requests that rewrite a workbook or serialize it to disk
WRITE_METHODS = {"POST", "PUT", "DELETE"}

# Seconds between sweeps of idle client windows
PRUNE_INTERVAL = 60


@dataclass
class RateLimitConfig:
    """Request budgets per client."""
    requests_per_minute: int = 120
    write_requests_per_minute: int = 30  # Uploads, mutations and exports
    burst_limit: int = 20  # Max requests in 1 second

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> "RateLimitConfig":
        return cls(
            requests_per_minute=settings.rate_limit_per_minute,
            write_requests_per_minute=settings.rate_limit_writes_per_minute,
            burst_limit=settings.rate_limit_burst,
        )


@dataclass
class ClientWindow:
    """Timestamps of a client's recent requests, oldest first."""
    reads: Deque[float] = field(default_factory=deque)
    writes: Deque[float] = field(default_factory=deque)
    burst: Deque[float] = field(default_factory=deque)

    def expire(self, now: float) -> None:
        for window, span in ((self.reads, 60), (self.writes, 60), (self.burst, 1)):
            while window and window[0] <= now - span:
                window.popleft()

    @property
    def is_idle(self) -> bool:
        return not (self.reads or self.writes or self.burst)


def _too_many(detail: str, retry_after: float) -> JSONResponse:
    seconds = max(1, int(retry_after))
    return JSONResponse(
        status_code=429,
        content={"detail": detail, "retry_after": seconds},
        headers={"Retry-After": str(seconds)},
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window limits per client, stricter for write requests."""

    def __init__(self, app, config: RateLimitConfig | None = None):
        super().__init__(app)
        self.config = config or RateLimitConfig()
        self.clients: Dict[str, ClientWindow] = {}
        self._last_prune = 0.0

    def _client_id(self, request: Request) -> str:
        # Use X-Forwarded-For if behind a proxy, otherwise use client host
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def prune(self, now: float) -> None:
        """Forget clients with no request inside any window."""
        for client_id in list(self.clients):
            state = self.clients[client_id]
            state.expire(now)
            if state.is_idle:
                del self.clients[client_id]
        self._last_prune = now

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        client_id = self._client_id(request)
        now = time.time()
        if now - self._last_prune >= PRUNE_INTERVAL:
            self.prune(now)
        state = self.clients.setdefault(client_id, ClientWindow())
        state.expire(now)

        is_write = request.method in WRITE_METHODS
        window = state.writes if is_write else state.reads
        limit = self.config.write_requests_per_minute if is_write else self.config.requests_per_minute

        if len(state.burst) >= self.config.burst_limit:
            logger.warning(f"[RATE] {client_id}: burst limit hit on {request.url.path}")
            return _too_many("Rate limit exceeded: too many requests per second", 1)
        if len(window) >= limit:
            logger.warning(f"[RATE] {client_id}: {limit}/min limit hit on {request.url.path}")
            return _too_many(f"Rate limit exceeded: {limit} requests per minute", 60 - (now - window[0]))

        window.append(now)
        state.burst.append(now)

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(limit - len(window))
        return response
