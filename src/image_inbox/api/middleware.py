"""HTTP middleware: security headers, CORS and per-client rate limiting."""

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from image_inbox.config import Settings, parse_cors_origins, parse_trusted_proxies

CONTENT_SECURITY_POLICY = (
    "default-src 'self'; img-src 'self' data: blob:; style-src 'self' 'unsafe-inline'"
)

_PRUNE_THRESHOLD = 10_000


@dataclass
class FixedWindowRateLimiter:
    """Counts requests per client in fixed time windows."""

    max_requests: int
    window_seconds: float
    clock: Callable[[], float] = time.monotonic
    _windows: dict[str, tuple[float, int]] = field(default_factory=dict)

    def allow(self, client_id: str) -> bool:
        """Record a request and return whether it is within the limit."""
        now = self.clock()
        started_at, count = self._windows.get(client_id, (now, 0))
        if now - started_at >= self.window_seconds:
            started_at, count = now, 0
        count += 1
        self._windows[client_id] = (started_at, count)
        if len(self._windows) > _PRUNE_THRESHOLD:
            self._prune(now)
        return count <= self.max_requests

    def _prune(self, now: float) -> None:
        self._windows = {
            key: window
            for key, window in self._windows.items()
            if now - window[0] < self.window_seconds
        }


def apply_security_headers(response: Response) -> Response:
    """Add CSP and nosniff headers unless the route set its own."""
    response.headers.setdefault("Content-Security-Policy", CONTENT_SECURITY_POLICY)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    return response


def client_identifier(
    request: Request, trusted_proxies: frozenset[str] = frozenset()
) -> str:
    """Identify a client by its peer address.

    X-Forwarded-For is only read when the peer is a trusted proxy, and
    then the rightmost hop that is not itself a trusted proxy is used.
    """
    peer = request.client.host if request.client else "unknown"
    forwarded = request.headers.get("X-Forwarded-For")
    if peer not in trusted_proxies or not forwarded:
        return peer
    hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
    for hop in reversed(hops):
        if hop not in trusted_proxies:
            return hop
    return hops[0] if hops else peer


def install_middleware(
    app: FastAPI, settings: Settings, limiter: FixedWindowRateLimiter | None = None
) -> FixedWindowRateLimiter:
    """Attach CORS, rate limiting and security headers to the app."""
    resolved_limiter = limiter or FixedWindowRateLimiter(
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    trusted_proxies = parse_trusted_proxies(settings.trusted_proxies)

    @app.middleware("http")
    async def rate_limit_and_secure(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if request.url.path != "/health" and not resolved_limiter.allow(
            client_identifier(request, trusted_proxies)
        ):
            response: Response = PlainTextResponse(
                "Too many requests", status_code=status.HTTP_429_TOO_MANY_REQUESTS
            )
        else:
            response = await call_next(request)
        return apply_security_headers(response)

    origins = parse_cors_origins(settings.cors_origins)
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_methods=["GET"],
            allow_headers=["*"],
        )
    return resolved_limiter
