"""
In-memory sliding-window rate limiting, exposed as FastAPI dependencies.

State is per process; buckets are keyed by limiter name and client IP.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from fastapi import HTTPException, Request, status

_state: dict[str, list[float]] = {}
_hits_since_sweep: dict[str, int] = {}

# Idle buckets of a limiter are dropped after this many hits on it.
SWEEP_EVERY = 1000


@dataclass(frozen=True)
class RateLimiter:
    name: str
    max_calls: int
    window_seconds: int
    message: str

    def hit(self, client_key: str, *, now: float | None = None) -> None:
        current = time.monotonic() if now is None else now
        self._maybe_sweep(current)

        bucket_key = f"{self.name}:{client_key}"
        entries = [ts for ts in _state.get(bucket_key, ()) if current - ts < self.window_seconds]
        _state[bucket_key] = entries
        if len(entries) >= self.max_calls:
            retry_after = int(self.window_seconds - (current - entries[0])) + 1
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=self.message,
                headers={"Retry-After": str(max(retry_after, 1))},
            )
        entries.append(current)

    def sweep(self, now: float) -> int:
        """
        Drop this limiter's buckets whose newest hit is outside the window.
        """
        prefix = f"{self.name}:"
        idle = [
            key
            for key, entries in _state.items()
            if key.startswith(prefix) and (not entries or now - entries[-1] >= self.window_seconds)
        ]
        for key in idle:
            del _state[key]
        return len(idle)

    def _maybe_sweep(self, now: float) -> None:
        count = _hits_since_sweep.get(self.name, 0) + 1
        if count >= SWEEP_EVERY:
            self.sweep(now)
            count = 0
        _hits_since_sweep[self.name] = count

    async def __call__(self, request: Request) -> None:
        client_key = request.client.host if request.client else "anon"
        self.hit(client_key)


api_limiter = RateLimiter(
    name="api",
    max_calls=100,
    window_seconds=15 * 60,
    message="Too many requests from this IP, please try again later.",
)

chat_limiter = RateLimiter(
    name="chat",
    max_calls=20,
    window_seconds=60,
    message="Too many chat messages, please slow down.",
)

auth_limiter = RateLimiter(
    name="auth",
    max_calls=5,
    window_seconds=15 * 60,
    message="Too many authentication attempts, please try again later.",
)


def reset() -> None:
    _state.clear()
    _hits_since_sweep.clear()
