import logging
import threading
import time
from typing import Dict, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse

from imagemax.core.config import settings

logger = logging.getLogger(__name__)


class FixedWindowRateLimiter:
    """Per-key request counter that resets once the window has passed."""

    def __init__(self, max_requests: int, window_seconds: int):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()
        self._next_prune = 0.0

    def _prune(self, now: float):
        expired = [key for key, (_, reset_at) in self._windows.items() if now > reset_at]
        for key in expired:
            del self._windows[key]
        self._next_prune = now + self.window_seconds

    def hit(self, key: str) -> bool:
        now = time.monotonic()
        with self._lock:
            # expired windows are swept at most once per window
            if now > self._next_prune:
                self._prune(now)
            count, reset_at = self._windows.get(key, (0, 0.0))
            if now > reset_at:
                self._windows[key] = (1, now + self.window_seconds)
                return True
            if count >= self.max_requests:
                return False
            self._windows[key] = (count + 1, reset_at)
            return True

    def reset(self):
        with self._lock:
            self._windows.clear()
            self._next_prune = 0.0


rate_limiter = FixedWindowRateLimiter(settings.RATE_LIMIT_MAX_REQUESTS, settings.RATE_LIMIT_WINDOW_SECONDS)


async def upload_guard_middleware(request: Request, call_next):
    if request.method == "POST" and request.url.path.startswith("/api/"):
        ip = request.client.host if request.client else "anonymous"
        if not rate_limiter.hit(ip):
            logger.info("Rate limit hit for %s on %s", ip, request.url.path)
            return JSONResponse(
                status_code=429,
                content={"error": "Too many requests", "message": "Please try again later"},
            )

        content_type = request.headers.get("content-type", "")
        if "multipart/form-data" in content_type:
            content_length = request.headers.get("content-length")
            try:
                too_large = content_length is not None and int(content_length) > settings.MAX_FILE_SIZE
            except ValueError:
                return JSONResponse(
                    status_code=400,
                    content={"error": "Invalid request", "message": "Failed to process file upload"},
                )
            if too_large:
                return JSONResponse(
                    status_code=413,
                    content={"error": "File too large", "message": "Please upload a file smaller than 10MB"},
                )

    return await call_next(request)
