"""Redis-backed rate limiting and abuse detection."""
import logging
import time
from typing import Optional, Tuple

import redis
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from storefront.errors import AuthError
from storefront.monitoring import rate_limit_exceeded_counter, suspicious_activity_counter
from storefront.security import decode_access_token

logger = logging.getLogger(__name__)

SUSPICIOUS_WINDOW_SECONDS = 300

# (status predicate, key tag, threshold, activity type)
SUSPICIOUS_PATTERNS = (
    (lambda status: status == 401, "401", 5, "credential_stuffing"),
    (lambda status: status == 404, "404", 10, "endpoint_scanning"),
    (lambda status: 400 <= status < 500, "4xx", 20, "abuse"),
)


class RedisRateLimiter(BaseHTTPMiddleware):
    """
    Distributed rate limiter using Redis sorted sets as sliding windows.

    Two tiers are checked on every request:
    - Per client IP, with a high limit since many customers can share one IP
    - Per authenticated user (the bearer token's subject), with a lower limit

    Redis failures fail open: the request is allowed and the error is logged.
    """

    def __init__(
        self,
        app,
        redis_client: redis.Redis,
        requests_per_minute_ip: int = 600,
        requests_per_minute_user: int = 120,
        window_seconds: int = 60
    ):
        """
        Initialize Redis-backed rate limiter.

        Args:
            app: ASGI application
            redis_client: Redis connection
            requests_per_minute_ip: Max requests per IP per window
            requests_per_minute_user: Max requests per user per window
            window_seconds: Sliding window size in seconds
        """
        super().__init__(app)
        self.redis = redis_client
        self.requests_per_minute_ip = requests_per_minute_ip
        self.requests_per_minute_user = requests_per_minute_user
        self.window_seconds = window_seconds

    def _check_rate_limit(self, key: str, limit: int, window: int) -> Tuple[bool, int]:
        """
        Check and record one request against a sliding window.

        Args:
            key: Redis key for this limit (e.g., "rate:ip:192.168.1.1")
            limit: Maximum requests allowed
            window: Time window in seconds

        Returns:
            Tuple of (is_allowed, current_count)
        """
        try:
            current_time = time.time()

            pipe = self.redis.pipeline()
            pipe.zremrangebyscore(key, 0, current_time - window)
            pipe.zcard(key)
            pipe.zadd(key, {str(current_time): current_time})
            pipe.expire(key, window + 1)
            results = pipe.execute()

            # Count before the current request was added
            count = results[1]
            return count < limit, count + 1

        except redis.RedisError as e:
            logger.error(f"Redis rate limit error: {e}")
            return True, 0

    @staticmethod
    def _client_ip(request: Request) -> str:
        if "x-forwarded-for" in request.headers:
            return request.headers["x-forwarded-for"].split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    @staticmethod
    def _user_id(request: Request) -> Optional[int]:
        auth_header = request.headers.get("authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return None
        try:
            return decode_access_token(auth_header.split(" ", 1)[1])["user_id"]
        except AuthError:
            return None

    def _rejection(self, limit_type: str, limit: int) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content={
                "success": False,
                "message": f"Rate limit exceeded for {limit_type}. Maximum {limit} requests per minute.",
            },
            headers={"Retry-After": str(self.window_seconds)},
        )

    async def dispatch(self, request: Request, call_next):
        """
        Apply both rate limit tiers, then watch the response for abuse patterns.

        Returns:
            Response, or 429 if rate limited
        """
        client_ip = self._client_ip(request)
        user_id = self._user_id(request)

        ip_allowed, ip_count = self._check_rate_limit(
            f"rate:ip:{client_ip}",
            self.requests_per_minute_ip,
            self.window_seconds
        )
        if not ip_allowed:
            rate_limit_exceeded_counter.add(1, {"limit_type": "ip"})
            logger.warning("IP rate limit exceeded", extra={
                "client_ip": client_ip,
                "endpoint": request.url.path,
                "requests_in_window": ip_count,
                "limit": self.requests_per_minute_ip
            })
            return self._rejection("IP", self.requests_per_minute_ip)

        if user_id is not None:
            user_allowed, user_count = self._check_rate_limit(
                f"rate:user:{user_id}",
                self.requests_per_minute_user,
                self.window_seconds
            )
            if not user_allowed:
                rate_limit_exceeded_counter.add(1, {"limit_type": "user"})
                logger.warning("User rate limit exceeded", extra={
                    "user_id": user_id,
                    "client_ip": client_ip,
                    "endpoint": request.url.path,
                    "requests_in_window": user_count,
                    "limit": self.requests_per_minute_user
                })
                return self._rejection("user", self.requests_per_minute_user)

        response = await call_next(request)

        self._detect_suspicious_activity(request, response.status_code, client_ip)

        return response

    def _detect_suspicious_activity(self, request: Request, status_code: int, client_ip: str) -> None:
        """
        Record error responses per IP and flag bursts.

        Patterns (within five minutes):
        - Credential stuffing: 5+ 401s
        - Endpoint scanning: 10+ 404s
        - Abuse: 20+ 4xx responses
        """
        try:
            current_time = time.time()
            for matches, tag, threshold, activity in SUSPICIOUS_PATTERNS:
                if not matches(status_code):
                    continue

                key = f"suspicious:{tag}:{client_ip}"
                self.redis.zadd(key, {str(current_time): current_time})
                self.redis.expire(key, SUSPICIOUS_WINDOW_SECONDS + 1)

                count = self.redis.zcount(key, current_time - SUSPICIOUS_WINDOW_SECONDS, current_time)
                if count >= threshold:
                    suspicious_activity_counter.add(1, {"type": activity})
                    logger.warning(f"Suspicious activity: {activity}", extra={
                        "client_ip": client_ip,
                        "endpoint": request.url.path,
                        "count": count
                    })

        except redis.RedisError as e:
            logger.error(f"Error detecting suspicious activity: {e}")
