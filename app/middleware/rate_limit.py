from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request, Response
import redis
from app.config import settings
from app.utils.logger import get_logger, actor_context

logger = get_logger(__name__)

redis_client = None
if settings.RATE_LIMIT_ENABLED:
    try:
        redis_client = redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            decode_responses=True,
            retry_on_timeout=True,
            socket_connect_timeout=5,
            socket_timeout=5
        )
        redis_client.ping()
        logger.info(f"Rate limiting Redis connected: {settings.REDIS_HOST}:{settings.REDIS_PORT}")
    except Exception as e:
        logger.warning(f"Rate limiting Redis connection failed: {e}. Using in-memory fallback.")
        redis_client = None

def get_user_id_or_ip(request: Request):
    """Key requests by authenticated user when known, otherwise by client IP."""
    user_id = request.headers.get("X-User-ID") or actor_context.get()
    if user_id:
        return f"user:{user_id}"
    return f"ip:{get_remote_address(request)}"

limiter = Limiter(
    key_func=get_user_id_or_ip,
    storage_uri=f"redis://{settings.REDIS_HOST}:{settings.REDIS_PORT}" if redis_client else "memory://",
    default_limits=["1000/hour"],
    enabled=settings.RATE_LIMIT_ENABLED,
)

RATE_LIMITS = {
    # Connection requests are the main spam vector
    "connection_request": "30/hour",
    "connection_update": "120/hour",

    "trade_write": "100/hour",
    "proposal": "50/hour",

    "api_read": "300/hour",
    "api_write": "100/hour",

    "admin": "60/minute",
    "health": "300/minute"
}

def get_rate_limit_for_endpoint(endpoint: str) -> str:
    """Get rate limit configuration for specific endpoint."""
    return RATE_LIMITS.get(endpoint, "100/hour")

async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """429 with Retry-After and the limit that was hit."""
    return Response(
        content=f"Rate limit exceeded: {exc.detail}. Please try again later.",
        status_code=429,
        headers={
            "Retry-After": "60",
            "X-RateLimit-Limit": str(exc.detail),
            "X-RateLimit-Remaining": "0",
        }
    )
