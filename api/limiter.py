"""
api/limiter.py -- Per-app slowapi rate limiter.

create_app() calls build_limiter() once and hands the instance both to
app.state.limiter (where SlowAPIMiddleware looks for it) and to the route
factories that wrap handlers with limiter.limit(). Each app therefore owns
its counters and its on/off switch.

The limit wrapper must be applied before the handler is routed: slowapi's
middleware skips any route whose handler carries a decorator limit, so an
unwrapped handler in the route table is never counted.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import Settings

REGISTER_LIMIT = "20/minute"
REFRESH_LIMIT = "30/minute"


def build_limiter(settings: Settings) -> Limiter:
    return Limiter(
        key_func=get_remote_address,
        storage_uri="memory://",
        enabled=settings.rate_limit_enabled,
    )
