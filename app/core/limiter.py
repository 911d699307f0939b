from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import settings

# Default limit applies to every route through SlowAPIMiddleware; health checks and webhooks are exempt.
limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
