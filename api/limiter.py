"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in both api/main.py (to mount as middleware) and
api/routes/v1/auth.py (to apply per-route limits with @limiter.limit()).

Using a single shared instance ensures all routes share the same in-memory
counter store. Each decorated route still gets its own window, so login and
refresh attempts are counted independently.

Policy:
  - Fixed window per client IP (auth.sessions.get_client_ip).
  - memory:// storage is process-local; the limits library sweeps expired
    windows on a background timer. Multi-process deployments need a shared
    storage_uri, which is out of scope.
  - Exceeding a limit raises RateLimitExceeded before the route body runs;
    api/main.py turns it into 429 TOO_MANY_REQUESTS.
"""

from slowapi import Limiter

from auth.sessions import get_client_ip
from core.config import get_settings

_settings = get_settings()

limiter = Limiter(key_func=get_client_ip, storage_uri="memory://", strategy="fixed-window")

LOGIN_LIMIT = _settings.login_rate_limit
REFRESH_LIMIT = _settings.refresh_rate_limit
LOGIN_LIMIT_MESSAGE = "Too many login attempts. Please try again later."
REFRESH_LIMIT_MESSAGE = "Too many refresh attempts. Please try again later."
