"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in both api/main.py (to mount as middleware) and
api/routes/auth.py (to apply the login limit with @limiter.limit()).

Using a single shared instance ensures all routes share the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and rate limits would never trigger.

Limits are read from Settings at request time (callables, not strings), so
the module can be imported before configuration is loaded.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings


def global_limit() -> str:
    return get_settings().global_rate_limit


def login_limit() -> str:
    return get_settings().login_rate_limit


limiter = Limiter(key_func=get_remote_address, default_limits=[global_limit], storage_uri="memory://")
