"""
auth/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware), and in
api/routes/v1/session.py and web/routes.py (to apply per-route limits with
@limiter.limit()). It lives in auth/ because both layers need the same
instance and api/ and web/ never import each other.

Using a single shared instance ensures all routes share the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and rate limits would never trigger.

login_limit is passed as a callable so LOGIN_RATE_LIMIT is read from
settings when the limit is evaluated, not frozen at import time.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_limit() -> str:
    return get_settings().login_rate_limit
