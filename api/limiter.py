"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and in the route modules
(to apply per-route limits with @limiter.limit()). Limits are read lazily from
Settings (LOGIN_RATE_LIMIT, EMAIL_RATE_LIMIT) so tests can raise them.

A single shared instance means all routes share the same in-memory counter
store; separate instances would each count in isolation and never trigger.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
