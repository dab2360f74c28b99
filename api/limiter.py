"""
api/limiter.py -- Shared slowapi rate limiter instance.

api/main.py mounts it as middleware; api/routes/auth.py and web/routes.py
apply per-route limits with @limiter.limit(). A single shared instance means
the JSON and form login endpoints count against one in-memory store.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
