"""Rate limiter instance for SlowAPI.

Shared so both main (app.state.limiter) and route modules can use the same
instance without circular imports. Limit strings live here.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

# Single source of truth for rate limit strings and decorators.
TRIGGER_LIMIT = "60/minute"  # enqueue, cancel, cursor reset
WEBHOOK_LIMIT = "300/minute"  # provider push notifications
QUEUE_ADMIN_LIMIT = "10/minute"  # process / cleanup / auto-schedule

limit_triggers = limiter.limit(TRIGGER_LIMIT)
limit_webhooks = limiter.limit(WEBHOOK_LIMIT)
limit_queue_admin = limiter.limit(QUEUE_ADMIN_LIMIT)
