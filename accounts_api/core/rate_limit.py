"""Process-wide slowapi limiter, keyed by client address.

Route modules decorate endpoints with ``settings.rate_limit`` or the
stricter ``settings.auth_rate_limit`` for register/login.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from accounts_api.core.config import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)
