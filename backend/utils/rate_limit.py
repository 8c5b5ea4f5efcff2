"""
utils/rate_limit.py — The slowapi limiter shared by the app and every router.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from config import Config

limiter = Limiter(key_func=get_remote_address, enabled=Config.RATELIMIT_ENABLED)
