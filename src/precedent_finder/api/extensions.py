from flask import request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from precedent_finder.api import config


def _client_key() -> str:
    # API-key holders share one bucket per key, anonymous callers one per address
    return request.headers.get("X-API-Key") or get_remote_address()


limiter = Limiter(
    key_func=_client_key,
    default_limits=[config.DEFAULT_RATE_LIMIT],
    storage_uri=config.RATE_LIMIT_STORAGE_URI,
    headers_enabled=True,
)
