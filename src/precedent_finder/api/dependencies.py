import logging
from flask import request, jsonify

from precedent_finder.api import config, state
from precedent_finder.pipeline.engine import PrecedentSearchEngine

logger = logging.getLogger(__name__)


def require_api_key():
    if config.API_KEY:
        key = request.headers.get("X-API-Key", "")
        if key != config.API_KEY:
            return jsonify({"error": "Unauthorized"}), 401
    return None


def get_engine() -> PrecedentSearchEngine:
    if state.engine is None:
        with state.engine_lock:
            if state.engine is None:
                state.engine = PrecedentSearchEngine()
                logger.info("search engine initialised")
    return state.engine


def set_engine(engine: PrecedentSearchEngine) -> None:
    """Swap the process engine (tests, alternate providers)."""
    with state.engine_lock:
        state.engine = engine
