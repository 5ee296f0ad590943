from typing import Any, Optional
import threading

from precedent_finder.pipeline.engine import PrecedentSearchEngine

# Search engine (built lazily on first request)
engine: Optional[PrecedentSearchEngine] = None
engine_lock = threading.Lock()

# Metrics
REQUEST_COUNT: Any = None
REQUEST_LATENCY: Any = None
SEARCH_STATUS_TOTAL: Any = None
