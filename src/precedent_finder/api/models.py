from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field

from precedent_finder.api import config
from precedent_finder.pipeline.types import CaseCandidate


class SearchRequest(BaseModel):
    query: str = Field(min_length=1, max_length=5000)
    max_results: int = Field(default=config.MAX_RESULTS_DEFAULT, ge=1, le=20)
    debug: bool = False
    candidates: Optional[List[CaseCandidate]] = Field(default=None, max_length=config.MAX_PREFETCHED_CANDIDATES)
    reasoner_plan: Optional[Dict[str, Any]] = None
    client_blocked_kind: Optional[Literal["local_cooldown", "cloudflare_challenge", "rate_limit"]] = None


class QueryCoachRequest(BaseModel):
    query: str = Field(min_length=1, max_length=5000)
