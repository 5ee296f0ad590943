import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# Scheduler
SCHEDULER_GLOBAL_BUDGET = max(1, int(os.getenv("SCHEDULER_GLOBAL_BUDGET", "8")))
SCHEDULER_BLOCKED_THRESHOLD = max(1, int(os.getenv("SCHEDULER_BLOCKED_THRESHOLD", "4")))
SCHEDULER_MAX_ELAPSED_MS = max(2000, int(os.getenv("SCHEDULER_MAX_ELAPSED_MS", "22000")))
SCHEDULER_MIN_CASE_TARGET = max(1, int(os.getenv("SCHEDULER_MIN_CASE_TARGET", "8")))
SCHEDULER_STOP_ON_CANDIDATE_TARGET = _flag("SCHEDULER_STOP_ON_CANDIDATE_TARGET", "1")
SCHEDULER_ATTEMPT_DELAY_MS = max(0, int(os.getenv("SCHEDULER_ATTEMPT_DELAY_MS", "0")))
ADAPTIVE_VARIANT_SCHEDULER = _flag("ADAPTIVE_VARIANT_SCHEDULER", "1")
ATTEMPT_FETCH_TIMEOUT_MS = max(1200, int(os.getenv("ATTEMPT_FETCH_TIMEOUT_MS", "3000")))
ATTEMPT_FETCH_TIMEOUT_CAP_MS = max(1400, int(os.getenv("ATTEMPT_FETCH_TIMEOUT_CAP_MS", "3500")))
IK_MAX_429_RETRIES = max(0, int(os.getenv("IK_MAX_429_RETRIES", "0")))
IK_MAX_RETRY_AFTER_MS = max(500, int(os.getenv("IK_MAX_RETRY_AFTER_MS", "1500")))
PHASE_LIMITS = {
    "primary": 2,
    "fallback": 2,
    "rescue": 1,
    "micro": 1,
    "revolving": 1,
    "browse": 1,
}

# Hybrid retrieval
HYBRID_RETRIEVAL = _flag("HYBRID_RETRIEVAL", "0")
HYBRID_RRF_K = max(1, int(os.getenv("HYBRID_RRF_K", "60")))
HYBRID_LEXICAL_WEIGHT = float(os.getenv("HYBRID_LEXICAL_WEIGHT", "1.0"))
HYBRID_SEMANTIC_WEIGHT = float(os.getenv("HYBRID_SEMANTIC_WEIGHT", "1.15"))
HYBRID_SOURCE_DOMINANCE_CAP = _clamp(float(os.getenv("HYBRID_SOURCE_DOMINANCE_CAP", "0.7")), 0.5, 0.95)
HYBRID_SEMANTIC_TOPK = max(4, int(os.getenv("HYBRID_SEMANTIC_TOPK", "24")))
HYBRID_LEXICAL_TOPK = max(4, int(os.getenv("HYBRID_LEXICAL_TOPK", "18")))
HYBRID_RERANK_ENABLED = _flag("HYBRID_RERANK_ENABLED", "1")

# Proposition gate
PROVISIONAL_CONFIDENCE_CAP = _clamp(float(os.getenv("PROVISIONAL_CONFIDENCE_CAP", "0.70")), 0.45, 0.80)
EXPLORATORY_CONFIDENCE_CAP = _clamp(float(os.getenv("EXPLORATORY_CONFIDENCE_CAP", "0.45")), 0.30, 0.55)
STRICT_INTERSECTION_REQUIRED_WHEN_MULTIHOOK = _flag("STRICT_INTERSECTION_REQUIRED_WHEN_MULTIHOOK", "1")

# Diversity
DIVERSITY_MAX_PER_FINGERPRINT = max(1, int(os.getenv("DIVERSITY_MAX_PER_FINGERPRINT", "1")))
DIVERSITY_MAX_PER_COURT_DAY = max(1, int(os.getenv("DIVERSITY_MAX_PER_COURT_DAY", "2")))
DIVERSITY_CONTENT_SEED_MIN = max(20, int(os.getenv("DIVERSITY_CONTENT_SEED_MIN", "60")))
DIVERSITY_CORE_SEED_MIN = max(10, int(os.getenv("DIVERSITY_CORE_SEED_MIN", "30")))

# Engine
ALWAYS_RETURN = _flag("ALWAYS_RETURN", "1")
SYNTHETIC_FALLBACK = _flag("SYNTHETIC_FALLBACK", "1")
GUARANTEE_MIN_RESULTS = max(1, int(os.getenv("GUARANTEE_MIN_RESULTS", "3")))
GUARANTEE_EXTRA_ATTEMPTS = max(1, int(os.getenv("GUARANTEE_EXTRA_ATTEMPTS", "2")))
GUARANTEE_MIN_REMAINING_MS = max(500, int(os.getenv("GUARANTEE_MIN_REMAINING_MS", "2500")))
NEAR_MISS_MAX_RESULTS = max(1, int(os.getenv("NEAR_MISS_MAX_RESULTS", "12")))
MIN_RELEVANT_SCORE = float(os.getenv("MIN_RELEVANT_SCORE", "0.18"))

# Collaborators
KANOON_BASE_URL = os.getenv("KANOON_BASE_URL", "https://indiankanoon.org").rstrip("/")
KANOON_CHALLENGE_COOLDOWN_MS = max(10000, int(os.getenv("IK_CHALLENGE_COOLDOWN_MS", "30000")))
KANOON_USER_AGENT = os.getenv(
    "KANOON_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0 Safari/537.36",
)
SEMANTIC_INDEX_DIR = os.getenv("SEMANTIC_INDEX_DIR", "")
EMBEDDING_MODEL_NAME = os.getenv("EMBEDDING_MODEL_NAME", "all-MiniLM-L6-v2")
RATE_LIMIT_STORAGE_URI = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")
