"""Prometheus instruments for the retrieval pipeline.

Instruments are registered once at import on the default registry and exposed
by the API's ``/metrics`` route.
"""
from prometheus_client import Counter, Histogram

RETRIEVAL_ATTEMPTS = Counter(
    'precedent_finder_retrieval_attempts_total',
    'Retrieval attempts issued by the scheduler',
    ['phase', 'outcome'],
)
SCHEDULER_STOPS = Counter(
    'precedent_finder_scheduler_stops_total',
    'Scheduler runs by stop reason',
    ['stop_reason'],
)
BLOCKED_SIGNALS = Counter(
    'precedent_finder_blocked_signals_total',
    'Throttling or challenge signals observed',
    ['kind'],
)
FUSION_LATENCY = Histogram(
    'precedent_finder_fusion_latency_seconds',
    'Hybrid retrieval latency per attempt',
)
GATE_RESULTS = Counter(
    'precedent_finder_gate_results_total',
    'Scored candidates by proposition tier',
    ['tier'],
)
SYNTHETIC_FALLBACKS = Counter(
    'precedent_finder_synthetic_fallbacks_total',
    'Requests answered with the advisory fallback',
    ['reason'],
)
PIPELINE_LATENCY = Histogram(
    'precedent_finder_pipeline_latency_seconds',
    'End-to-end pipeline latency',
)
COLLABORATOR_FAILURES = Counter(
    'precedent_finder_collaborator_failures_total',
    'Recoverable failures of optional collaborators',
    ['collaborator'],
)

__all__ = [
    'RETRIEVAL_ATTEMPTS', 'SCHEDULER_STOPS', 'BLOCKED_SIGNALS', 'FUSION_LATENCY', 'GATE_RESULTS',
    'SYNTHETIC_FALLBACKS', 'PIPELINE_LATENCY', 'COLLABORATOR_FAILURES',
]
