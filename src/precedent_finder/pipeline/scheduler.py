"""Adaptive retrieval scheduler.

Walks the query variants phase by phase (primary, fallback, rescue, micro,
revolving, browse), one attempt outstanding at a time. Each phase issues at
most its quota of variants; inside a phase the order is re-sorted before every
attempt by declared priority boosted with the running utility of the
variant's canonical key:

    priority + mean_utility*40 + case_like_rate*18 - challenge_rate*14 - timeout_rate*8

After every attempt the run stops, in this order, on:
  enough_candidates  distinct case candidates >= target (when enabled)
  budget_exhausted   attempt budget or wall-clock budget used up
  blocked            consecutive throttle/challenge signals >= threshold
and otherwise ends as ``completed`` once the variants run out. A local
cooldown stops the run as blocked immediately.

The carry state is resumable: passing it back runs more variants against the
same signatures, utility map and candidate pool.
"""
from __future__ import annotations
import logging
import math
import re
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from precedent_finder import config
from precedent_finder.errors import BlockedSignal, ProviderError
from precedent_finder.metrics import BLOCKED_SIGNALS, RETRIEVAL_ATTEMPTS, SCHEDULER_STOPS
from precedent_finder.pipeline.classifier import classify_candidate
from precedent_finder.pipeline.types import (
    PHASE_ORDER,
    RELAXED_PHASES,
    AttemptDebug,
    CandidateProvenance,
    CaseCandidate,
    IntentProfile,
    QueryVariant,
    RetrievalAttempt,
    RetrievalQuery,
    SchedulerCarryState,
    SchedulerResult,
    VariantUtilitySnapshot,
)
from precedent_finder.retrieval.providers import RetrievalProvider

logger = logging.getLogger(__name__)

HIGH_PRIORITY = 80
MIN_ATTEMPT_WINDOW_MS = 1000
MIN_ATTEMPT_TIMEOUT_MS = 700
MAX_RESULTS_PER_ATTEMPT = 14
STRUCTURED_NOISE_RE = re.compile(r"\b(supreme court|high court|judgment)\b", re.IGNORECASE)


@dataclass
class SchedulerConfig:
    global_budget: int = field(default_factory=lambda: config.SCHEDULER_GLOBAL_BUDGET)
    blocked_threshold: int = field(default_factory=lambda: config.SCHEDULER_BLOCKED_THRESHOLD)
    max_elapsed_ms: int = field(default_factory=lambda: config.SCHEDULER_MAX_ELAPSED_MS)
    min_case_target: int = field(default_factory=lambda: config.SCHEDULER_MIN_CASE_TARGET)
    stop_on_candidate_target: bool = field(default_factory=lambda: config.SCHEDULER_STOP_ON_CANDIDATE_TARGET)
    fetch_timeout_ms: int = field(default_factory=lambda: config.ATTEMPT_FETCH_TIMEOUT_MS)
    fetch_timeout_cap_ms: int = field(default_factory=lambda: config.ATTEMPT_FETCH_TIMEOUT_CAP_MS)
    max_429_retries: int = field(default_factory=lambda: config.IK_MAX_429_RETRIES)
    max_retry_after_ms: int = field(default_factory=lambda: config.IK_MAX_RETRY_AFTER_MS)
    attempt_delay_ms: int = field(default_factory=lambda: config.SCHEDULER_ATTEMPT_DELAY_MS)
    adaptive: bool = field(default_factory=lambda: config.ADAPTIVE_VARIANT_SCHEDULER)
    phase_limits: Dict[str, int] = field(default_factory=lambda: dict(config.PHASE_LIMITS))
    max_pages_by_phase: Dict[str, int] = field(default_factory=lambda: {'primary': 2, 'fallback': 2})


def phrase_for_structured_search(phrase: str) -> str:
    stripped = re.sub(r"\s+", " ", STRUCTURED_NOISE_RE.sub(" ", phrase or "")).strip()
    if not stripped:
        return ""
    if len(stripped.split()) == 1:
        return f"{stripped} judgment"
    return stripped


def court_type_for(variant: QueryVariant) -> Optional[str]:
    return {"SC": "supremecourt", "HC": "highcourts"}.get(variant.court_scope)


def query_signature(phase: str, phrase: str, court_type: Optional[str], from_date: Optional[str],
                    to_date: Optional[str]) -> str:
    return "|".join([phase, phrase.lower(), court_type or "", from_date or "", to_date or ""])


def canonical_variant_key(variant: QueryVariant) -> str:
    explicit = (variant.canonical_key or "").strip().lower()
    if explicit:
        return explicit
    return f"{variant.phase}:{variant.strictness}:{variant.phrase.lower()}"


def compute_attempt_utility(cases: List[CaseCandidate], parsed_count: int, challenge: bool, timed_out: bool,
                            status: int) -> Tuple[float, float, float]:
    """Return (utility, case-like ratio, statute-like ratio) for one attempt."""
    blocked = challenge or status == 429
    if parsed_count <= 0 or not cases:
        return (0.02 if blocked else 0.08 if timed_out else 0.14), 0.0, 0.0
    kinds = [classify_candidate(c).kind for c in cases]
    case_like = sum(1 for k in kinds if k in ("case", "unknown")) / len(kinds)
    statute_like = sum(1 for k in kinds if k == "statute") / len(kinds)
    raw = (
        min(parsed_count, 16) / 16 * 0.4
        + case_like * 0.45
        - statute_like * 0.18
        - (0.22 if blocked else 0)
        - (0.1 if timed_out else 0)
    )
    return max(0.0, min(1.0, raw)), case_like, statute_like


def _sort_score(variant: QueryVariant, utility: Dict[str, VariantUtilitySnapshot]) -> float:
    snap = utility.get(canonical_variant_key(variant))
    if snap is None:
        return float(variant.priority)
    return (
        variant.priority
        + snap.mean_utility * 40
        + snap.case_like_rate * 18
        - snap.challenge_rate * 14
        - snap.timeout_rate * 8
    )


def sort_phase_variants(variants: List[QueryVariant],
                        utility: Dict[str, VariantUtilitySnapshot]) -> List[QueryVariant]:
    return sorted(variants, key=lambda v: (_sort_score(v, utility), v.priority), reverse=True)


def update_variant_utility(utility: Dict[str, VariantUtilitySnapshot], key: str, score: float, case_like: float,
                           statute_like: float, challenge: bool, timed_out: bool,
                           status: int) -> VariantUtilitySnapshot:
    prev = utility.get(key) or VariantUtilitySnapshot()
    n = prev.attempts + 1

    def _mean(old: float, new: float) -> float:
        return round((old * (n - 1) + new) / n, 4)

    snap = VariantUtilitySnapshot(
        attempts=n,
        mean_utility=_mean(prev.mean_utility, score),
        case_like_rate=_mean(prev.case_like_rate, case_like),
        statute_like_rate=_mean(prev.statute_like_rate, statute_like),
        challenge_rate=_mean(prev.challenge_rate, 1.0 if challenge else 0.0),
        timeout_rate=_mean(prev.timeout_rate, 1.0 if timed_out else 0.0),
        last_status=status,
    )
    utility[key] = snap
    return snap


def update_candidate_provenance(provenance: Dict[str, CandidateProvenance], cases: List[CaseCandidate],
                                variant: QueryVariant, utility_score: float) -> None:
    key = canonical_variant_key(variant)
    for c in cases:
        entry = provenance.setdefault(c.url, CandidateProvenance(best_utility=utility_score))
        for bucket, value in ((entry.variant_ids, variant.id), (entry.canonical_keys, key),
                              (entry.phases, variant.phase)):
            if value not in bucket:
                bucket.append(value)
        entry.best_utility = max(entry.best_utility, utility_score)
        if variant.strictness == "strict":
            entry.strict_hits += 1
        else:
            entry.relaxed_hits += 1
        if variant.priority >= HIGH_PRIORITY:
            entry.high_priority_hits += 1


def candidate_quality_score(c: CaseCandidate) -> float:
    score = 0.0
    if c.court != "UNKNOWN":
        score += 10
    if c.detail_text:
        score += 12
    if c.detail_artifact and c.detail_artifact.evidence_windows:
        score += 8
    if c.court_text:
        score += 4
    if c.full_document_url and c.full_document_url != c.url:
        score += 2
    if c.cites_count is not None:
        score += 1
    if c.cited_by_count is not None:
        score += 1
    return score + min(len(c.snippet), 600) / 120


def merge_duplicate_candidate(existing: CaseCandidate, incoming: CaseCandidate) -> CaseCandidate:
    base, other = (incoming, existing) if candidate_quality_score(incoming) > candidate_quality_score(existing) \
        else (existing, incoming)
    artifact = base.detail_artifact or other.detail_artifact
    detail = base.detail_text or other.detail_text or (
        "\n".join(artifact.evidence_windows) if artifact and artifact.evidence_windows else None)
    return base.model_copy(update={
        'title': base.title if base.title and not base.title.lower().startswith("untitled case") else (other.title or base.title),
        'snippet': base.snippet if len(base.snippet) >= len(other.snippet) else other.snippet,
        'court': base.court if base.court != "UNKNOWN" else other.court,
        'court_text': base.court_text or other.court_text,
        'cites_count': base.cites_count if base.cites_count is not None else other.cites_count,
        'cited_by_count': base.cited_by_count if base.cited_by_count is not None else other.cited_by_count,
        'full_document_url': base.full_document_url or other.full_document_url or base.url,
        'detail_text': detail,
        'detail_artifact': artifact,
        'evidence_quality': base.evidence_quality or other.evidence_quality,
        'retrieval': base.retrieval or other.retrieval,
    })


def dedupe_cases(cases: List[CaseCandidate]) -> List[CaseCandidate]:
    by_url: Dict[str, CaseCandidate] = {}
    for c in cases:
        by_url[c.url] = merge_duplicate_candidate(by_url[c.url], c) if c.url in by_url else c
    return list(by_url.values())


class RetrievalScheduler:
    """Runs one request's retrieval loop. Not shared across requests."""

    def __init__(self, provider: RetrievalProvider, settings: Optional[SchedulerConfig] = None,
                 clock: Callable[[], float] = time.monotonic, sleep: Callable[[float], None] = time.sleep,
                 cooldown_scope: Optional[str] = None):
        self.provider = provider
        self.settings = settings or SchedulerConfig()
        self.clock = clock
        self.sleep = sleep
        self.cooldown_scope = cooldown_scope

    @property
    def provider_id(self) -> str:
        return getattr(self.provider, "provider_id", "provider")

    def _elapsed_ms(self, state: SchedulerCarryState) -> int:
        return int((self.clock() - state.started_at) * 1000)

    def _finish(self, state: SchedulerCarryState, stop_reason: str) -> SchedulerResult:
        state.candidates = dedupe_cases(state.candidates)
        SCHEDULER_STOPS.labels(stop_reason=stop_reason).inc()
        logger.info(
            "scheduler stopped: %s (attempts=%d candidates=%d skipped=%d blocked=%d)",
            stop_reason, state.attempts_used, len(state.candidates), state.skipped_duplicates, state.blocked_count,
        )
        return SchedulerResult(
            stop_reason=stop_reason,
            candidates=list(state.candidates),
            attempts=list(state.attempts),
            skipped_duplicates=state.skipped_duplicates,
            blocked_count=state.blocked_count,
            carry_state=state,
            blocked_kind=state.blocked_kind,
            blocked_reason=state.blocked_reason,
            retry_after_ms=state.retry_after_ms,
        )

    def _time_exhausted(self, state: SchedulerCarryState) -> SchedulerResult:
        state.blocked_reason = f"time_budget_exhausted:{self.settings.max_elapsed_ms}"
        return self._finish(state, "budget_exhausted")

    def _case_count(self, state: SchedulerCarryState) -> int:
        state.candidates = dedupe_cases(state.candidates)
        return sum(1 for c in state.candidates if classify_candidate(c).kind == "case")

    def run(self, variants: List[QueryVariant], intent: IntentProfile,
            carry_state: Optional[SchedulerCarryState] = None) -> SchedulerResult:
        s = self.settings
        state = carry_state or SchedulerCarryState(started_at=self.clock())
        by_phase: Dict[str, List[QueryVariant]] = {p: [] for p in PHASE_ORDER}
        for v in variants:
            by_phase[v.phase].append(v)

        for phase in PHASE_ORDER:
            remaining = by_phase[phase][:s.phase_limits.get(phase, config.PHASE_LIMITS.get(phase, 1))]
            while remaining:
                if s.adaptive and len(remaining) > 1:
                    remaining = sort_phase_variants(remaining, state.variant_utility)
                variant = remaining.pop(0)

                if self._elapsed_ms(state) >= s.max_elapsed_ms:
                    return self._time_exhausted(state)
                if state.attempts_used >= s.global_budget:
                    return self._finish(state, "budget_exhausted")

                relaxed = phase in RELAXED_PHASES
                court_type = None if relaxed else court_type_for(variant)
                from_date = None if relaxed else intent.date_window.from_date
                to_date = None if relaxed else intent.date_window.to_date
                phrase = phrase_for_structured_search(variant.phrase)
                if not phrase:
                    continue
                signature = query_signature(phase, phrase, court_type, from_date, to_date)
                if signature in state.seen_signatures:
                    state.skipped_duplicates += 1
                    continue
                window_ms = max(0, s.max_elapsed_ms - self._elapsed_ms(state))
                if window_ms < MIN_ATTEMPT_WINDOW_MS:
                    return self._time_exhausted(state)
                state.seen_signatures.add(signature)
                state.attempts_used += 1

                timeout_ms = max(MIN_ATTEMPT_TIMEOUT_MS, min(s.fetch_timeout_ms, s.fetch_timeout_cap_ms, window_ms - 250))
                query = RetrievalQuery(
                    phrase=phrase,
                    court_scope=variant.court_scope,
                    court_type=court_type,
                    from_date=from_date,
                    to_date=to_date,
                    max_results=MAX_RESULTS_PER_ATTEMPT,
                    max_pages=s.max_pages_by_phase.get(phase, 1),
                    timeout_ms=timeout_ms,
                    include_tokens=variant.must_include_tokens,
                    exclude_tokens=variant.must_exclude_tokens if variant.directives.apply_contradiction_exclusions else [],
                    cooldown_scope=self.cooldown_scope,
                )

                signal = self._attempt(state, variant, query, window_ms)
                if signal is not None and signal.kind == "local_cooldown":
                    state.blocked_count += 1
                    state.blocked_kind = "local_cooldown"
                    state.retry_after_ms = signal.retry_after_ms
                    state.blocked_reason = f"blocked_cooldown_active:{max(1, math.ceil((signal.retry_after_ms or 1000) / 1000))}"
                    BLOCKED_SIGNALS.labels(kind="local_cooldown").inc()
                    return self._finish(state, "blocked")
                if signal is not None:
                    state.blocked_count += 1
                    state.blocked_kind = signal.kind
                    state.retry_after_ms = signal.retry_after_ms
                    BLOCKED_SIGNALS.labels(kind=signal.kind).inc()
                elif state.attempts and not state.attempts[-1].timed_out:
                    state.blocked_count = 0
                    state.blocked_reason = None
                    state.blocked_kind = None
                    state.retry_after_ms = None

                if s.stop_on_candidate_target and self._case_count(state) >= s.min_case_target:
                    return self._finish(state, "enough_candidates")
                if state.attempts_used >= s.global_budget:
                    return self._finish(state, "budget_exhausted")
                if s.max_elapsed_ms - self._elapsed_ms(state) <= 250:
                    return self._time_exhausted(state)
                if state.blocked_count >= s.blocked_threshold:
                    state.blocked_reason = f"blocked_threshold_reached:{state.blocked_count}"
                    return self._finish(state, "blocked")

                left_ms = s.max_elapsed_ms - self._elapsed_ms(state)
                if state.blocked_count == 0 and s.attempt_delay_ms and left_ms > s.attempt_delay_ms + 200:
                    self.sleep(s.attempt_delay_ms / 1000)

        return self._finish(state, "completed")

    def _attempt(self, state: SchedulerCarryState, variant: QueryVariant, query: RetrievalQuery,
                 window_ms: int) -> Optional[BlockedSignal]:
        """Issue one variant (plus bounded 429 retries); returns the blocked signal, if any."""
        s = self.settings
        retries = 0 if window_ms < query.timeout_ms + 3000 else s.max_429_retries
        retry_index = 0
        while True:
            started = self.clock()
            cases: List[CaseCandidate] = []
            error: Optional[str] = None
            try:
                result = self.provider.search(query)
                cases, debug = result.cases, result.debug
            except ProviderError as e:
                debug, error = e.debug, str(e)
                logger.warning("provider error for %r (%s): %s", variant.phrase, variant.phase, e)
            except Exception as e:
                debug, error = AttemptDebug(search_query=query.phrase, status=500), str(e) or "provider failure"
                logger.warning("unexpected provider failure for %r: %s", variant.phrase, e)

            timed_out = debug.timed_out or debug.status == 408
            challenge = debug.challenge_detected or debug.status == 429
            score, case_like, statute_like = compute_attempt_utility(
                cases, debug.parsed_count, challenge, timed_out, debug.status)
            key = canonical_variant_key(variant)
            snap = update_variant_utility(state.variant_utility, key, score, case_like, statute_like,
                                          challenge, timed_out, debug.status)
            state.attempts.append(RetrievalAttempt(
                provider_id=self.provider_id,
                phase=variant.phase,
                variant_id=variant.id,
                canonical_key=key,
                phrase=variant.phrase,
                court_scope=variant.court_scope,
                variant_priority=variant.priority,
                status=debug.status,
                ok=debug.ok,
                parsed_count=debug.parsed_count,
                utility_score=snap.mean_utility,
                case_like_ratio=case_like,
                statute_like_ratio=statute_like,
                source_tag=debug.source_tag,
                cloudflare_detected=debug.cloudflare_detected,
                challenge_detected=debug.challenge_detected,
                timed_out=timed_out,
                blocked_type=debug.blocked_type,
                retry_after_ms=debug.retry_after_ms,
                retry_index=retry_index,
                elapsed_ms=int((self.clock() - started) * 1000),
                error=error,
            ))
            outcome = "error" if error else "ok"
            RETRIEVAL_ATTEMPTS.labels(phase=variant.phase, outcome=outcome).inc()
            logger.debug("attempt %s/%s status=%s parsed=%d utility=%.3f",
                         variant.phase, variant.id, debug.status, debug.parsed_count, score)

            if cases:
                state.candidates.extend(cases)
                update_candidate_provenance(state.candidate_provenance, cases, variant, snap.mean_utility)

            signal = BlockedSignal.from_debug(debug)
            retry_after = debug.retry_after_ms or 0
            can_retry = (
                signal is not None
                and signal.kind == "rate_limit"
                and retry_index < retries
                and retry_after <= s.max_retry_after_ms
                and s.max_elapsed_ms - self._elapsed_ms(state) > retry_after + query.timeout_ms + 250
            )
            if not can_retry:
                return signal
            retry_index += 1
            self.sleep(retry_after / 1000)
            query = query.model_copy(update={'retry_index': retry_index})


def run_retrieval_schedule(variants: List[QueryVariant], intent: IntentProfile, provider: RetrievalProvider,
                           settings: Optional[SchedulerConfig] = None,
                           carry_state: Optional[SchedulerCarryState] = None,
                           cooldown_scope: Optional[str] = None, **kwargs) -> SchedulerResult:
    scheduler = RetrievalScheduler(provider, settings=settings, cooldown_scope=cooldown_scope, **kwargs)
    return scheduler.run(variants, intent, carry_state=carry_state)


def utility_snapshot_map(utility: Dict[str, VariantUtilitySnapshot]) -> Dict[str, Dict[str, float]]:
    return {
        key: {
            'attempts': snap.attempts,
            'mean_utility': snap.mean_utility,
            'case_like_rate': snap.case_like_rate,
            'statute_like_rate': snap.statute_like_rate,
            'challenge_rate': snap.challenge_rate,
            'timeout_rate': snap.timeout_rate,
        }
        for key, snap in utility.items()
    }


__all__ = [
    'SchedulerConfig', 'RetrievalScheduler', 'run_retrieval_schedule', 'compute_attempt_utility',
    'sort_phase_variants', 'canonical_variant_key', 'phrase_for_structured_search', 'query_signature',
    'dedupe_cases', 'merge_duplicate_candidate', 'update_variant_utility', 'utility_snapshot_map',
]
