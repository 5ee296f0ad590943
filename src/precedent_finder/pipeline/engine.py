"""End-to-end orchestration of one precedent search.

query -> intent + checklist -> planner -> scheduler (hybrid retrieval)
      -> classify -> score -> proposition gate -> diversity
      -> guarantee pass (bounded, resumes the scheduler carry state)
      -> synthetic fallback (only when nothing survived)

A well-formed request always yields a SearchResponse; retrieval and scoring
failures are logged, counted, and end in the advisory fallback rather than an
error.
"""
from __future__ import annotations
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional

from precedent_finder import config
from precedent_finder.metrics import COLLABORATOR_FAILURES, GATE_RESULTS, PIPELINE_LATENCY
from precedent_finder.pipeline.classifier import classification_counts, classify_candidates
from precedent_finder.pipeline.fallback import (
    build_synthetic_near_miss,
    failure_reason_label,
    fallback_status,
    should_inject_fallback,
)
from precedent_finder.pipeline.intent import build_intent_profile
from precedent_finder.pipeline.planner import build_guarantee_backfill_variants, build_query_variants, phase_counts
from precedent_finder.pipeline.reasoner_plan import ReasonerPlan, validate_reasoner_plan
from precedent_finder.pipeline.scheduler import (
    RetrievalScheduler,
    SchedulerConfig,
    dedupe_cases,
    utility_snapshot_map,
)
from precedent_finder.pipeline.types import (
    CaseCandidate,
    DiversityTrace,
    IntentProfile,
    NearMissCase,
    PipelineTrace,
    PlannerTrace,
    QueryVariant,
    SchedulerCarryState,
    SchedulerResult,
    SchedulerTrace,
    ScoredCase,
    SearchResponse,
    VerificationTrace,
)
from precedent_finder.proposition.checklist import PropositionChecklist, build_proposition_checklist
from precedent_finder.proposition.gate import GateSummary, split_by_proposition
from precedent_finder.proposition.scoring import score_cases
from precedent_finder.ranking.diversity import diversify_ranked_cases
from precedent_finder.retrieval.providers import RetrievalProvider

logger = logging.getLogger(__name__)

SCORABLE_KINDS = ("case", "unknown")


@dataclass
class EngineSettings:
    always_return: bool = field(default_factory=lambda: config.ALWAYS_RETURN)
    synthetic_fallback: bool = field(default_factory=lambda: config.SYNTHETIC_FALLBACK)
    guarantee_min_results: int = field(default_factory=lambda: config.GUARANTEE_MIN_RESULTS)
    guarantee_extra_attempts: int = field(default_factory=lambda: config.GUARANTEE_EXTRA_ATTEMPTS)
    guarantee_min_remaining_ms: int = field(default_factory=lambda: config.GUARANTEE_MIN_REMAINING_MS)
    near_miss_max_results: int = field(default_factory=lambda: config.NEAR_MISS_MAX_RESULTS)
    min_relevant_score: float = field(default_factory=lambda: config.MIN_RELEVANT_SCORE)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)


@dataclass
class Verified:
    """Output of one verification pass over a candidate pool."""
    exact_strict: List[ScoredCase]
    exact_provisional: List[ScoredCase]
    near_miss: List[NearMissCase]
    gate: GateSummary
    classification: Dict[str, int]
    diversity: DiversityTrace

    @property
    def exact(self) -> List[ScoredCase]:
        return self.exact_strict + self.exact_provisional

    @property
    def total(self) -> int:
        return len(self.exact) + len(self.near_miss)


def _hit_time_ceiling(result: Optional[SchedulerResult]) -> bool:
    return bool(result and result.stop_reason == "budget_exhausted"
                and (result.blocked_reason or "").startswith("time_budget_exhausted"))


def default_provider() -> RetrievalProvider:
    """Indian Kanoon lexical search, fused with the semantic index when enabled."""
    from precedent_finder.retrieval.embeddings import SentenceEmbedder
    from precedent_finder.retrieval.hybrid import HybridRetriever
    from precedent_finder.retrieval.providers import KanoonProvider
    from precedent_finder.retrieval.vector_index import SemanticStore

    return HybridRetriever(KanoonProvider(), semantic_store=SemanticStore(), embedder=SentenceEmbedder())


class PrecedentSearchEngine:
    def __init__(self, provider: Optional[RetrievalProvider] = None, settings: Optional[EngineSettings] = None,
                 clock: Callable[[], float] = time.monotonic, sleep: Callable[[float], None] = time.sleep):
        self._provider = provider
        self.settings = settings or EngineSettings()
        self.clock = clock
        self.sleep = sleep

    @property
    def provider(self) -> RetrievalProvider:
        if self._provider is None:
            self._provider = default_provider()
        return self._provider

    # -- stages -------------------------------------------------------------

    def _scheduler(self, provider: RetrievalProvider, settings: SchedulerConfig) -> RetrievalScheduler:
        return RetrievalScheduler(provider, settings=settings, clock=self.clock, sleep=self.sleep)

    def _retrieve(self, intent: IntentProfile, variants: List[QueryVariant],
                  warnings: List[str]) -> Optional[SchedulerResult]:
        try:
            return self._scheduler(self.provider, self.settings.scheduler).run(variants, intent)
        except Exception as e:
            logger.exception("retrieval failed for %r", intent.cleaned_query)
            COLLABORATOR_FAILURES.labels(collaborator="retrieval").inc()
            warnings.append(f"retrieval_failed:{type(e).__name__}")
            return None

    def _verify(self, intent: IntentProfile, checklist: PropositionChecklist, pool: List[CaseCandidate],
                warnings: List[str]) -> Verified:
        s = self.settings
        try:
            classified = classify_candidates(pool)
            scorable = [c for c in classified if c.classification.kind in SCORABLE_KINDS]
            scored = [
                c for c in score_cases(intent.cleaned_query, intent.context, scorable, checklist)
                if c.ranking_score >= s.min_relevant_score
            ]
            gate = split_by_proposition(scored, checklist)
        except Exception as e:
            logger.exception("verification failed for %r", intent.cleaned_query)
            COLLABORATOR_FAILURES.labels(collaborator="verification").inc()
            warnings.append(f"verification_failed:{type(e).__name__}")
            return Verified([], [], [], GateSummary(), {}, DiversityTrace())

        exact = diversify_ranked_cases(gate.exact)
        near_miss = diversify_ranked_cases(gate.near_miss)[:s.near_miss_max_results]
        before = len(gate.exact) + len(gate.near_miss)
        kept = len(exact) + len(near_miss)
        return Verified(
            exact_strict=[c for c in exact if c.retrieval_tier == "exact_strict"],
            exact_provisional=[c for c in exact if c.retrieval_tier == "exact_provisional"],
            near_miss=near_miss,
            gate=gate,
            classification=classification_counts(classified),
            diversity=DiversityTrace(input_count=before, kept_count=kept, dropped_count=before - kept),
        )

    def _guarantee_eligible(self, verified: Verified, result: Optional[SchedulerResult]) -> bool:
        s = self.settings
        if result is None or verified.total >= s.guarantee_min_results or result.stop_reason == "blocked":
            return False
        elapsed_ms = int((self.clock() - result.carry_state.started_at) * 1000)
        return s.scheduler.max_elapsed_ms - elapsed_ms >= s.guarantee_min_remaining_ms

    def _guarantee_pass(self, intent: IntentProfile, plan: Optional[ReasonerPlan], verified: Verified,
                        state: SchedulerCarryState, warnings: List[str]) -> Optional[SchedulerResult]:
        s = self.settings
        titles = [c.title for c in verified.near_miss] + [c.title for c in verified.exact]
        variants = build_guarantee_backfill_variants(intent, titles, plan, max_variants=s.guarantee_extra_attempts)
        if not variants:
            return None
        limits = dict(s.scheduler.phase_limits)
        limits['browse'] = s.guarantee_extra_attempts
        settings = replace(
            s.scheduler,
            global_budget=state.attempts_used + s.guarantee_extra_attempts,
            phase_limits=limits,
            stop_on_candidate_target=False,
        )
        logger.info("guarantee pass: %d verified < %d, %d extra variant(s)",
                    verified.total, s.guarantee_min_results, len(variants))
        try:
            return self._scheduler(self.provider, settings).run(variants, intent, carry_state=state)
        except Exception as e:
            logger.exception("guarantee pass failed for %r", intent.cleaned_query)
            warnings.append(f"guarantee_pass_failed:{type(e).__name__}")
            return None

    # -- entry point --------------------------------------------------------

    def search(self, query: str, max_results: int = 10, debug: bool = False,
               candidates: Optional[List[CaseCandidate]] = None, reasoner_plan: Optional[Any] = None,
               client_blocked_kind: Optional[str] = None) -> SearchResponse:
        started = time.perf_counter()
        s = self.settings
        warnings: List[str] = []

        intent = build_intent_profile(query)
        plan: Optional[ReasonerPlan] = None
        plan_warnings: List[str] = []
        if reasoner_plan is not None:
            plan, plan_warnings = validate_reasoner_plan(reasoner_plan)
            warnings.extend(f"reasoner_plan:{w}" for w in plan_warnings)
        checklist = build_proposition_checklist(intent.context, intent.cleaned_query, plan)
        if client_blocked_kind:
            warnings.append(f"client_blocked_kind:{client_blocked_kind}")

        result: Optional[SchedulerResult] = None
        guarantee_used = False
        blocked_kind: Optional[str] = None
        if candidates is not None:
            pool = dedupe_cases(list(candidates))
            stop_reason: Optional[str] = "completed"
            planned: Dict[str, int] = {}
            # client-side retrieval was throttled and handed over nothing
            if not pool and client_blocked_kind:
                stop_reason, blocked_kind = "blocked", client_blocked_kind
        else:
            variants = build_query_variants(intent, plan)
            planned = phase_counts(variants)
            result = self._retrieve(intent, variants, warnings)
            pool = result.candidates if result else []
            stop_reason = result.stop_reason if result else "completed"

        verified = self._verify(intent, checklist, pool, warnings)
        if candidates is None and self._guarantee_eligible(verified, result):
            resumed = self._guarantee_pass(intent, plan, verified, result.carry_state, warnings)
            if resumed is not None:
                guarantee_used = True
                result = resumed
                stop_reason = resumed.stop_reason
                verified = self._verify(intent, checklist, resumed.candidates, warnings)

        if result is not None and stop_reason == "blocked":
            blocked_kind = result.blocked_kind or client_blocked_kind

        near_miss = verified.near_miss
        fallback_reason: Optional[str] = None
        if should_inject_fallback(len(verified.exact), len(near_miss), s.always_return, s.synthetic_fallback):
            near_miss = [build_synthetic_near_miss(
                query, intent, checklist, stop_reason, blocked_kind,
                include_terms=plan.must_have_terms if plan else None,
                strict_phrase=plan.query_variants_strict[0] if plan and plan.query_variants_strict else None,
            )]
            fallback_reason = failure_reason_label(stop_reason, blocked_kind)
            status = fallback_status(stop_reason)
        elif stop_reason == "blocked" or _hit_time_ceiling(result):
            status = "partial"
        else:
            status = "completed"

        for tier, items in (("exact_strict", verified.exact_strict),
                            ("exact_provisional", verified.exact_provisional),
                            ("near_miss", verified.near_miss)):
            if items:
                GATE_RESULTS.labels(tier=tier).inc(len(items))
        elapsed = time.perf_counter() - started
        PIPELINE_LATENCY.observe(elapsed)

        response = SearchResponse(
            query=query,
            status=status,
            cases=verified.exact[:max_results],
            cases_exact_strict=verified.exact_strict[:max_results],
            cases_exact_provisional=verified.exact_provisional[:max_results],
            near_miss=near_miss[:max_results],
            proposition=checklist.summary(),
            stop_reason=stop_reason,
            blocked_kind=blocked_kind if stop_reason == "blocked" else None,
            fallback_reason=fallback_reason,
        )
        if debug:
            response.trace = self._trace(intent, planned, plan, plan_warnings, result, guarantee_used,
                                         verified, warnings, elapsed)
        logger.info("search done: status=%s stop=%s exact=%d near_miss=%d in %.0fms",
                    status, stop_reason, len(verified.exact), len(near_miss), elapsed * 1000)
        return response

    def _trace(self, intent: IntentProfile, planned: Dict[str, int], plan: Optional[ReasonerPlan],
               plan_warnings: List[str], result: Optional[SchedulerResult], guarantee_used: bool,
               verified: Verified, warnings: List[str], elapsed: float) -> PipelineTrace:
        gate = verified.gate
        scheduler = SchedulerTrace(guarantee_pass_used=guarantee_used)
        if result is not None:
            scheduler = SchedulerTrace(
                stop_reason=result.stop_reason,
                blocked_kind=result.blocked_kind,
                blocked_reason=result.blocked_reason,
                retry_after_ms=result.retry_after_ms,
                attempts_used=result.carry_state.attempts_used,
                skipped_duplicates=result.skipped_duplicates,
                candidate_count=len(result.candidates),
                guarantee_pass_used=guarantee_used,
                attempts=result.attempts,
                variant_utility=utility_snapshot_map(result.variant_utility),
            )
        return PipelineTrace(
            intent=intent,
            planner=PlannerTrace(
                variant_count=sum(planned.values()),
                phase_counts=planned,
                reasoner_plan_used=bool(plan and plan.usable),
                reasoner_warnings=plan_warnings,
            ),
            scheduler=scheduler,
            classification=verified.classification,
            verification=VerificationTrace(
                exact_match_count=len(verified.exact),
                strict_exact_count=len(verified.exact_strict),
                provisional_exact_count=len(verified.exact_provisional),
                near_miss_count=len(verified.near_miss),
                contradiction_reject_count=gate.contradiction_reject_count,
                relation_failure_count=gate.relation_failure_count,
                polarity_mismatch_count=gate.polarity_mismatch_count,
                required_element_coverage_avg=gate.required_element_coverage_avg,
                hook_group_coverage_avg=gate.hook_group_coverage_avg,
                max_confidence=gate.max_confidence,
                saturation_prevented_count=gate.saturation_prevented_count,
                missing_element_breakdown=gate.missing_element_breakdown,
                core_failure_breakdown=gate.core_failure_breakdown,
            ),
            diversity=verified.diversity,
            warnings=warnings,
            elapsed_ms=int(elapsed * 1000),
        )


__all__ = ['PrecedentSearchEngine', 'EngineSettings', 'Verified', 'default_provider']
