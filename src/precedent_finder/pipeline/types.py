"""Data model for the precedent retrieval pipeline.

Pydantic models describe everything that crosses a stage boundary (candidates,
variants, scored results, the outbound response). Per-request scheduler state
is kept in plain dataclasses because it is mutated in place by a single owner.
Candidates are enriched copy-on-write via ``model_copy(update=...)``.
"""
from __future__ import annotations
import time
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Set

from pydantic import BaseModel, ConfigDict, Field

SCHEMA_VERSION = "2"

CourtLevel = Literal["SC", "HC", "UNKNOWN"]
CourtHint = Literal["SC", "HC", "ANY"]
QueryPhase = Literal["primary", "fallback", "rescue", "micro", "revolving", "browse"]
Strictness = Literal["strict", "relaxed"]
CandidateKind = Literal["case", "statute", "noise", "unknown"]
ConfidenceBand = Literal["VERY_HIGH", "HIGH", "MEDIUM", "LOW"]
RetrievalTier = Literal["exact_strict", "exact_provisional", "exploratory"]
StopReason = Literal["enough_candidates", "budget_exhausted", "blocked", "completed"]
BlockedKind = Literal["local_cooldown", "cloudflare_challenge", "rate_limit"]

PHASE_ORDER: List[str] = ["primary", "fallback", "rescue", "micro", "revolving", "browse"]
RELAXED_PHASES = {"rescue", "micro", "revolving", "browse"}


# ---------------------------------------------------------------------------
# Intent
# ---------------------------------------------------------------------------

class DateWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    from_date: Optional[str] = None
    to_date: Optional[str] = None


class ContextProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    domains: List[str] = Field(default_factory=list)
    issues: List[str] = Field(default_factory=list)
    statutes_or_sections: List[str] = Field(default_factory=list)
    procedures: List[str] = Field(default_factory=list)
    actors: List[str] = Field(default_factory=list)
    anchors: List[str] = Field(default_factory=list)


class IntentProfile(BaseModel):
    """Structured view of one query. Built once per request."""
    model_config = ConfigDict(frozen=True)

    query: str
    cleaned_query: str
    context: ContextProfile
    court_hint: CourtHint = "ANY"
    date_window: DateWindow = Field(default_factory=DateWindow)
    transition_aliases: List[str] = Field(default_factory=list)
    legal_disjunction: bool = False

    @property
    def domains(self) -> List[str]:
        return self.context.domains

    @property
    def issues(self) -> List[str]:
        return self.context.issues

    @property
    def statutes(self) -> List[str]:
        return self.context.statutes_or_sections

    @property
    def procedures(self) -> List[str]:
        return self.context.procedures

    @property
    def actors(self) -> List[str]:
        return self.context.actors

    @property
    def anchors(self) -> List[str]:
        return self.context.anchors


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------

class RetrievalDirectives(BaseModel):
    apply_contradiction_exclusions: bool = True
    query_mode: Optional[str] = None


class QueryVariant(BaseModel):
    id: str
    phrase: str
    phase: QueryPhase
    purpose: str = ""
    court_scope: CourtHint = "ANY"
    strictness: Strictness = "strict"
    tokens: List[str] = Field(default_factory=list)
    canonical_key: Optional[str] = None
    priority: int = 0
    must_include_tokens: List[str] = Field(default_factory=list)
    must_exclude_tokens: List[str] = Field(default_factory=list)
    directives: RetrievalDirectives = Field(default_factory=RetrievalDirectives)


# ---------------------------------------------------------------------------
# Candidates
# ---------------------------------------------------------------------------

class RetrievalProvenance(BaseModel):
    source_tags: List[str] = Field(default_factory=list)
    lexical_rank: Optional[int] = None
    semantic_rank: Optional[int] = None
    lexical_score: Optional[float] = None
    semantic_score: Optional[float] = None
    fusion_score: Optional[float] = None
    rerank_score: Optional[float] = None
    semantic_hash: Optional[str] = None
    source_version: Optional[str] = None


class EvidenceQuality(BaseModel):
    has_role_sentence: bool = False
    has_relation_sentence: bool = False
    has_polarity_sentence: bool = False
    has_hook_intersection_sentence: bool = False


class DetailArtifact(BaseModel):
    evidence_windows: List[str] = Field(default_factory=list)
    body_excerpt: List[str] = Field(default_factory=list)


class CaseCandidate(BaseModel):
    source: str = "indiankanoon"
    title: str
    url: str
    snippet: str = ""
    court: CourtLevel = "UNKNOWN"
    court_text: Optional[str] = None
    full_document_url: Optional[str] = None
    cites_count: Optional[int] = None
    cited_by_count: Optional[int] = None
    detail_text: Optional[str] = None
    detail_artifact: Optional[DetailArtifact] = None
    evidence_quality: Optional[EvidenceQuality] = None
    retrieval: Optional[RetrievalProvenance] = None


class Classification(BaseModel):
    kind: CandidateKind
    reasons: List[str] = Field(default_factory=list)


class ClassifiedCandidate(CaseCandidate):
    classification: Classification


class Verification(BaseModel):
    anchors_matched: int = 0
    issues_matched: int = 0
    procedures_matched: int = 0
    detail_checked: bool = False
    has_role_sentence: bool = False
    has_relation_sentence: bool = False
    has_polarity_sentence: bool = False
    has_hook_intersection_sentence: bool = False


class ScoredCase(ClassifiedCandidate):
    score: float
    ranking_score: float
    confidence_score: float
    confidence_band: ConfidenceBand
    retrieval_tier: Optional[RetrievalTier] = None
    exactness_type: Optional[Literal["strict", "provisional"]] = None
    reasons: List[str] = Field(default_factory=list)
    selection_summary: str = ""
    match_evidence: List[str] = Field(default_factory=list)
    missing_core_elements: List[str] = Field(default_factory=list)
    verification: Verification = Field(default_factory=Verification)
    fallback_reason: Literal["none", "synthetic_advisory"] = "none"
    gap_summary: List[str] = Field(default_factory=list)


class NearMissCase(ScoredCase):
    missing_elements: List[str] = Field(min_length=1)


# ---------------------------------------------------------------------------
# Retrieval boundary
# ---------------------------------------------------------------------------

class RetrievalQuery(BaseModel):
    phrase: str
    court_scope: CourtHint = "ANY"
    court_type: Optional[str] = None
    from_date: Optional[str] = None
    to_date: Optional[str] = None
    max_results: int = 14
    max_pages: int = 1
    timeout_ms: int = 3000
    include_tokens: List[str] = Field(default_factory=list)
    exclude_tokens: List[str] = Field(default_factory=list)
    cooldown_scope: Optional[str] = None
    retry_index: int = 0


class AttemptDebug(BaseModel):
    search_query: str = ""
    status: int = 0
    ok: bool = False
    parsed_count: int = 0
    parser_mode: str = ""
    source_tag: Optional[str] = None
    pages_scanned: int = 0
    cloudflare_detected: bool = False
    challenge_detected: bool = False
    timed_out: bool = False
    blocked_type: Optional[BlockedKind] = None
    retry_after_ms: Optional[int] = None
    lexical_candidate_count: int = 0
    semantic_candidate_count: int = 0
    fused_candidate_count: int = 0
    rerank_applied: bool = False
    fusion_latency_ms: int = 0


class RetrievalResult(BaseModel):
    cases: List[CaseCandidate] = Field(default_factory=list)
    debug: AttemptDebug = Field(default_factory=AttemptDebug)


class RetrievalAttempt(BaseModel):
    provider_id: str
    phase: QueryPhase
    variant_id: str
    canonical_key: str
    phrase: str
    court_scope: CourtHint = "ANY"
    variant_priority: int = 0
    status: int = 0
    ok: bool = False
    parsed_count: int = 0
    utility_score: float = 0.0
    case_like_ratio: float = 0.0
    statute_like_ratio: float = 0.0
    source_tag: Optional[str] = None
    cloudflare_detected: bool = False
    challenge_detected: bool = False
    timed_out: bool = False
    blocked_type: Optional[BlockedKind] = None
    retry_after_ms: Optional[int] = None
    retry_index: int = 0
    elapsed_ms: int = 0
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Scheduler state
# ---------------------------------------------------------------------------

@dataclass
class VariantUtilitySnapshot:
    attempts: int = 0
    mean_utility: float = 0.0
    case_like_rate: float = 0.0
    statute_like_rate: float = 0.0
    challenge_rate: float = 0.0
    timeout_rate: float = 0.0
    last_status: int = 0
    updated_at: float = field(default_factory=time.time)


@dataclass
class CandidateProvenance:
    variant_ids: List[str] = field(default_factory=list)
    canonical_keys: List[str] = field(default_factory=list)
    phases: List[str] = field(default_factory=list)
    best_utility: float = 0.0
    strict_hits: int = 0
    relaxed_hits: int = 0
    high_priority_hits: int = 0


@dataclass
class SchedulerCarryState:
    """Per-request accumulator; resumable by the guarantee pass."""
    started_at: float
    seen_signatures: Set[str] = field(default_factory=set)
    attempts_used: int = 0
    skipped_duplicates: int = 0
    blocked_count: int = 0
    blocked_reason: Optional[str] = None
    blocked_kind: Optional[str] = None
    retry_after_ms: Optional[int] = None
    variant_utility: Dict[str, VariantUtilitySnapshot] = field(default_factory=dict)
    candidate_provenance: Dict[str, CandidateProvenance] = field(default_factory=dict)
    attempts: List[RetrievalAttempt] = field(default_factory=list)
    candidates: List[CaseCandidate] = field(default_factory=list)


@dataclass
class SchedulerResult:
    stop_reason: str
    candidates: List[CaseCandidate]
    attempts: List[RetrievalAttempt]
    skipped_duplicates: int
    blocked_count: int
    carry_state: SchedulerCarryState
    blocked_kind: Optional[str] = None
    blocked_reason: Optional[str] = None
    retry_after_ms: Optional[int] = None

    @property
    def variant_utility(self) -> Dict[str, VariantUtilitySnapshot]:
        return self.carry_state.variant_utility

    @property
    def candidate_provenance(self) -> Dict[str, CandidateProvenance]:
        return self.carry_state.candidate_provenance


# ---------------------------------------------------------------------------
# Outbound result
# ---------------------------------------------------------------------------

class PropositionSummary(BaseModel):
    required_elements: List[str] = Field(default_factory=list)
    optional_elements: List[str] = Field(default_factory=list)
    hook_groups: List[str] = Field(default_factory=list)
    relation_count: int = 0
    interaction_required: bool = False
    outcome_polarity: str = "unknown"
    outcome_required: bool = False


class PlannerTrace(BaseModel):
    variant_count: int = 0
    phase_counts: Dict[str, int] = Field(default_factory=dict)
    reasoner_plan_used: bool = False
    reasoner_warnings: List[str] = Field(default_factory=list)


class SchedulerTrace(BaseModel):
    stop_reason: Optional[StopReason] = None
    blocked_kind: Optional[BlockedKind] = None
    blocked_reason: Optional[str] = None
    retry_after_ms: Optional[int] = None
    attempts_used: int = 0
    skipped_duplicates: int = 0
    candidate_count: int = 0
    guarantee_pass_used: bool = False
    attempts: List[RetrievalAttempt] = Field(default_factory=list)
    variant_utility: Dict[str, Dict[str, float]] = Field(default_factory=dict)


class VerificationTrace(BaseModel):
    exact_match_count: int = 0
    strict_exact_count: int = 0
    provisional_exact_count: int = 0
    near_miss_count: int = 0
    contradiction_reject_count: int = 0
    relation_failure_count: int = 0
    polarity_mismatch_count: int = 0
    required_element_coverage_avg: float = 0.0
    hook_group_coverage_avg: float = 0.0
    max_confidence: float = 0.0
    saturation_prevented_count: int = 0
    missing_element_breakdown: Dict[str, int] = Field(default_factory=dict)
    core_failure_breakdown: Dict[str, int] = Field(default_factory=dict)


class DiversityTrace(BaseModel):
    input_count: int = 0
    kept_count: int = 0
    dropped_count: int = 0


class PipelineTrace(BaseModel):
    intent: Optional[IntentProfile] = None
    planner: PlannerTrace = Field(default_factory=PlannerTrace)
    scheduler: SchedulerTrace = Field(default_factory=SchedulerTrace)
    classification: Dict[str, int] = Field(default_factory=dict)
    verification: VerificationTrace = Field(default_factory=VerificationTrace)
    diversity: DiversityTrace = Field(default_factory=DiversityTrace)
    warnings: List[str] = Field(default_factory=list)
    elapsed_ms: int = 0


class SearchResponse(BaseModel):
    schema_version: str = SCHEMA_VERSION
    query: str
    status: Literal["completed", "partial", "blocked", "no_match"] = "completed"
    cases: List[ScoredCase] = Field(default_factory=list)
    cases_exact_strict: List[ScoredCase] = Field(default_factory=list)
    cases_exact_provisional: List[ScoredCase] = Field(default_factory=list)
    near_miss: List[NearMissCase] = Field(default_factory=list)
    proposition: PropositionSummary = Field(default_factory=PropositionSummary)
    stop_reason: Optional[StopReason] = None
    blocked_kind: Optional[BlockedKind] = None
    fallback_reason: Optional[str] = None
    trace: Optional[PipelineTrace] = None
