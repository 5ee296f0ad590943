"""Deterministic query-variant planning.

Generates the QueryVariants the scheduler walks, one group per phase:

* primary   - statute x issue/procedure combinations (strict)
* fallback  - context templates: statute + posture tail, issues, procedures (strict)
* rescue    - sliding windows over anchor tokens (relaxed)
* micro     - short doctrine templates (relaxed)
* revolving - issue x actor phrases plus appellate/sanction sets (relaxed)
* browse    - minimal phrases from the query head and case anchors (relaxed)

A validated reasoner plan, when usable, contributes its strict phrases to
primary, its broad phrases to fallback and its case anchors to browse.

Canonical keys group paraphrases: two phrases with the same distinct content
tokens (order-insensitive) share one key and therefore one utility record.

Future: learn template weights from cross-request utility history.
"""
from __future__ import annotations
import hashlib
import logging
import re
from typing import Dict, Iterable, List, Optional, Set

from precedent_finder import config
from precedent_finder.pipeline.intent import sanitize_query, tokenize
from precedent_finder.pipeline.reasoner_plan import ReasonerPlan
from precedent_finder.pipeline.types import PHASE_ORDER, ContextProfile, IntentProfile, QueryVariant

logger = logging.getLogger(__name__)

PHASE_PRIORITY: Dict[str, int] = {
    'primary': 92,
    'fallback': 78,
    'rescue': 62,
    'micro': 56,
    'revolving': 48,
    'browse': 42,
}
STRICT_PRIORITY_BONUS = 12
MAX_VARIANTS_PER_PHASE = 8

SEARCH_OPERATOR_RE = re.compile(r"\b(?:doctypes|sortby|fromdate|todate):\S+", re.IGNORECASE)
WHERE_LEAD_RE = re.compile(r"\b(?:cases?\s+where|precedents?\s+where|judgments?\s+where)\b", re.IGNORECASE)
REQUEST_LEAD_RE = re.compile(r"\b(?:find|show|list)\s+(?:me\s+)?(?:cases?|precedents?|judgments?)\b", re.IGNORECASE)
TITLE_DATE_RE = re.compile(r"\bon\s+\d{1,2}\s+[a-z]+,?\s+\d{4}\b")
SECTION_197_RE = re.compile(r"\bsection\s*197\b")
PC_ACT_RE = re.compile(r"\bprevention of corruption\b|\bpc act\b|\bsection\s*13\b")

SANCTION_INTERACTION_ISSUE = 'section interaction between section 197 crpc and pc act'
REFUSAL_ISSUE = 'delay condonation refused'

APPEAL_DELAY_PHRASES = {
    'micro': {
        'criminal': [
            "criminal appeal delay condonation",
            "delay not condoned criminal appeal",
            "state criminal appeal delay condonation",
            "section 378 crpc delay condonation",
            "state appeal against acquittal delay condonation",
        ],
        'general': [
            "condonation of delay in appeal",
            "limitation act section 5 appeal",
            "delay not condoned appeal",
            "collector anantnag katiji delay condonation",
            "n balakrishnan krishnamurthy delay",
        ],
    },
    'fallback': {
        'criminal': [
            "state criminal appeal filed beyond limitation",
            "delay condonation refused in criminal appeal",
            "section 378 crpc criminal appeal delay",
            "state appeal against acquittal delayed filing",
        ],
        'general': [
            "delay condonation appeal limitation",
            "appeal delay limitation condonation",
            "postmaster general living media limitation delay",
            "state of nagaland lipok ao condonation delay",
        ],
    },
    'revolving': {
        'criminal': [
            "state criminal appeal delay not condoned",
            "criminal appeal limitation condonation",
            "section 378 crpc appeal against acquittal delay",
            "state leave to appeal delay condonation criminal",
        ],
        'general': [
            "appeal filed beyond limitation",
            "delay condonation application in appeal",
            "katiji delay condonation supreme court",
            "e sha bhattacharjee condonation delay supreme court",
        ],
    },
}

REFUSAL_PHRASES = {
    'micro': [
        "delay not condoned appeal dismissed",
        "condonation of delay refused",
        "application for condonation rejected appeal",
        "barred by limitation condonation refused",
    ],
    'fallback': [
        "application for condonation of delay rejected",
        "state criminal appeal dismissed as time barred",
        "state appeal barred by limitation delay",
    ],
    'revolving': [
        "criminal appeal dismissed for delay",
        "state appeal time barred limitation",
        "delay condonation denied in appeal",
    ],
}

SANCTION_PHRASES = {
    'micro': [
        "section 197 crpc sanction prevention of corruption act",
        "section 19 prevention of corruption act sanction",
        "public servant official duty section 197 sanction pc act",
    ],
    'fallback': [
        "section 197 crpc sanction required for pc act prosecution",
        "section 19 pc act and section 197 crpc interplay",
        "disproportionate assets prosecution sanction under section 197",
    ],
    'revolving': [
        "section 197 crpc sanction and section 19 pc act",
        "official duty nexus section 197 crpc pc act",
        "public servant prosecution sanction section 197 and section 19",
    ],
}


def _unique(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(v for v in values if v))


def normalize_phrase(value: str) -> str:
    text = sanitize_query(value or "")
    text = SEARCH_OPERATOR_RE.sub(" ", text)
    text = WHERE_LEAD_RE.sub(" ", text)
    text = REQUEST_LEAD_RE.sub(" ", text)
    text = re.sub(r"[^a-z0-9\s()/.:-]", " ", text, flags=re.IGNORECASE)
    return re.sub(r"\s+", " ", text).strip().lower()


def phrase_tokens(value: str) -> List[str]:
    return [t for t in normalize_phrase(value).split() if len(t) > 1]


def paraphrase_key(phase: str, strictness: str, phrase: str) -> str:
    """Order-insensitive key over distinct content tokens."""
    content = sorted(set(tokenize(phrase))) or sorted(set(phrase_tokens(phrase)))
    return f"{phase}:{strictness}:{' '.join(content)}"


def _short_hash(value: str) -> str:
    return hashlib.sha1(value.encode('utf-8')).hexdigest()[:8]


def default_priority(phase: str, strictness: str) -> int:
    return PHASE_PRIORITY[phase] + (STRICT_PRIORITY_BONUS if strictness == "strict" else 0)


def resolve_court_scope(intent: IntentProfile, plan: Optional[ReasonerPlan] = None) -> str:
    if plan is not None and plan.proposition.jurisdiction_hint in ("SC", "HC"):
        return plan.proposition.jurisdiction_hint
    return intent.court_hint


def build_variant(phase: str, purpose: str, phrase: str, idx: int, court_scope: str = "ANY",
                  strictness: str = "strict", priority: Optional[int] = None,
                  canonical_key: Optional[str] = None, must_include: Optional[List[str]] = None,
                  must_exclude: Optional[List[str]] = None) -> QueryVariant:
    cleaned = normalize_phrase(phrase)
    tokens = phrase_tokens(cleaned)[:12 if phase == "primary" else 10]
    normalized = " ".join(tokens)
    return QueryVariant(
        id=f"{phase}_{idx}_{_short_hash(cleaned)}",
        phrase=normalized,
        phase=phase,
        purpose=purpose,
        court_scope=court_scope,
        strictness=strictness,
        tokens=tokens,
        canonical_key=(canonical_key or "").strip().lower() or paraphrase_key(phase, strictness, normalized),
        priority=priority if priority is not None else default_priority(phase, strictness),
        must_include_tokens=list(must_include or []),
        must_exclude_tokens=list(must_exclude or []),
    )


# ---------------------------------------------------------------------------
# Context templates
# ---------------------------------------------------------------------------

def _criminal_only(context: ContextProfile) -> bool:
    return 'criminal' in context.domains and 'civil' not in context.domains


def _has_appeal(context: ContextProfile) -> bool:
    return any(re.search(r"\bappeal\b", p) for p in context.procedures)


def _sanction_interaction(context: ContextProfile) -> bool:
    if SANCTION_INTERACTION_ISSUE in context.issues:
        return True
    statutes = context.statutes_or_sections
    return any(SECTION_197_RE.search(s) for s in statutes) and any(PC_ACT_RE.search(s) for s in statutes)


def _doctrine_sets(context: ContextProfile, phase: str) -> List[str]:
    phrases: List[str] = []
    if _has_appeal(context):
        phrases.extend(APPEAL_DELAY_PHRASES[phase]['criminal' if _criminal_only(context) else 'general'])
    if REFUSAL_ISSUE in context.issues:
        phrases.extend(REFUSAL_PHRASES[phase])
    if _sanction_interaction(context):
        phrases.extend(SANCTION_PHRASES[phase])
    return phrases


def micro_templates(context: ContextProfile) -> List[str]:
    phrases: List[str] = []
    if 'anti-corruption' in context.domains:
        phrases += ["disproportionate assets check period", "known sources income disproportionate assets"]
    if any('quash' in i for i in context.issues):
        phrases += ["quashing criminal proceedings", "section 482 crpc quashing"]
    if any('breach of trust' in i for i in context.issues):
        phrases += ["criminal breach trust section 406 ipc", "cheating section 420 ipc"]
    phrases += _doctrine_sets(context, 'micro')
    if 'criminal' in context.domains:
        phrases += ["criminal prosecution", "criminal appeal"]
    if 'civil' in context.domains and 'criminal' in context.domains:
        phrases.append("civil criminal proceedings")
    if not phrases:
        phrases = context.procedures[:2]
    return _unique(re.sub(r"\s+", " ", p).strip() for p in phrases)


def fallback_templates(context: ContextProfile) -> List[str]:
    if 'criminal' in context.domains:
        tail = "criminal prosecution"
    elif _has_appeal(context):
        tail = "appeal"
    else:
        tail = "judgment"
    phrases = [f"{statute} {tail}" for statute in context.statutes_or_sections[:3]]
    phrases += context.issues[:3]
    phrases += context.procedures[:2]
    phrases += _doctrine_sets(context, 'fallback')
    return _unique(re.sub(r"\s+", " ", p).strip() for p in phrases)


def revolving_templates(context: ContextProfile) -> List[str]:
    phrases = [f"{issue} {actor} prosecution" for issue in context.issues[:3] for actor in context.actors[:2]]
    if 'anti-corruption' in context.domains:
        phrases.append("disproportionate assets criminal appeal")
    phrases += _doctrine_sets(context, 'revolving')
    return _unique(re.sub(r"\s+", " ", p).strip() for p in phrases)


# ---------------------------------------------------------------------------
# Phase assembly
# ---------------------------------------------------------------------------

def legal_signal_tokens(intent: IntentProfile, plan: Optional[ReasonerPlan] = None) -> Set[str]:
    bag = intent.domains + intent.actors + intent.procedures + intent.issues + intent.statutes
    if plan is not None:
        prop = plan.proposition
        bag = bag + prop.actors + prop.proceeding + prop.legal_hooks + prop.outcome_required + plan.must_have_terms
        for group in prop.hook_groups:
            bag = bag + group.terms
    return {t for value in bag for t in phrase_tokens(value) if len(t) > 2}


class _PhaseBuilder:
    """Accumulates variants with per-phase phrase dedupe and token floors."""

    def __init__(self, court_scope: str, signal_tokens: Set[str]):
        self.court_scope = court_scope
        self.signal_tokens = signal_tokens
        self.variants: List[QueryVariant] = []
        self._seen: Set[str] = set()

    def add(self, phase: str, purpose: str, phrases: Iterable[str], strictness: str,
            must_include: Optional[List[str]] = None, must_exclude: Optional[List[str]] = None,
            limit: int = MAX_VARIANTS_PER_PHASE) -> int:
        added = 0
        for raw in phrases:
            if added >= limit:
                break
            tokens = phrase_tokens(raw)[:12 if phase == "primary" else 10]
            if len(tokens) < (4 if strictness == "strict" else 3):
                continue
            if phase in ("primary", "fallback") and self.signal_tokens and len(tokens) < 4 \
                    and not self.signal_tokens.intersection(tokens):
                continue
            phrase = " ".join(tokens)
            signature = f"{phase}|{phrase}"
            if signature in self._seen:
                continue
            self._seen.add(signature)
            self.variants.append(build_variant(
                phase, purpose, phrase, len(self.variants), self.court_scope, strictness,
                must_include=must_include if strictness == "strict" else None,
                must_exclude=must_exclude,
            ))
            added += 1
        return added


def _primary_phrases(intent: IntentProfile) -> List[str]:
    pivots = intent.issues[:3] + intent.procedures[:2]
    phrases: List[str] = []
    if intent.statutes:
        phrases += [f"{statute} {pivot}" for statute in intent.statutes[:3] for pivot in pivots]
        phrases += [f"{statute} {' '.join(tokenize(intent.cleaned_query)[:4])}" for statute in intent.statutes[:2]]
    else:
        phrases += [f"{issue} {procedure}" for issue in intent.issues[:3] for procedure in intent.procedures[:2]]
    phrases.append(" ".join(tokenize(intent.cleaned_query)[:8]))
    return phrases


def _rescue_phrases(intent: IntentProfile) -> List[str]:
    anchor_tokens = _unique(t for anchor in intent.anchors for t in tokenize(anchor))[:15]
    return [" ".join(anchor_tokens[i:i + 5]) for i in range(0, max(1, len(anchor_tokens) - 2), 3)]


def _browse_phrases(intent: IntentProfile, plan: Optional[ReasonerPlan]) -> List[str]:
    head = tokenize(intent.cleaned_query)
    phrases = [" ".join(head[:4]), " ".join(head[:3])]
    phrases += [f"{issue} {intent.domains[0]}" if intent.domains else issue for issue in intent.issues[:2]]
    if plan is not None:
        phrases = plan.case_anchors + phrases
    return phrases


def build_query_variants(intent: IntentProfile, plan: Optional[ReasonerPlan] = None) -> List[QueryVariant]:
    """Every phase's variants, in phase order. Never empty for a query with three or more content tokens."""
    if plan is not None and not plan.usable:
        plan = None
    court_scope = resolve_court_scope(intent, plan)
    builder = _PhaseBuilder(court_scope, legal_signal_tokens(intent, plan))
    include = [t for t in (plan.must_have_terms if plan else []) if " " not in t][:6]
    exclude = [t for t in (plan.must_not_have_terms if plan else []) if " " not in t][:4]

    if plan is not None:
        builder.add("primary", "reasoner-strict", plan.query_variants_strict, "strict", include, exclude)
    builder.add("primary", "context-strict", _primary_phrases(intent), "strict", include, exclude)
    if plan is not None:
        builder.add("fallback", "reasoner-broad", plan.query_variants_broad, "strict", include, exclude)
    builder.add("fallback", "context-templates", fallback_templates(intent.context), "strict", include, exclude)
    builder.add("rescue", "anchor-rescue", _rescue_phrases(intent), "relaxed")
    builder.add("micro", "doctrine-micro", micro_templates(intent.context), "relaxed")
    builder.add("revolving", "issue-actor", revolving_templates(intent.context), "relaxed")
    builder.add("browse", "minimal-browse", _browse_phrases(intent, plan), "relaxed")

    order = {phase: i for i, phase in enumerate(PHASE_ORDER)}
    variants = sorted(builder.variants, key=lambda v: order[v.phase])
    logger.debug("planned %d variants (%s)", len(variants), phase_counts(variants))
    return variants


def _title_seed(title: str) -> str:
    cleaned = TITLE_DATE_RE.sub(" ", normalize_phrase(title))
    return " ".join(_unique(t for t in phrase_tokens(cleaned) if len(t) > 2)[:6])


def build_guarantee_backfill_variants(intent: IntentProfile, near_miss_titles: List[str],
                                      plan: Optional[ReasonerPlan] = None,
                                      max_variants: Optional[int] = None) -> List[QueryVariant]:
    """Browse/relaxed variants seeded from near-miss titles crossed with legal pivots, then anchors."""
    limit = max(1, min(max_variants if max_variants is not None else config.GUARANTEE_EXTRA_ATTEMPTS * 3, 12))
    pivots = _unique(intent.issues + intent.procedures + intent.statutes)[:4]
    seeds = _unique(s for s in (_title_seed(t) for t in near_miss_titles) if len(s) >= 6)[:6]
    phrases = [f"{seed} {pivot}" for seed in seeds for pivot in pivots] or list(seeds)
    phrases += _rescue_phrases(intent)

    builder = _PhaseBuilder(resolve_court_scope(intent, plan), legal_signal_tokens(intent, plan))
    builder.add("browse", "guarantee-backfill", phrases, "relaxed", limit=limit)
    return builder.variants


def phase_counts(variants: Iterable[QueryVariant]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for v in variants:
        counts[v.phase] = counts.get(v.phase, 0) + 1
    return counts


__all__ = [
    'build_query_variants', 'build_guarantee_backfill_variants', 'build_variant', 'normalize_phrase',
    'phrase_tokens', 'paraphrase_key', 'micro_templates', 'fallback_templates', 'revolving_templates',
    'resolve_court_scope', 'legal_signal_tokens', 'phase_counts', 'PHASE_PRIORITY',
]
