"""Proposition checklist: what a judgment must show to count as an exact match.

A checklist has four axes (actor, proceeding, legal hook, outcome), hook groups
of interchangeable statute terms, relations between hook groups that must be
satisfied by proximity in the evidence text, and an outcome constraint with a
polarity plus contradiction terms.

evaluate_proposition_signals() measures one candidate text against a checklist.
It is pure; the gate and the scorer both consume its PropositionSignals.
"""
from __future__ import annotations
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from precedent_finder import config
from precedent_finder.pipeline.reasoner_plan import ReasonerPlan
from precedent_finder.pipeline.types import ContextProfile, PropositionSummary

ACTOR_HINTS = [
    "state", "government", "union of india", "prosecution", "department", "director",
    "accused", "complainant", "public servant",
]
PROCEEDING_HINTS = [
    "criminal appeal", "appeal", "revision", "writ petition", "trial", "investigation",
    "section 482 crpc", "special leave petition",
]
OUTCOME_HINTS = [
    "dismissed", "rejected", "refused", "denied", "allowed", "quashed", "acquitted", "convicted",
    "time barred", "barred by limitation", "delay not condoned", "sanction required", "sanction not required",
]
KNOWN_OUTCOME_PHRASES = [
    "delay not condoned", "condonation refused", "condonation rejected", "appeal dismissed as time barred",
    "barred by limitation", "sanction required", "sanction not required", "proceedings quashed",
    "appeal allowed", "appeal dismissed",
]
INTERACTION_CUES = [
    "read with", "vis-a-vis", "vis a vis", "interplay", "interaction", "requires under",
    "for prosecution under", "under section",
]
_SEC = r"section\s*[0-9]+(?:\([0-9a-z]+\))*(?:\([a-z]\))?"
STRUCTURAL_INTERACTION_RES = [
    re.compile(r"\b(?:offence|prosecution|charge)\s+under\s+" + _SEC, re.IGNORECASE),
    re.compile(r"\brequires?\s+(?:sanction|approval|permission)\s+under\s+" + _SEC, re.IGNORECASE),
    re.compile(r"\bfor\s+" + _SEC + r"\s+under\s+" + _SEC, re.IGNORECASE),
    re.compile(r"\b" + _SEC + r"\s+.*\b(?:with|read with|along with|vis[-\s]?a[-\s]?vis)\b", re.IGNORECASE),
]
INTERACTION_NEGATION_TERMS = [
    "interaction not required", "no statutory interaction", "independent provisions",
    "no overlap between provisions",
]

# polarity -> (positive terms, contradiction terms)
OUTCOME_TERMS_BY_POLARITY: Dict[str, Tuple[List[str], List[str]]] = {
    "required": (
        ["required", "must be required", "mandatory", "necessary", "sanction required", "prior sanction",
         "previous sanction"],
        ["not required", "no sanction required", "sanction unnecessary", "without sanction", "sanction dispensed"],
    ),
    "not_required": (
        ["not required", "no sanction required", "sanction unnecessary", "without sanction", "sanction not required"],
        ["sanction required", "prior sanction", "mandatory sanction", "previous sanction"],
    ),
    "allowed": (
        ["allowed", "granted", "condoned", "restored", "set aside rejection"],
        ["dismissed", "refused", "rejected", "declined", "not condoned", "time barred"],
    ),
    "refused": (
        ["refused", "rejected", "declined", "not condoned", "denied"],
        ["allowed", "granted", "condoned", "restored", "set aside refusal"],
    ),
    "dismissed": (
        ["dismissed", "time barred", "barred by limitation", "dismissed as barred", "delay not condoned"],
        ["allowed", "restored", "set aside dismissal", "delay condoned"],
    ),
    "quashed": (
        ["quashed", "set aside", "proceedings quashed"],
        ["upheld", "confirmed", "sustained", "prosecution continued"],
    ),
    "unknown": ([], []),
}

RELATION_WINDOW_CHARS = 220


class PropositionAxis(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    required: bool
    terms: List[str] = Field(default_factory=list)


class HookGroupConstraint(BaseModel):
    model_config = ConfigDict(frozen=True)

    group_id: str
    label: str
    terms: List[str]
    min_match: int = 1
    required: bool = True


class RelationConstraint(BaseModel):
    model_config = ConfigDict(frozen=True)

    relation_id: str
    type: str
    left_group_id: str
    right_group_id: str
    required: bool = True


class OutcomeConstraint(BaseModel):
    model_config = ConfigDict(frozen=True)

    polarity: str = "unknown"
    required: bool = False
    terms: List[str] = Field(default_factory=list)
    contradiction_terms: List[str] = Field(default_factory=list)


class PropositionChecklist(BaseModel):
    """Built once per request, read-only during scoring."""
    model_config = ConfigDict(frozen=True)

    axes: List[PropositionAxis]
    required_elements: List[str]
    optional_elements: List[str]
    contradiction_terms: List[str]
    court_hint: str = "ANY"
    hook_groups: List[HookGroupConstraint] = Field(default_factory=list)
    relations: List[RelationConstraint] = Field(default_factory=list)
    interaction_required: bool = False
    outcome_constraint: OutcomeConstraint = Field(default_factory=OutcomeConstraint)

    @property
    def has_required_relations(self) -> bool:
        return any(r.required for r in self.relations)

    @property
    def has_doctrinal_signals(self) -> bool:
        return (
            any(g.required for g in self.hook_groups)
            or self.has_required_relations
            or self.interaction_required
            or self.outcome_constraint.required
        )

    def summary(self) -> PropositionSummary:
        return PropositionSummary(
            required_elements=self.required_elements,
            optional_elements=self.optional_elements,
            hook_groups=[g.group_id for g in self.hook_groups],
            relation_count=len(self.relations),
            interaction_required=self.interaction_required,
            outcome_polarity=self.outcome_constraint.polarity,
            outcome_required=self.outcome_constraint.required,
        )


@dataclass
class PropositionSignals:
    required_coverage: float = 0.0
    core_coverage: float = 1.0
    peripheral_coverage: float = 1.0
    hook_group_coverage: float = 1.0
    required_component_count: int = 0
    core_component_count: int = 0
    peripheral_component_count: int = 0
    relation_satisfied: bool = True
    outcome_polarity_satisfied: bool = True
    polarity_mismatch: bool = False
    contradiction: bool = False
    contradiction_terms: List[str] = field(default_factory=list)
    matched_elements: List[str] = field(default_factory=list)
    missing_elements: List[str] = field(default_factory=list)
    matched_core_elements: List[str] = field(default_factory=list)
    missing_core_elements: List[str] = field(default_factory=list)
    matched_peripheral_elements: List[str] = field(default_factory=list)
    missing_peripheral_elements: List[str] = field(default_factory=list)
    matched_hook_groups: List[str] = field(default_factory=list)
    missing_hook_groups: List[str] = field(default_factory=list)
    evidence: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

def _unique(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(values))


def normalize_text(value: str) -> str:
    value = re.sub(r"[`\"'\[\]{}]", " ", (value or "").lower())
    value = re.sub(r"[^a-z0-9\s()./:-]", " ", value)
    return re.sub(r"\s+", " ", value).strip()


def normalize_terms(values: Iterable[str], max_items: int) -> List[str]:
    out = [normalize_text(v) for v in values if v]
    return _unique(t for t in out if len(t) >= 2)[:max_items]


def slug(value: str) -> str:
    return re.sub(r"_+", "_", re.sub(r"[^a-z0-9]+", "_", value.lower())).strip("_")[:40]


def contains_term(text: str, term: str) -> bool:
    """Phrase terms match as substrings, single words on word boundaries."""
    if not term:
        return False
    if " " in term:
        return term in text
    return re.search(rf"\b{re.escape(term)}\b", text, re.IGNORECASE) is not None


def contains_contradiction_term(text: str, term: str) -> bool:
    norm = normalize_text(term)
    if not norm or not contains_term(text, norm):
        return False
    # "not condoned" must not count as "condoned"
    if norm in ("condoned", "allowed", "granted"):
        if re.search(rf"\b(?:not|no|without)\s+(?:been\s+)?{re.escape(norm)}\b", text, re.IGNORECASE):
            return False
    if norm == "restored" and re.search(r"\bnot\s+restored\b", text, re.IGNORECASE):
        return False
    return True


def find_term_positions(text: str, term: str) -> List[int]:
    if not term:
        return []
    if " " in term:
        positions = []
        idx = text.find(term)
        while idx >= 0:
            positions.append(idx)
            idx = text.find(term, idx + len(term))
        return positions
    return [m.start() for m in re.finditer(rf"\b{re.escape(term)}\b", text, re.IGNORECASE)]


def relation_satisfied_by_proximity(text: str, left_terms: List[str], right_terms: List[str],
                                    window: int = RELATION_WINDOW_CHARS) -> bool:
    left = [p for t in left_terms for p in find_term_positions(text, t)][:30]
    right = [p for t in right_terms for p in find_term_positions(text, t)][:30]
    return any(abs(a - b) <= window for a in left for b in right)


# ---------------------------------------------------------------------------
# Hook groups
# ---------------------------------------------------------------------------

def detect_hook_family(normalized: str) -> Optional[str]:
    if re.search(r"prevention of corruption|pc act", normalized):
        return "pc_act"
    if re.search(r"\bcrpc\b|criminal procedure", normalized):
        return "crpc"
    if re.search(r"\bipc\b|indian penal code", normalized):
        return "ipc"
    if re.search(r"\bcpc\b|civil procedure", normalized):
        return "cpc"
    if "limitation act" in normalized:
        return "limitation_act"
    return None


def _section_token(normalized: str) -> Optional[str]:
    m = re.search(r"\b(?:section\s*)?([0-9]+(?:\([0-9a-z]+\))*(?:\([a-z]\))?)", normalized, re.IGNORECASE)
    return m.group(1) if m else None


_SECTION_FAMILIES = [
    (re.compile(r"^(13|19)(?:\([0-9a-z]+\))*(?:\([a-z]\))?$"), "pc_act"),
    (re.compile(r"^(197|482|378)(?:\([0-9a-z]+\))*(?:\([a-z]\))?$"), "crpc"),
    (re.compile(r"^(406|420|409|120b|302|304|307)(?:\([0-9a-z]+\))*(?:\([a-z]\))?$"), "ipc"),
]


def _section_family_from_context(section: str, normalized: str, all_terms: List[str]) -> Optional[str]:
    direct = detect_hook_family(normalized)
    if direct:
        return direct
    known = {f for f in (detect_hook_family(normalize_text(t)) for t in all_terms) if f}
    clean = re.sub(r"\s+", "", section).lower()
    for pattern, family in _SECTION_FAMILIES:
        if pattern.match(clean) and family in known:
            return family
    if len(known) == 1:
        return next(iter(known))
    return None


def infer_hook_group_id(term: str, all_terms: List[str]) -> str:
    normalized = normalize_text(term)
    section = _section_token(normalized)
    family = detect_hook_family(normalized)
    if section:
        key = slug(re.sub(r"[()]", "_", section))
        bound = family or _section_family_from_context(section, normalized, all_terms)
        return f"sec_{bound}_{key}" if bound else f"sec_{key}"
    if family:
        return family
    return f"hook_{slug(normalized)}"


_FAMILY_ALIASES = {
    "pc_act": ["prevention of corruption act", "pc act"],
    "crpc": ["crpc", "code of criminal procedure"],
    "ipc": ["ipc", "indian penal code"],
    "cpc": ["cpc", "code of civil procedure"],
}


def expand_hook_term(term: str, bound_family: Optional[str] = None) -> List[str]:
    normalized = normalize_text(term)
    expanded = [normalized]
    m = re.search(r"\bsection\s*([0-9]+(?:\([0-9a-z]+\))*(?:\([a-z]\))?)", normalized, re.IGNORECASE)
    if m:
        token = m.group(1)
        spaced = re.sub(r"[()]", " ", token)
        expanded += [f"section {token}", f"section {spaced}", token, spaced]
    if "prevention of corruption" in normalized or re.search(r"\bpc act\b", normalized):
        expanded += ["prevention of corruption act", "pc act"]
    if re.search(r"\bcrpc\b", normalized) or "criminal procedure" in normalized:
        expanded += ["crpc", "cr.p.c", "code of criminal procedure"]
    if re.search(r"\bipc\b", normalized) or "indian penal code" in normalized:
        expanded += ["ipc", "indian penal code"]
    if "limitation act" in normalized:
        expanded += ["limitation act", "section 5 limitation act"]
    expanded += _FAMILY_ALIASES.get(bound_family or "", [])
    return normalize_terms(expanded, 12)


def _group_label(group_id: str) -> str:
    return re.sub(r"^hook_", "", group_id).replace("_", " ").strip()


def build_hook_groups(legal_hook_terms: List[str], plan: Optional[ReasonerPlan] = None) -> List[HookGroupConstraint]:
    groups: Dict[str, dict] = {}
    plan_groups = plan.proposition.hook_groups if plan else []
    all_terms = list(legal_hook_terms)
    if plan:
        all_terms += plan.proposition.legal_hooks + [t for g in plan_groups for t in g.terms]

    for g in plan_groups:
        group_id = slug(g.group_id)
        if not group_id:
            continue
        groups[group_id] = dict(
            group_id=group_id, label=_group_label(group_id), terms=normalize_terms(g.terms, 12),
            min_match=max(1, min(g.min_match, 4)), required=g.required,
        )

    for term in legal_hook_terms:
        normalized = normalize_text(term)
        if len(normalized) < 2:
            continue
        family = infer_hook_group_id(normalized, all_terms)
        group_id = slug(family)
        if family.startswith("sec_"):
            m = re.match(r"^sec_(pc_act|crpc|ipc|cpc|limitation_act)_", family)
            family_token = m.group(1) if m else None
        else:
            family_token = detect_hook_family(normalized)
        expanded = expand_hook_term(normalized, family_token)
        if group_id in groups:
            groups[group_id]["terms"] = normalize_terms(groups[group_id]["terms"] + expanded, 16)
        else:
            groups[group_id] = dict(
                group_id=group_id, label=_group_label(group_id), terms=expanded, min_match=1, required=True,
            )

    return [HookGroupConstraint(**g) for g in groups.values() if g["terms"]][:8]


def build_relations(groups: List[HookGroupConstraint], cleaned_query: str,
                    plan: Optional[ReasonerPlan] = None) -> Tuple[List[RelationConstraint], bool]:
    negation_bag = ""
    if plan:
        negation_bag = normalize_text(" ".join(plan.must_not_have_terms + plan.proposition.outcome_negative))
    negated = any(term in negation_bag for term in INTERACTION_NEGATION_TERMS)

    group_ids = {g.group_id for g in groups}
    plan_relations = []
    for idx, rel in enumerate(plan.proposition.relations if plan else []):
        left, right = slug(rel.left_group_id), slug(rel.right_group_id)
        if left in group_ids and right in group_ids:
            plan_relations.append(RelationConstraint(
                relation_id=f"r_{idx}_{slug(f'{left}_{right}')}", type=rel.type,
                left_group_id=left, right_group_id=right, required=rel.required,
            ))

    q = normalize_text(cleaned_query)
    required_groups = [g for g in groups if g.required]
    cue = any(c in q for c in INTERACTION_CUES)
    structural = any(p.search(q) for p in STRUCTURAL_INTERACTION_RES)
    inferred = len(required_groups) > 1 and (cue or structural)
    multihook_default = (
        config.STRICT_INTERSECTION_REQUIRED_WHEN_MULTIHOOK and len(required_groups) > 1 and not negated
    )
    interaction_required = bool(plan and plan.proposition.interaction_required) or inferred or multihook_default

    if plan_relations:
        return plan_relations, interaction_required
    if not interaction_required:
        return [], interaction_required
    head = required_groups[:4]
    generated = [
        RelationConstraint(
            relation_id=f"rel_{a.group_id}_{b.group_id}", type="interacts_with",
            left_group_id=a.group_id, right_group_id=b.group_id, required=True,
        )
        for i, a in enumerate(head) for b in head[i + 1:]
    ]
    return generated[:8], interaction_required


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------

def infer_outcome_polarity(query: str, terms: List[str]) -> str:
    bag = normalize_text(f"{normalize_text(query)} {' '.join(terms)}")
    negative_condonation = any(re.search(rx, bag) for rx in (
        r"\bdelay\s+(?:has|was|is|had)?\s*not\s+(?:been\s+)?condon(?:ed|able)\b",
        r"\bnot\s+(?:been\s+|is\s+|was\s+)?condon(?:ed|able)\b",
        r"\bcondonation(?:\s+of\s+delay)?\s+(?:was\s+|is\s+|has\s+been\s+)?(?:refused|rejected|denied|dismissed|declined)\b",
        r"\bcondonation(?:\s+of\s+delay)?\s+not\s+granted\b",
    ))
    positive_condonation = any(re.search(rx, bag) for rx in (
        r"\bdelay\s+(?:has|was|is|had)?\s*(?:been\s+)?condoned\b",
        r"\bcondonation(?:\s+of\s+delay)?\s+(?:was\s+|is\s+|has\s+been\s+)?granted\b",
        r"\bappeal\s+(?:was\s+|is\s+|has\s+been\s+)?restored\b",
    ))
    if re.search(r"\bsanction\b", bag):
        if re.search(r"\b(?:not required|no sanction required|without sanction)\b", bag):
            return "not_required"
        if re.search(r"\b(?:must|required|mandatory|necessary|prior|previous)\b", bag):
            return "required"
    if negative_condonation or re.search(r"\b(?:not condoned|refused|rejected|declined)\b", bag):
        return "refused"
    if re.search(r"\b(?:dismissed|time barred|barred by limitation)\b", bag):
        return "dismissed"
    if re.search(r"\bquashed\b", bag):
        return "quashed"
    if positive_condonation or re.search(r"\b(?:allowed|granted|condoned|restored)\b", bag):
        return "allowed"
    return "unknown"


def build_outcome_constraint(query: str, outcome_terms: List[str], contradiction_terms: List[str],
                             plan: Optional[ReasonerPlan] = None) -> OutcomeConstraint:
    plan_outcome = plan.proposition.outcome_constraint if plan else None
    polarity = plan_outcome.polarity if plan_outcome and plan_outcome.polarity != "unknown" else \
        infer_outcome_polarity(query, outcome_terms)
    positive, negative = OUTCOME_TERMS_BY_POLARITY[polarity]
    terms = normalize_terms((plan_outcome.terms if plan_outcome else []) + outcome_terms + positive, 14)
    contradictions = normalize_terms(
        (plan_outcome.contradiction_terms if plan_outcome else []) + contradiction_terms + negative, 16,
    )
    return OutcomeConstraint(
        polarity=polarity,
        required=bool(terms) or polarity != "unknown",
        terms=terms,
        contradiction_terms=contradictions,
    )


# ---------------------------------------------------------------------------
# Checklist
# ---------------------------------------------------------------------------

def _axis_values(plan_values: List[str], context_values: List[str], query: str, hints: List[str]) -> List[str]:
    q = normalize_text(query)
    return normalize_terms(plan_values + context_values + [h for h in hints if h in q], 16)


def build_proposition_checklist(context: ContextProfile, cleaned_query: str,
                                plan: Optional[ReasonerPlan] = None) -> PropositionChecklist:
    prop = plan.proposition if plan else None
    q = normalize_text(cleaned_query)
    actor_terms = _axis_values(prop.actors if prop else [], context.actors, cleaned_query, ACTOR_HINTS)
    proceeding_terms = _axis_values(prop.proceeding if prop else [], context.procedures, cleaned_query,
                                    PROCEEDING_HINTS)
    legal_hook_terms = normalize_terms((prop.legal_hooks if prop else []) + context.statutes_or_sections, 24)
    outcome_terms = normalize_terms(
        (prop.outcome_required if prop else [])
        + context.issues
        + [p for p in KNOWN_OUTCOME_PHRASES if p in q]
        + [h for h in OUTCOME_HINTS if h in q],
        16,
    )
    contradiction_terms = normalize_terms(
        (prop.outcome_negative if prop else []) + (plan.must_not_have_terms if plan else []), 16,
    )

    hook_groups = build_hook_groups(legal_hook_terms, plan)
    relations, interaction_required = build_relations(hook_groups, cleaned_query, plan)
    outcome = build_outcome_constraint(cleaned_query, outcome_terms, contradiction_terms, plan)

    axes = [
        PropositionAxis(key="actor", label="actor or party role", required=bool(actor_terms),
                        terms=normalize_terms(actor_terms, 16)),
        PropositionAxis(key="proceeding", label="proceeding or posture", required=bool(proceeding_terms),
                        terms=normalize_terms(proceeding_terms, 16)),
        PropositionAxis(key="legal_hook", label="statute/section/legal hook",
                        required=any(g.required for g in hook_groups), terms=normalize_terms(legal_hook_terms, 24)),
        PropositionAxis(key="outcome", label="required outcome", required=outcome.required,
                        terms=normalize_terms(outcome.terms, 16)),
    ]
    return PropositionChecklist(
        axes=axes,
        required_elements=[a.label for a in axes if a.required],
        optional_elements=[a.label for a in axes if not a.required],
        contradiction_terms=normalize_terms(contradiction_terms + outcome.contradiction_terms, 18),
        court_hint=prop.jurisdiction_hint if prop else "ANY",
        hook_groups=hook_groups,
        relations=relations,
        interaction_required=interaction_required,
        outcome_constraint=outcome,
    )


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def evaluate_proposition_signals(text: str, checklist: PropositionChecklist,
                                 evidence_text: str = "") -> PropositionSignals:
    """Measure one candidate text against the checklist.

    Relation, polarity and contradiction checks run on ``evidence_text`` when
    given (ratio-like sentences), otherwise on the full text.
    """
    normalized = normalize_text(text)
    scoped = normalize_text(evidence_text) if evidence_text else normalized
    evidence: List[str] = []

    axis_hits: Dict[str, bool] = {}
    matched_elements: List[str] = []
    missing: List[str] = []
    for axis in checklist.axes:
        hits = [t for t in axis.terms if contains_term(normalized, t)][:3]
        axis_hits[axis.key] = bool(hits)
        if hits:
            matched_elements.append(axis.label)
            evidence.append(f"{axis.label}: {', '.join(hits)}")
        elif axis.required:
            missing.append(axis.label)

    required_groups = [g for g in checklist.hook_groups if g.required]
    matched_groups: List[str] = []
    missing_groups: List[str] = []
    for group in checklist.hook_groups:
        hits = [t for t in group.terms if contains_term(normalized, t)][:8]
        ok = len(hits) >= group.min_match
        if ok:
            evidence.append(f"hookGroup[{group.group_id}]: {', '.join(hits[:2])}")
        if group.required:
            (matched_groups if ok else missing_groups).append(group.group_id)
    hook_coverage = len(matched_groups) / len(required_groups) if required_groups else 1.0

    groups_by_id = {g.group_id: g for g in checklist.hook_groups}
    required_relations = [r for r in checklist.relations if r.required]
    relation_failures = 0
    for rel in required_relations:
        left, right = groups_by_id.get(rel.left_group_id), groups_by_id.get(rel.right_group_id)
        if not left or not right:
            continue
        if relation_satisfied_by_proximity(scoped, left.terms, right.terms):
            evidence.append(f"relation[{rel.type}]: {left.group_id}<->{right.group_id}")
        else:
            relation_failures += 1
    relation_ok = relation_failures == 0

    outcome = checklist.outcome_constraint
    outcome_hits = [t for t in outcome.terms if contains_term(scoped, t)]
    outcome_contradictions = [t for t in outcome.contradiction_terms if contains_contradiction_term(scoped, t)]
    polarity_ok = not outcome.required or (bool(outcome_hits) and not outcome_contradictions)
    polarity_mismatch = outcome.required and not polarity_ok
    if outcome_hits:
        evidence.append(f"outcome[{outcome.polarity}]: {', '.join(outcome_hits[:2])}")

    checklist_contradictions = [t for t in checklist.contradiction_terms if contains_contradiction_term(scoped, t)]
    contradiction = bool(checklist_contradictions or outcome_contradictions)

    needs_interaction = bool(required_relations) or checklist.interaction_required
    peripheral: List[Tuple[str, bool]] = [
        (a.label, axis_hits[a.key]) for a in checklist.axes if a.key in ("actor", "proceeding") and a.required
    ]
    core: List[Tuple[str, bool]] = [(f"hook group:{g.group_id}", g.group_id in matched_groups) for g in required_groups]
    if needs_interaction:
        core.append(("required hook interaction",
                     relation_ok and (len(required_groups) <= 1 or len(matched_groups) > 1)))
    if outcome.required:
        core.append((f"outcome polarity:{outcome.polarity}", polarity_ok))

    components = core + peripheral
    required_coverage = sum(ok for _, ok in components) / len(components) if components else 0.0
    core_coverage = sum(ok for _, ok in core) / len(core) if core else 1.0
    peripheral_coverage = sum(ok for _, ok in peripheral) / len(peripheral) if peripheral else 1.0

    missing += [f"hook group:{g}" for g in missing_groups]
    if needs_interaction and not relation_ok:
        missing.append("required hook interaction")
    if polarity_mismatch:
        missing.append(f"outcome polarity:{outcome.polarity}")
    if contradiction:
        missing.append("contradictory outcome")

    matched_all = matched_elements + [f"hook group:{g}" for g in matched_groups]
    if relation_ok and needs_interaction:
        matched_all.append("required hook interaction")
    if polarity_ok and outcome.required:
        matched_all.append(f"outcome polarity:{outcome.polarity}")

    return PropositionSignals(
        required_coverage=required_coverage,
        core_coverage=core_coverage,
        peripheral_coverage=peripheral_coverage,
        hook_group_coverage=hook_coverage,
        required_component_count=len(components),
        core_component_count=len(core),
        peripheral_component_count=len(peripheral),
        relation_satisfied=relation_ok,
        outcome_polarity_satisfied=polarity_ok,
        polarity_mismatch=polarity_mismatch,
        contradiction=contradiction,
        contradiction_terms=normalize_terms(checklist_contradictions + outcome_contradictions, 8),
        matched_elements=_unique(matched_all),
        missing_elements=_unique(missing),
        matched_core_elements=_unique(label for label, ok in core if ok),
        missing_core_elements=_unique(label for label, ok in core if not ok),
        matched_peripheral_elements=_unique(label for label, ok in peripheral if ok),
        missing_peripheral_elements=_unique(label for label, ok in peripheral if not ok),
        matched_hook_groups=matched_groups,
        missing_hook_groups=missing_groups,
        evidence=_unique(evidence)[:12],
    )


__all__ = [
    'PropositionAxis', 'HookGroupConstraint', 'RelationConstraint', 'OutcomeConstraint',
    'PropositionChecklist', 'PropositionSignals', 'build_proposition_checklist',
    'evaluate_proposition_signals', 'infer_outcome_polarity', 'build_hook_groups', 'contains_term',
    'normalize_text', 'normalize_terms',
]
