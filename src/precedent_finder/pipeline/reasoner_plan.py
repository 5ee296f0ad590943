"""Validation and sanitization of an external query-planning payload.

The planner collaborator is optional and untrusted: every field is normalized,
length/count capped, and unknown enum values fall back to neutral defaults.
``validate_reasoner_plan`` never raises; malformed input yields an empty plan
plus warnings. ``require_usable_plan`` is the strict variant used by callers
that cannot proceed without variants.
"""
from __future__ import annotations
import logging
import math
import re
from typing import Any, Dict, List, Literal, Optional, Set, Tuple

from pydantic import BaseModel, Field

from precedent_finder.errors import PlanValidationError

logger = logging.getLogger(__name__)

OutcomePolarity = Literal["required", "not_required", "allowed", "refused", "dismissed", "quashed", "unknown"]
RelationType = Literal["requires", "applies_to", "interacts_with", "excluded_by"]

MAX_TERM_LENGTH = 120
MAX_VARIANT_TOKENS = 12
MAX_VARIANTS = 8


class PlanHookGroup(BaseModel):
    group_id: str
    terms: List[str]
    min_match: int = 1
    required: bool = True


class PlanRelation(BaseModel):
    type: RelationType
    left_group_id: str
    right_group_id: str
    required: bool = True


class PlanOutcomeConstraint(BaseModel):
    polarity: OutcomePolarity = "unknown"
    terms: List[str] = Field(default_factory=list)
    contradiction_terms: List[str] = Field(default_factory=list)


class PlanProposition(BaseModel):
    actors: List[str] = Field(default_factory=list)
    proceeding: List[str] = Field(default_factory=list)
    legal_hooks: List[str] = Field(default_factory=list)
    outcome_required: List[str] = Field(default_factory=list)
    outcome_negative: List[str] = Field(default_factory=list)
    jurisdiction_hint: Literal["SC", "HC", "ANY"] = "ANY"
    hook_groups: List[PlanHookGroup] = Field(default_factory=list)
    relations: List[PlanRelation] = Field(default_factory=list)
    outcome_constraint: PlanOutcomeConstraint = Field(default_factory=PlanOutcomeConstraint)
    interaction_required: bool = False


class ReasonerPlan(BaseModel):
    proposition: PlanProposition = Field(default_factory=PlanProposition)
    must_have_terms: List[str] = Field(default_factory=list)
    must_not_have_terms: List[str] = Field(default_factory=list)
    query_variants_strict: List[str] = Field(default_factory=list)
    query_variants_broad: List[str] = Field(default_factory=list)
    case_anchors: List[str] = Field(default_factory=list)

    @property
    def usable(self) -> bool:
        return bool(self.query_variants_strict or self.query_variants_broad)


def _text_list(value: Any, max_items: int, max_length: int = MAX_TERM_LENGTH) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    out: List[str] = []
    for raw in value:
        if not isinstance(raw, str):
            continue
        norm = re.sub(r"\s+", " ", raw.lower()).strip()
        if not norm or len(norm) > max_length or norm in out:
            continue
        out.append(norm)
        if len(out) >= max_items:
            break
    return out


def _merge_aliases(values: List[Any], max_items: int, max_length: int = MAX_TERM_LENGTH) -> List[str]:
    out: List[str] = []
    for value in values:
        for term in _text_list(value, max_items, max_length):
            if term not in out:
                out.append(term)
            if len(out) >= max_items:
                return out
    return out


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        norm = value.strip().lower()
        if norm in ("1", "true", "yes", "on"):
            return True
        if norm in ("0", "false", "no", "off"):
            return False
    return default


def _sanitize_id(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    cleaned = re.sub(r"_+", "_", re.sub(r"[^a-z0-9_:-]", "_", value.lower())).strip("_")
    return cleaned[:48] or None


def _court_hint(value: Any) -> str:
    norm = value.strip().upper() if isinstance(value, str) else ""
    return norm if norm in ("SC", "HC") else "ANY"


def _polarity(value: Any) -> str:
    if not isinstance(value, str):
        return "unknown"
    norm = value.strip().lower().replace(" ", "_")
    return norm if norm in ("required", "not_required", "allowed", "refused", "dismissed", "quashed") else "unknown"


def _relation_type(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    norm = value.strip().lower().replace(" ", "_")
    return norm if norm in ("requires", "applies_to", "interacts_with", "excluded_by") else None


def _is_weak_hook_term(term: str) -> bool:
    return len(term) <= 1 or bool(re.fullmatch(r"\d{1,4}", term)) or bool(re.fullmatch(r"[ivxlcdm]+", term))


def _hook_groups(value: Any, warnings: List[str]) -> List[PlanHookGroup]:
    if not isinstance(value, list):
        return []
    groups: List[PlanHookGroup] = []
    for raw in value:
        if not isinstance(raw, dict):
            warnings.append("hook group entry is not an object")
            continue
        group_id = _sanitize_id(raw.get("group_id"))
        terms = [t for t in _text_list(raw.get("terms"), 10) if not _is_weak_hook_term(t)]
        if not group_id or not terms:
            warnings.append("hook group dropped: missing id or terms")
            continue
        try:
            min_match = float(raw.get("min_match", 1))
        except (TypeError, ValueError):
            min_match = 1.0
        min_match = int(min_match) if math.isfinite(min_match) else 1
        groups.append(PlanHookGroup(
            group_id=group_id,
            terms=terms,
            min_match=max(1, min(min_match, min(len(terms), 4))),
            required=_as_bool(raw.get("required"), True),
        ))
        if len(groups) >= 8:
            break
    return groups


def _relations(value: Any, group_ids: Set[str], warnings: List[str]) -> List[PlanRelation]:
    if not isinstance(value, list):
        return []
    relations: List[PlanRelation] = []
    for raw in value:
        if not isinstance(raw, dict):
            continue
        rel_type = _relation_type(raw.get("type"))
        left = _sanitize_id(raw.get("left_group_id"))
        right = _sanitize_id(raw.get("right_group_id"))
        if not rel_type or left not in group_ids or right not in group_ids:
            warnings.append("relation dropped: unknown type or group")
            continue
        relations.append(PlanRelation(
            type=rel_type, left_group_id=left, right_group_id=right, required=_as_bool(raw.get("required"), True),
        ))
        if len(relations) >= 12:
            break
    return relations


def sanitize_variant(value: str) -> Optional[str]:
    cleaned = re.sub(r"\b(?:doctypes|sortby|fromdate|todate):\S+", " ", value, flags=re.IGNORECASE)
    cleaned = re.sub(r"\b(?:cases?\s+where|precedents?\s+where|judgments?\s+where)\b", " ", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"\b(?:find|show|list)\s+(?:me\s+)?(?:cases?|precedents?|judgments?)\b", " ", cleaned,
                     flags=re.IGNORECASE)
    cleaned = re.sub(r"[^a-z0-9\s()]", " ", cleaned.lower())
    tokens = cleaned.split()[:MAX_VARIANT_TOKENS]
    if len(tokens) < 2:
        return None
    return " ".join(tokens)


def _variants(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    out: List[str] = []
    for raw in value:
        if not isinstance(raw, str):
            continue
        cleaned = sanitize_variant(raw)
        if cleaned and cleaned not in out:
            out.append(cleaned)
        if len(out) >= MAX_VARIANTS:
            break
    return out


def validate_reasoner_plan(raw: Any) -> Tuple[ReasonerPlan, List[str]]:
    """Return (plan, warnings). Never raises."""
    warnings: List[str] = []
    if not isinstance(raw, dict):
        warnings.append("reasoner payload is not an object")
        return ReasonerPlan(), warnings

    prop: Dict[str, Any] = raw.get("proposition") if isinstance(raw.get("proposition"), dict) else {}
    groups = _hook_groups(prop.get("hook_groups"), warnings)
    relations = _relations(prop.get("relations"), {g.group_id for g in groups}, warnings)
    outcome_raw = prop.get("outcome_constraint")
    if isinstance(outcome_raw, dict):
        outcome = PlanOutcomeConstraint(
            polarity=_polarity(outcome_raw.get("polarity")),
            terms=_text_list(outcome_raw.get("terms"), 10),
            contradiction_terms=_text_list(outcome_raw.get("contradiction_terms"), 10),
        )
    else:
        outcome = PlanOutcomeConstraint(
            terms=_text_list(prop.get("outcome_required"), 10),
            contradiction_terms=_text_list(prop.get("outcome_negative"), 10),
        )

    proposition = PlanProposition(
        actors=_merge_aliases([prop.get("actors"), prop.get("actor"), prop.get("actor_role")], 8),
        proceeding=_merge_aliases([prop.get("proceeding"), prop.get("posture")], 8),
        legal_hooks=_text_list(prop.get("legal_hooks"), 12),
        outcome_required=_merge_aliases([prop.get("outcome_required"), prop.get("required_outcome")], 10),
        outcome_negative=_text_list(prop.get("outcome_negative"), 10),
        jurisdiction_hint=_court_hint(prop.get("jurisdiction_hint")),
        hook_groups=groups,
        relations=relations,
        outcome_constraint=outcome,
        interaction_required=_as_bool(prop.get("interaction_required"), False),
    )
    plan = ReasonerPlan(
        proposition=proposition,
        must_have_terms=_text_list(raw.get("must_have_terms"), 16),
        must_not_have_terms=_text_list(raw.get("must_not_have_terms"), 16),
        query_variants_strict=_variants(raw.get("query_variants_strict")),
        query_variants_broad=_variants(raw.get("query_variants_broad")),
        case_anchors=_text_list(raw.get("case_anchors"), 12),
    )
    if not plan.query_variants_strict:
        warnings.append("no valid strict variants from reasoner")
    if warnings:
        logger.warning("reasoner plan sanitized with %d warning(s)", len(warnings))
    return plan, warnings


def require_usable_plan(raw: Any) -> ReasonerPlan:
    plan, warnings = validate_reasoner_plan(raw)
    if not plan.usable:
        raise PlanValidationError("; ".join(warnings) or "reasoner plan has no usable variants")
    return plan


__all__ = [
    'ReasonerPlan', 'PlanProposition', 'PlanHookGroup', 'PlanRelation', 'PlanOutcomeConstraint',
    'validate_reasoner_plan', 'require_usable_plan', 'sanitize_variant',
]
