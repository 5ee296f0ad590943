"""Query readiness coaching.

Scores how well a query states the proposition the gate will verify (actor,
proceeding, outcome, legal hooks, exclusion cues) and suggests what to add.
Used directly by ``/api/query-coach`` and by the synthetic fallback to word
its advisory snippet.
"""
from __future__ import annotations
import re
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from precedent_finder.pipeline.intent import build_intent_profile
from precedent_finder.pipeline.types import IntentProfile

Grade = Literal["STRONG", "FAIR", "WEAK"]
Readiness = Literal["NOT_READY", "NEEDS_SPECIFICITY", "READY_FOR_EXACT"]

GRADE_ORDER: List[str] = ["WEAK", "FAIR", "STRONG"]
WEIGHTS = {
    'proceeding': 0.32,
    'outcome': 0.28,
    'actor': 0.22,
    'hooks': 0.13,
    'exclusions': 0.05,
}

EXCLUSION_CUE_RE = re.compile(
    r"\b(?:not|without|except|rather than|instead of|not condoned|not required|no sanction)\b"
)

READINESS_MESSAGES = {
    'READY_FOR_EXACT': (
        "Your query has enough structure for strict proposition matching. "
        "Add one exclusion cue to reduce adjacent doctrine drift."
    ),
    'NEEDS_SPECIFICITY': (
        "The system can search this, but exact matches improve when you add the court outcome "
        "or known statute hooks."
    ),
    'NOT_READY': "Add actor + proceeding first. Then include the exact court outcome you want verified.",
}


class CoachItem(BaseModel):
    id: Literal["actor", "proceeding", "outcome", "hooks", "exclusions"]
    label: str
    priority: Literal["critical", "optional"]
    satisfied: bool
    detail: str


class QueryCoachResult(BaseModel):
    score: float
    grade: Grade
    readiness: Readiness
    readiness_message: str
    checklist: List[CoachItem] = Field(default_factory=list)
    next_actions: List[str] = Field(default_factory=list)
    recommended_pattern: Optional[str] = None
    stricter_rewrite: Optional[str] = None


def has_exclusion_cue(query: str) -> bool:
    return bool(EXCLUSION_CUE_RE.search((query or "").lower()))


def _outcome_phrase(query: str) -> str:
    q = query.lower()
    if re.search(r"not\s+(?:been\s+)?condon(?:ed|able)|condonation\s+(?:was\s+)?(?:refused|rejected|denied)", q):
        return "delay was not condoned and appeal was dismissed as time-barred"
    if re.search(r"sanction\s+not\s+required|without\s+sanction|no\s+sanction\s+required", q):
        return "sanction under the cited provision was held not required"
    if re.search(r"sanction\s+required|prior\s+sanction|previous\s+sanction", q):
        return "court held prior sanction was mandatory"
    if re.search(r"quash", q):
        return "criminal proceedings were quashed"
    return "court outcome you want to find (for example refused, dismissed, allowed, quashed)"


def _proceeding_phrase(query: str, procedures: List[str]) -> str:
    q = query.lower()
    if re.search(r"appeal\s+against\s+acquittal|section\s*378", q):
        return "criminal appeal against acquittal"
    if "criminal appeal" in q:
        return "criminal appeal"
    if procedures:
        return procedures[0]
    return "proceeding posture (for example criminal appeal, revision, writ petition)"


def stricter_rewrite(intent: IntentProfile) -> Optional[str]:
    """Template rewrite naming actor, posture, hooks and outcome; None when too thin to help."""
    actor = intent.actors[0] if intent.actors else "the appellant"
    proceeding = _proceeding_phrase(intent.cleaned_query, intent.procedures)
    outcome = _outcome_phrase(intent.cleaned_query)
    hooks = f" under {' and '.join(intent.statutes[:2])}" if intent.statutes else ""
    focus = f" focusing on {' and '.join(intent.issues[:2])}" if intent.issues else ""
    rewrite = f"{actor} in {proceeding}{hooks}; find SC/HC cases where the court held that {outcome}{focus}."
    tokens = [t for t in re.sub(r"[^a-z0-9\s()]", " ", rewrite.lower()).split() if len(t) > 1]
    return rewrite if len(tokens) >= 8 else None


def _cap_grade(grade: str, ceiling: str) -> str:
    return ceiling if GRADE_ORDER.index(grade) > GRADE_ORDER.index(ceiling) else grade


def _recommended_pattern(intent: IntentProfile, satisfied: dict) -> str:
    actor = intent.actors[0] if satisfied['actor'] and intent.actors else "State as appellant"
    proceeding = intent.procedures[0] if satisfied['proceeding'] and intent.procedures else "criminal appeal"
    if satisfied['outcome']:
        outcome = intent.issues[0] if intent.issues else "appeal dismissed as time-barred"
    else:
        outcome = "dismissed/refused/allowed/not required"
    hooks = f" under {intent.statutes[0] if intent.statutes else 'relevant section/statute'}" if satisfied['hooks'] else ""
    return f"{actor} in {proceeding}{hooks}; find SC/HC judgments where the court held {outcome}."


def _detected(values: List[str], fallback: str) -> str:
    return f"Detected: {', '.join(values[:3]) or fallback}"


def evaluate_intent(intent: IntentProfile) -> QueryCoachResult:
    exclusions = has_exclusion_cue(intent.cleaned_query)
    satisfied = {
        'actor': bool(intent.actors),
        'proceeding': bool(intent.procedures),
        'hooks': bool(intent.statutes),
        'outcome': bool(intent.issues) or exclusions,
        'exclusions': exclusions,
    }
    checklist = [
        CoachItem(id="actor", label="Actor role", priority="critical", satisfied=satisfied['actor'],
                  detail=_detected(intent.actors, "") if satisfied['actor']
                  else "Add who is acting (State, accused, department, director, etc.)."),
        CoachItem(id="proceeding", label="Proceeding/posture", priority="critical",
                  satisfied=satisfied['proceeding'],
                  detail=_detected(intent.procedures, "") if satisfied['proceeding']
                  else "Add posture (criminal appeal, revision, writ, quashing, trial stage)."),
        CoachItem(id="outcome", label="Outcome polarity", priority="critical", satisfied=satisfied['outcome'],
                  detail=_detected(intent.issues, "negative/positive outcome cues") if satisfied['outcome']
                  else "Specify the exact outcome (refused, dismissed, allowed, quashed, required/not required)."),
        CoachItem(id="hooks", label="Legal hooks (optional but strong)", priority="optional",
                  satisfied=satisfied['hooks'],
                  detail=_detected(intent.statutes, "") if satisfied['hooks']
                  else "Add sections/statutes when known to improve doctrinal precision."),
        CoachItem(id="exclusions", label="Exclusion cues", priority="optional", satisfied=exclusions,
                  detail="Detected exclusion/negation cues." if exclusions
                  else "Optional: add 'not/without/except' style cues to prevent adjacent doctrine drift."),
    ]

    score = max(0.0, min(1.0, sum(w for k, w in WEIGHTS.items() if satisfied[k])))
    grade = "STRONG" if score >= 0.75 else "FAIR" if score >= 0.5 else "WEAK"
    if not satisfied['proceeding']:
        grade = _cap_grade(grade, "FAIR")
    if not satisfied['outcome'] and not satisfied['hooks']:
        grade = _cap_grade(grade, "WEAK")

    readiness = "NOT_READY"
    if satisfied['actor'] and satisfied['proceeding']:
        readiness = "READY_FOR_EXACT" if satisfied['outcome'] or satisfied['hooks'] else "NEEDS_SPECIFICITY"

    actions = [
        (satisfied['proceeding'], "Add proceeding posture first (criminal appeal, revision, writ, quashing)."),
        (satisfied['outcome'], "Add the court outcome you want (dismissed/refused/allowed/not required)."),
        (satisfied['actor'], "Add actor-role direction (for example: State as appellant, accused as respondent)."),
        (satisfied['hooks'],
         "Add statute hooks only if known (for example Section 197 CrPC or Section 13(1)(e) PC Act)."),
        (exclusions, "Add one exclusion cue (not required/without sanction/not condoned) to reduce drift."),
    ]
    return QueryCoachResult(
        score=round(score, 3),
        grade=grade,
        readiness=readiness,
        readiness_message=READINESS_MESSAGES[readiness],
        checklist=checklist,
        next_actions=[text for done, text in actions if not done][:3],
        recommended_pattern=_recommended_pattern(intent, satisfied),
        stricter_rewrite=stricter_rewrite(intent),
    )


def evaluate_query(query: str) -> QueryCoachResult:
    return evaluate_intent(build_intent_profile(query))


__all__ = ['evaluate_query', 'evaluate_intent', 'stricter_rewrite', 'has_exclusion_cue', 'QueryCoachResult', 'CoachItem']
