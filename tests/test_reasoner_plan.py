import pytest

from precedent_finder.errors import PlanValidationError
from precedent_finder.pipeline.reasoner_plan import require_usable_plan, sanitize_variant, validate_reasoner_plan


def test_non_object_payload():
    plan, warnings = validate_reasoner_plan("not a plan")
    assert not plan.usable
    assert warnings == ["reasoner payload is not an object"]


def test_variants_are_sanitized_and_capped():
    raw = {
        "query_variants_strict": [
            "Sanction under Section 197 CrPC not required doctypes:supremecourt",
            "x",
            " ".join(f"w{i}" for i in range(20)),
        ],
    }
    plan, warnings = validate_reasoner_plan(raw)
    assert plan.query_variants_strict[0] == "sanction under section 197 crpc not required"
    assert len(plan.query_variants_strict) == 2
    assert len(plan.query_variants_strict[1].split()) == 12
    assert plan.usable
    assert warnings == []


def test_sanitize_variant_rejects_single_token():
    assert sanitize_variant("sanction") is None


def test_proposition_fields_normalized():
    raw = {
        "proposition": {
            "actor": "State",
            "posture": ["Criminal Appeal", "criminal appeal"],
            "jurisdiction_hint": "sc",
            "hook_groups": [{"group_id": "S 197!", "terms": ["section 197", "197", "crpc"], "min_match": 9}],
            "relations": [{"type": "requires", "left_group_id": "s_197", "right_group_id": "missing"}],
            "outcome_constraint": {"polarity": "not required", "terms": ["sanction not required"]},
        },
        "query_variants_strict": ["sanction not required section 197"],
    }
    plan, warnings = validate_reasoner_plan(raw)
    prop = plan.proposition
    assert prop.actors == ["state"]
    assert prop.proceeding == ["criminal appeal"]
    assert prop.jurisdiction_hint == "SC"
    assert prop.hook_groups[0].group_id == "s_197"
    assert prop.hook_groups[0].terms == ["section 197", "crpc"]
    assert prop.hook_groups[0].min_match == 2
    assert prop.relations == []
    assert "relation dropped: unknown type or group" in warnings
    assert prop.outcome_constraint.polarity == "not_required"


def test_unknown_enums_fall_back():
    plan, _ = validate_reasoner_plan({"proposition": {"jurisdiction_hint": "tribunal",
                                                      "outcome_constraint": {"polarity": "maybe"}}})
    assert plan.proposition.jurisdiction_hint == "ANY"
    assert plan.proposition.outcome_constraint.polarity == "unknown"


def test_require_usable_plan_raises():
    with pytest.raises(PlanValidationError):
        require_usable_plan({})
