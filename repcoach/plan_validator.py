"""
Validation utilities for generated workout plans.
"""

from repcoach.exercise_normalizer import (
    canonical_equipment,
    canonical_muscle_group,
    coerce_finite_non_negative,
)
from repcoach.exercise_pool import INJURY_EXCLUSIONS, normalize_injury


def _add_violation(violations, code, message, exercise=None):
    violations.append(
        {
            "code": code,
            "message": message,
            "exercise": exercise or "",
        }
    )


def _blocks(plan):
    if not isinstance(plan, dict) or not isinstance(plan.get("blocks"), list):
        return []
    return [b for b in plan["blocks"] if isinstance(b, dict)]


def validate_plan(plan, constraints=None, set_budget=None, equipment=None):
    """
    Check a canonical plan against hard rules. Advisory only; never raises.

    Args:
        plan: plan dict (ideally already through normalize_plan)
        constraints: {"avoidMuscles", "injuries"}
        set_budget: maximum total sets, or None to skip the check
        equipment: allowed equipment tokens, or None to skip the check

    Returns:
        dict with keys: violations, summary
    """
    constraints = constraints or {}
    blocks = _blocks(plan)
    violations = []

    avoid = {canonical_muscle_group(m) for m in constraints.get("avoidMuscles") or []}
    excluded_patterns = set()
    for injury in constraints.get("injuries") or []:
        excluded_patterns |= INJURY_EXCLUSIONS.get(normalize_injury(injury), set())
    allowed = {canonical_equipment(e) for e in equipment} if equipment is not None else None

    seen_compounds = set()
    total_sets = 0
    for block in blocks:
        exercise = block.get("exercise") if isinstance(block.get("exercise"), dict) else {}
        name = str(exercise.get("name") or "")
        pattern = str(exercise.get("pattern") or "")
        group = canonical_muscle_group(exercise.get("muscleGroup"))
        sets = block.get("sets") if isinstance(block.get("sets"), list) else []
        total_sets += len(sets)

        if not sets:
            _add_violation(violations, "empty_block", f"{name or 'Block'} has no sets.", exercise=name)

        if pattern and pattern not in ("isolation", "general"):
            key = (pattern, group)
            if key in seen_compounds:
                _add_violation(
                    violations,
                    "duplicate_compound_pattern",
                    f"{name} repeats the {pattern} pattern for {group}.",
                    exercise=name,
                )
            seen_compounds.add(key)

        if pattern in excluded_patterns:
            _add_violation(
                violations,
                "injury_pattern",
                f"{name} uses the {pattern} pattern, excluded by a stated injury.",
                exercise=name,
            )

        if group in avoid:
            _add_violation(
                violations,
                "avoided_muscle",
                f"{name} trains {group}, which should be avoided.",
                exercise=name,
            )

        if allowed is not None and exercise.get("equipment"):
            if canonical_equipment(exercise["equipment"]) not in allowed:
                _add_violation(
                    violations,
                    "equipment_unavailable",
                    f"{name} needs {exercise['equipment']}, which is not available.",
                    exercise=name,
                )

    if set_budget is not None and total_sets > coerce_finite_non_negative(set_budget):
        _add_violation(
            violations,
            "set_budget_exceeded",
            f"Plan has {total_sets} sets, over the budget of {set_budget}.",
        )

    summary = (
        f"Validation: {len(blocks)} blocks checked, {len(violations)} violation(s)."
        if blocks
        else "Validation: no blocks found in plan."
    )

    return {
        "violations": violations,
        "summary": summary,
    }
