"""
Coerce externally sourced plans into the canonical plan shape.

``normalize_plan`` is total: any JSON-parseable input yields a structurally
valid plan with at least one set per block and units of "lb" or "kg".
"""

import uuid
from datetime import datetime, timezone

from repcoach.exercise_normalizer import (
    canonical_equipment,
    canonical_muscle_group,
    canonical_pattern,
    coerce_finite_non_negative,
    is_finite_number,
)


DEFAULT_PLAN_NAME = "Rep.AI Plan"
DEFAULT_JUSTIFICATION = "Plan tailored to history, vitals, and preferences."


def new_id():
    return uuid.uuid4().hex[:16]


def _as_dict(value):
    return value if isinstance(value, dict) else {}


def _as_list(value):
    return value if isinstance(value, list) else []


def _text(value):
    if value is None:
        return ""
    try:
        return str(value).strip()
    except ValueError:
        # ints past the interpreter's digit limit
        return ""


def _number_text(value):
    if is_finite_number(value):
        return f"{value:g}"
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return ""
    return _text(value)


def summarize_why(why):
    """
    Flatten a structured rationale into plain text.

    Sections: overview, per-exercise reasons, per-group volume checks, safety
    note. A plain string passes through unchanged.
    """
    if not why:
        return ""
    if isinstance(why, str):
        return why
    if not isinstance(why, dict):
        return ""

    parts = []
    overview = _text(why.get("overview"))
    if overview:
        parts.append(overview)

    per_exercise = [_as_dict(p) for p in _as_list(why.get("perExercise"))]
    if per_exercise:
        parts.append("Per exercise:")
        for item in per_exercise:
            name = _text(item.get("exerciseName"))
            prefix = f"{name}: " if name else ""
            parts.append(f"• {prefix}{_text(item.get('reason'))}".strip())

    checks = [_as_dict(v) for v in _as_list(_as_dict(why.get("volumeCheck")).get("byMuscleGroup"))]
    if checks:
        parts.append("Volume checks:")
        for check in checks:
            delta = check.get("deltaPct")
            if is_finite_number(delta):
                delta_text = f"{delta:.1f}%"
            else:
                delta_text = ""
            verdict = "OK" if check.get("ok") else "Adjust"
            parts.append(
                f"• {_text(check.get('group'))}: today {_number_text(check.get('todayVolume'))} "
                f"vs recent {_number_text(check.get('recentAvg'))} ({delta_text}) → {verdict}"
            )

    safety = _text(why.get("safetyAndFeasibility"))
    if safety:
        parts.append(f"Safety: {safety}")
    return "\n".join(parts)


def _normalize_exercise(raw):
    raw = _as_dict(raw)
    return {
        "id": _text(raw.get("id")) or new_id(),
        "name": _text(raw.get("name")) or "Unknown Exercise",
        "muscleGroup": canonical_muscle_group(raw["muscleGroup"]) if _text(raw.get("muscleGroup")) else "unknown",
        "equipment": canonical_equipment(raw["equipment"]) if _text(raw.get("equipment")) else "bodyweight",
        "pattern": canonical_pattern(raw["pattern"]) if _text(raw.get("pattern")) else "general",
    }


def _normalize_sets(raw_sets):
    sets = []
    for entry in _as_list(raw_sets):
        entry = _as_dict(entry)
        sets.append(
            {
                "id": new_id(),
                "weight": coerce_finite_non_negative(entry.get("weight"), 0.0),
                "reps": coerce_finite_non_negative(entry.get("reps"), 0.0),
            }
        )
    # Keep every block renderable: an emptied block gets one zero set.
    if not sets:
        sets.append({"id": new_id(), "weight": 0.0, "reps": 0.0})
    return sets


def normalize_plan(input_plan, created_at=None):
    """
    Canonical plan from an arbitrary plan-shaped object.

    Args:
        input_plan: parsed JSON from any planner (may be None or malformed)
        created_at: ISO timestamp to stamp on the plan (defaults to now, UTC)

    Returns:
        dict with id, name, units, createdAt, blocks, meta
    """
    plan = _as_dict(input_plan)
    created = created_at or datetime.now(timezone.utc).isoformat()
    why = plan.get("why") or None

    blocks = []
    for raw_block in _as_list(plan.get("blocks")):
        raw_block = _as_dict(raw_block)
        block = {
            "id": new_id(),
            "exercise": _normalize_exercise(raw_block.get("exercise")),
            "sets": _normalize_sets(raw_block.get("sets")),
        }
        notes = _text(raw_block.get("notes"))
        if notes:
            block["notes"] = notes
        blocks.append(block)

    return {
        "id": new_id(),
        "name": _text(plan.get("name")) or DEFAULT_PLAN_NAME,
        "units": "kg" if plan.get("units") == "kg" else "lb",
        "createdAt": created,
        "blocks": blocks,
        "meta": {
            "createdAt": created,
            "justification": summarize_why(why) or DEFAULT_JUSTIFICATION,
            "whyRaw": why,
        },
    }
