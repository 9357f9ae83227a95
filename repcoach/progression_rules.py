"""
Deterministic load prescription: rep schemes, progressive overload, plate rounding.
"""

import math

from repcoach.exercise_normalizer import (
    block_exercise,
    coerce_finite_non_negative,
    is_valid_set,
    iter_blocks,
    set_reps,
    set_weight,
)


LB_PER_KG = 2.2046
HIT_TOP_FRACTION = 0.66

REP_SCHEMES = {
    "strength": {
        "setsPrimary": 4,
        "setsAccessory": 3,
        "repsMin": 3,
        "repsMax": 6,
        "restSec": 180,
        "loadBumpPct": 0.025,
    },
    "endurance": {
        "setsPrimary": 3,
        "setsAccessory": 2,
        "repsMin": 12,
        "repsMax": 20,
        "restSec": 75,
        "loadBumpPct": 0.02,
    },
    "hypertrophy": {
        "setsPrimary": 3,
        "setsAccessory": 2,
        "repsMin": 8,
        "repsMax": 12,
        "restSec": 105,
        "loadBumpPct": 0.02,
    },
}

# Starting loads in lb for lifters with no history on an exercise.
BASELINE_WEIGHTS_LB = {
    "barbell": {"Chest": 135, "Back": 0, "Shoulders": 95, "Legs": 185, "Arms": 0, "Abs": 0},
    "dumbbell": {"Chest": 55, "Back": 60, "Shoulders": 40, "Legs": 0, "Arms": 25, "Abs": 0},
    "machine": {"Chest": 80, "Back": 100, "Shoulders": 60, "Legs": 180, "Arms": 50, "Abs": 30},
    "cable": {"Chest": 35, "Back": 0, "Shoulders": 0, "Legs": 0, "Arms": 40, "Abs": 35},
    "bodyweight": {"Chest": 0, "Back": 0, "Shoulders": 0, "Legs": 0, "Arms": 0, "Abs": 0},
}


def _round_half_up(value):
    return math.floor(value + 0.5)


def rep_scheme(goals):
    """Rep scheme for a goal; anything unrecognized trains hypertrophy."""
    return dict(REP_SCHEMES.get(goals, REP_SCHEMES["hypertrophy"]))


def round_to_plate(weight, increment):
    """Round to the nearest loadable increment; never negative."""
    value = coerce_finite_non_negative(weight)
    step = coerce_finite_non_negative(increment)
    if step <= 0:
        return value
    return max(0.0, _round_half_up(value / step) * step)


def base_starting_weight(exercise, units="lb"):
    base = BASELINE_WEIGHTS_LB.get(exercise.equipment, {}).get(exercise.muscle_group, 0)
    if units == "kg":
        return _round_half_up(base / LB_PER_KG)
    return base


def _last_best(last):
    """Accept either ``{"bestSet": {...}}`` or a bare ``{"weight", "reps"}``."""
    if not isinstance(last, dict):
        return None
    best = last.get("bestSet") if isinstance(last.get("bestSet"), dict) else last
    if not is_valid_set(best):
        return None
    return set_weight(best), int(_round_half_up(set_reps(best)))


def next_load_target(exercise, last, scheme, plate_increment, units="lb"):
    """
    Today's sets/reps/weight for one exercise.

    With no usable history the baseline table and the middle of the rep range
    are used. Otherwise reps and load see-saw: if the last best set reached
    two thirds of the rep ceiling the load goes up and reps drop by one;
    if not, the load holds and reps climb by one.

    Returns:
        dict with sets, reps, weight
    """
    sets = scheme["setsPrimary"] if exercise.is_compound else scheme["setsAccessory"]
    rep_min = scheme["repsMin"]
    rep_max = scheme["repsMax"]

    best = _last_best(last)
    if best is None:
        return {
            "sets": sets,
            "reps": int(_round_half_up((rep_min + rep_max) / 2)),
            "weight": base_starting_weight(exercise, units),
        }

    last_weight, last_reps = best
    if last_reps >= rep_max * HIT_TOP_FRACTION:
        weight = round_to_plate(last_weight * (1 + scheme["loadBumpPct"]), plate_increment)
        reps = max(rep_min, last_reps - 1)
    else:
        weight = round_to_plate(last_weight, plate_increment)
        reps = min(rep_max, max(rep_min, last_reps + 1))
    return {"sets": sets, "reps": reps, "weight": weight}


def format_load(value):
    """Format load values while preserving meaningful decimal precision."""
    if value is None:
        return ""

    if abs(value - round(value)) < 1e-9:
        return str(int(round(value)))

    # Keep up to 3 decimals to support cable/machine increments.
    return f"{value:.3f}".rstrip("0").rstrip(".")


def recommend_next_set(session):
    """
    Repeat the last valid set of an in-progress session.

    Returns:
        dict with exercise, weight, reps, note; or None when nothing valid was logged yet
    """
    blocks = iter_blocks(session or {})
    for block in reversed(blocks):
        if not isinstance(block.get("exercise"), dict):
            continue
        sets = block.get("sets") if isinstance(block.get("sets"), list) else []
        for entry in reversed(sets):
            if is_valid_set(entry):
                return {
                    "exercise": block_exercise(block).to_dict(),
                    "weight": set_weight(entry),
                    "reps": set_reps(entry),
                    "note": "Based on your last completed set of this session.",
                }
    return None
