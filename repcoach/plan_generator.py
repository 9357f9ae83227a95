"""
Heuristic workout plan generation from history, vitals and preferences.
"""

import logging
import math
import time
from datetime import datetime, timezone

from repcoach.analytics import infer_units, summarize_history
from repcoach.exercise_normalizer import (
    canonical_muscle_group,
    coerce_finite_non_negative,
    exercise_key,
)
from repcoach.exercise_pool import (
    DEFAULT_EQUIPMENT,
    SeededRandom,
    build_exercise_pool,
    choose_exercises,
    load_catalog,
    pick_groups_for_split,
)
from repcoach.generation_context import recent_avg_volume_by_muscle, volume_check
from repcoach.metrics import today_ms
from repcoach.plan_normalizer import summarize_why
from repcoach.progression_rules import next_load_target, rep_scheme


logger = logging.getLogger(__name__)

DEFAULT_READINESS = 0.8
DEFAULT_TIME_BUDGET_MIN = 45
DEFAULT_PLATE_INCREMENT_LB = 5
DEFAULT_PLATE_INCREMENT_KG = 2.5

BASE_SETS = {"strength": 22, "endurance": 18, "hypertrophy": 24}
PER_SET_SECONDS = {"strength": 180, "endurance": 75, "hypertrophy": 105}
GOAL_LABELS = {"hypertrophy": "Hypertrophy", "strength": "Strength", "endurance": "Endurance"}
SMALL_GROUPS = {"Shoulders", "Arms", "Abs"}


def _clamp(value, low, high):
    return max(low, min(high, value))


def _finite_number(value):
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def blend_readiness(vitals):
    """Mean of the finite readiness/energy/sleepQuality values, clamped to [0, 1]."""
    vitals = vitals or {}
    values = [vitals.get(k) for k in ("readiness", "energy", "sleepQuality")]
    values = [v for v in values if _finite_number(v)]
    if not values:
        return DEFAULT_READINESS
    return _clamp(sum(values) / len(values), 0.0, 1.0)


def scale_by_readiness_and_time(base, readiness, time_budget_min, goals):
    """
    Set budget for the session.

    The goal's base set count scales between 0.7x and 1.15x with readiness,
    then is held between ``min(12, by_time)`` and ``max(8, by_time)``, where
    ``by_time`` is how many sets fit in the time budget.
    """
    per_set = PER_SET_SECONDS.get(goals, PER_SET_SECONDS["hypertrophy"])
    max_by_time = math.floor(coerce_finite_non_negative(time_budget_min) * 60 / per_set)
    scaled = math.floor(base * (0.7 + 0.45 * readiness) + 0.5)
    return int(_clamp(scaled, min(12, max_by_time), max(8, max_by_time)))


def compute_set_budget(goals, vitals=None, time_budget_min=DEFAULT_TIME_BUDGET_MIN):
    readiness = blend_readiness(vitals)
    base = BASE_SETS.get(goals, BASE_SETS["hypertrophy"])
    return scale_by_readiness_and_time(base, readiness, time_budget_min, goals)


def order_priority_groups(groups, signals):
    """Longest gap first; ties go to the group with less 7-day volume."""
    gaps = signals.get("gapDays", {})
    vol7 = signals.get("vol7", {})
    return sorted(groups, key=lambda g: (-gaps.get(g, 999), vol7.get(g, 0.0)))


def importance(block):
    exercise = block["exercise"]
    compound = 2 if exercise["pattern"] and exercise["pattern"] != "isolation" else 0
    small = 0.15 if canonical_muscle_group(exercise["muscleGroup"]) in SMALL_GROUPS else 0
    return compound + small + 1


def _set_count(blocks):
    return sum(len(block["sets"]) for block in blocks)


def trim_to_budget(blocks, set_budget, priority_groups):
    """
    Keep the most important block of each priority group, fill greedily by
    importance, then drop isolations (or the last block) until under budget.
    """
    by_group = {}
    for block in blocks:
        by_group.setdefault(canonical_muscle_group(block["exercise"]["muscleGroup"]), []).append(block)

    kept = []
    for group in priority_groups:
        candidates = sorted(by_group.get(group, []), key=importance, reverse=True)
        if candidates:
            kept.append(candidates.pop(0))
            by_group[group] = candidates

    rest = sorted(
        (block for candidates in by_group.values() for block in candidates),
        key=importance,
        reverse=True,
    )
    used = _set_count(kept)
    for block in rest:
        if used + len(block["sets"]) > set_budget:
            continue
        kept.append(block)
        used += len(block["sets"])

    while used > set_budget and kept:
        drop = next(
            (i for i, b in enumerate(kept) if b["exercise"]["pattern"] == "isolation"),
            len(kept) - 1,
        )
        used -= len(kept[drop]["sets"])
        logger.debug("Over budget, dropping %s", kept[drop]["exercise"]["name"])
        kept.pop(drop)
    return kept


def dedupe_patterns(blocks):
    """Drop repeated compound (pattern, muscle group) pairs; isolation repeats stay."""
    seen = set()
    result = []
    for block in blocks:
        key = (block["exercise"]["pattern"], block["exercise"]["muscleGroup"])
        if key in seen:
            if block["exercise"]["pattern"] == "isolation":
                result.append(block)
            continue
        seen.add(key)
        result.append(block)
    return result


def smart_name(split, goals, groups):
    label = GOAL_LABELS.get(goals, "Training")
    split_label = "Full Body" if split == "full" else str(split or "").capitalize()
    shown = "/".join((groups or [])[:2])
    return f"{split_label} – {label}" + (f" ({shown})" if shown else "")


def _exercise_reason(block, last_perf, units):
    exercise = block["exercise"]
    first = block["sets"][0]
    last = last_perf.get(exercise_key(exercise))
    if last:
        best = last["bestSet"]
        return (
            f"Last best {best['weight']:g}x{best['reps']:g}; "
            f"today {first['weight']:g} {units} x {first['reps']}."
        )
    return f"No recent history; starting at {first['weight']:g} {units} x {first['reps']}."


def build_why(blocks, priority_groups, goals, set_budget, readiness, recent_avg, last_perf, units, hinges_in_7d=0):
    """Structured rationale: overview, per-exercise reasons, volume checks, safety."""
    checks = volume_check(blocks, recent_avg)
    safety = f"{_set_count(blocks)} sets within a budget of {set_budget} at readiness {readiness:.2f}."
    if hinges_in_7d:
        safety += f" {hinges_in_7d} hinge sets logged in the last 7 days."
    return {
        "overview": (
            f"{GOAL_LABELS.get(goals, 'Training')} session prioritizing "
            f"{', '.join(priority_groups[:3]) or 'full body'}."
        ),
        "perExercise": [
            {"exerciseName": block["exercise"]["name"], "reason": _exercise_reason(block, last_perf, units)}
            for block in blocks
        ],
        "volumeCheck": {"byMuscleGroup": checks},
        "safetyAndFeasibility": safety,
    }


def generate_plan(
    history=None,
    goals="hypertrophy",
    split="full",
    time_budget_min=DEFAULT_TIME_BUDGET_MIN,
    equipment=None,
    catalog=None,
    constraints=None,
    vitals=None,
    settings=None,
    seed=None,
    now_ms=None,
):
    """
    Generate the next workout plan.

    Args:
        history: list of workout records
        goals: 'hypertrophy' | 'strength' | 'endurance'
        split: 'full' | 'upper' | 'lower' | 'push' | 'pull' | 'legs'
        time_budget_min: session length in minutes
        equipment: allowed equipment (defaults to DEFAULT_EQUIPMENT)
        catalog: list of Exercise (defaults to the built-in catalog)
        constraints: {"avoidMuscles", "targetMuscles", "injuries"}
        vitals: {"readiness", "energy", "sleepQuality", "sorenessByGroup"}
        settings: {"units", "plateIncrementLb", "plateIncrementKg", "maxHeavyHingesPer7d"}
        seed: PRNG seed; equal seeds with equal inputs give equal blocks
        now_ms: reference time in ms (defaults to now)

    Returns:
        Plan dict with id, name, createdAt, units, blocks and meta
    """
    history = history or []
    settings = settings or {}
    vitals = vitals or {}
    now = now_ms if now_ms is not None else today_ms()
    if seed is None:
        seed = int(time.time() * 1000)
    rng = SeededRandom(seed)

    units = settings.get("units") or infer_units(history) or "lb"
    plate_lb = _clamp(coerce_finite_non_negative(settings.get("plateIncrementLb"), DEFAULT_PLATE_INCREMENT_LB), 1, 10)
    plate_kg = _clamp(coerce_finite_non_negative(settings.get("plateIncrementKg"), DEFAULT_PLATE_INCREMENT_KG), 0.5, 5)
    max_hinges = settings.get("maxHeavyHingesPer7d")
    max_hinges = 1 if max_hinges is None else coerce_finite_non_negative(max_hinges)

    signals = summarize_history(history, now)
    hinges_in_7d = signals["pattern7d"].get("hinge", 0)
    priority_groups = order_priority_groups(pick_groups_for_split(split), signals)

    readiness = blend_readiness(vitals)
    set_budget = compute_set_budget(goals, vitals, time_budget_min)

    pool = build_exercise_pool(
        catalog if catalog is not None else load_catalog(),
        equipment if equipment is not None else DEFAULT_EQUIPMENT,
        constraints,
        vitals,
    )
    picks = choose_exercises(pool, priority_groups, rng, hinges_in_7d, max_hinges)
    logger.debug("Picked %s", [exercise.name for exercise in picks])

    scheme = rep_scheme(goals)
    plate_increment = plate_kg if units == "kg" else plate_lb
    blocks = []
    for exercise in picks:
        target = next_load_target(exercise, signals["lastPerf"].get(exercise.key), scheme, plate_increment, units)
        sets = [
            {"id": rng.uid(), "weight": target["weight"], "reps": target["reps"]}
            for _ in range(target["sets"])
        ]
        blocks.append({"id": rng.uid(), "exercise": exercise.to_dict(), "sets": sets})

    blocks = dedupe_patterns(trim_to_budget(blocks, set_budget, priority_groups))

    recent_avg = recent_avg_volume_by_muscle(history, now)
    why = build_why(
        blocks,
        priority_groups,
        goals,
        set_budget,
        readiness,
        recent_avg,
        signals["lastPerf"],
        units,
        hinges_in_7d,
    )
    created_at = datetime.fromtimestamp(now / 1000.0, tz=timezone.utc).isoformat()

    logger.info("Generated %d blocks, %d sets (budget %d)", len(blocks), _set_count(blocks), set_budget)
    return {
        "id": rng.uid(),
        "name": smart_name(split, goals, priority_groups),
        "createdAt": created_at,
        "units": units,
        "blocks": blocks,
        "meta": {
            "createdAt": created_at,
            "setBudget": set_budget,
            "readiness": readiness,
            "seed": seed,
            "justification": summarize_why(why),
            "whyRaw": why,
        },
    }
