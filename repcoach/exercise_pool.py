"""
Exercise catalog, candidate pool construction, and seeded weighted selection.
"""

import logging
import os
from dataclasses import dataclass

import yaml

from repcoach.exercise_normalizer import (
    Exercise,
    canonical_equipment,
    canonical_muscle_group,
    coerce_finite_non_negative,
)


logger = logging.getLogger(__name__)

SORENESS_WEIGHT = 0.4
TARGET_BONUS = 0.25
OFF_TARGET_PENALTY = -0.1
MIN_PICK_WEIGHT = 0.01
MAX_EXERCISES = 6

BASELINE_PATTERNS = [
    "horizontal_press",
    "vertical_press",
    "horizontal_pull",
    "vertical_pull",
    "squat",
    "hinge",
]

# Injury tag -> movement patterns it rules out.
INJURY_EXCLUSIONS = {
    "lower_back": {"hinge"},
}

DEFAULT_EQUIPMENT = ["barbell", "dumbbell", "machine", "cable", "bodyweight"]

DEFAULT_CATALOG = [
    {"id": "ex_bb_back_squat", "name": "Barbell Back Squat", "muscleGroup": "Legs", "equipment": "barbell", "pattern": "squat"},
    {"id": "ex_bb_deadlift", "name": "Barbell Deadlift", "muscleGroup": "Back", "equipment": "barbell", "pattern": "hinge"},
    {"id": "ex_bb_bench", "name": "Barbell Bench Press", "muscleGroup": "Chest", "equipment": "barbell", "pattern": "horizontal_press"},
    {"id": "ex_bb_ohp", "name": "Barbell Overhead Press", "muscleGroup": "Shoulders", "equipment": "barbell", "pattern": "vertical_press"},
    {"id": "ex_db_press", "name": "Dumbbell Bench Press", "muscleGroup": "Chest", "equipment": "dumbbell", "pattern": "horizontal_press"},
    {"id": "ex_db_sh_press", "name": "Dumbbell Shoulder Press", "muscleGroup": "Shoulders", "equipment": "dumbbell", "pattern": "vertical_press"},
    {"id": "ex_lat_pulldown", "name": "Lat Pulldown", "muscleGroup": "Back", "equipment": "machine", "pattern": "vertical_pull"},
    {"id": "ex_seated_row", "name": "Seated Row", "muscleGroup": "Back", "equipment": "machine", "pattern": "horizontal_pull"},
    {"id": "ex_cable_fly", "name": "Cable Fly", "muscleGroup": "Chest", "equipment": "cable", "pattern": "isolation"},
    {"id": "ex_lat_raise", "name": "Lateral Raise", "muscleGroup": "Shoulders", "equipment": "dumbbell", "pattern": "isolation"},
    {"id": "ex_triceps_pd", "name": "Triceps Pressdown", "muscleGroup": "Arms", "equipment": "cable", "pattern": "isolation"},
    {"id": "ex_db_curl", "name": "Dumbbell Curl", "muscleGroup": "Arms", "equipment": "dumbbell", "pattern": "isolation"},
    {"id": "ex_ham_curl", "name": "Hamstring Curl", "muscleGroup": "Legs", "equipment": "machine", "pattern": "isolation"},
    {"id": "ex_leg_ext", "name": "Leg Extension", "muscleGroup": "Legs", "equipment": "machine", "pattern": "isolation"},
    {"id": "ex_calf_raise", "name": "Standing Calf Raise", "muscleGroup": "Legs", "equipment": "machine", "pattern": "isolation"},
    {"id": "ex_cable_crunch", "name": "Kneeling Cable Crunch", "muscleGroup": "Abs", "equipment": "cable", "pattern": "isolation"},
    {"id": "ex_kb_swing", "name": "Kettlebell Swing", "muscleGroup": "Legs", "equipment": "kettlebell", "pattern": "hinge"},
    {"id": "ex_pull_up", "name": "Pull-Up", "muscleGroup": "Back", "equipment": "bodyweight", "pattern": "vertical_pull"},
]


class SeededRandom:
    """
    Small reproducible PRNG (mulberry32).

    Passed explicitly through the selection chain so equal seeds give equal
    plans. Only ``random()`` and ``uid()`` are needed by the planner.
    """

    def __init__(self, seed):
        self._state = int(coerce_finite_non_negative(seed)) & 0xFFFFFFFF

    def random(self):
        self._state = (self._state + 0x6D2B79F5) & 0xFFFFFFFF
        t = self._state
        t = _imul(t ^ (t >> 15), t | 1)
        t ^= (t + _imul(t ^ (t >> 7), t | 61)) & 0xFFFFFFFF
        return ((t ^ (t >> 14)) & 0xFFFFFFFF) / 4294967296.0

    def uid(self):
        def part():
            return format(int(self.random() * 0xFFFFFFFF), "08x")

        return f"{part()}-{part()}"


def _imul(a, b):
    return (a * b) & 0xFFFFFFFF


@dataclass(frozen=True)
class Candidate:
    exercise: Exercise
    score: float


def load_catalog(catalog_file=None):
    """
    Load the exercise catalog as canonical Exercise values.

    Falls back to DEFAULT_CATALOG when no file is given or it does not exist.
    Entries without a name are skipped.
    """
    raw_entries = DEFAULT_CATALOG
    if catalog_file and os.path.exists(catalog_file):
        with open(catalog_file, "r") as f:
            config = yaml.safe_load(f) or {}
        raw_entries = config.get("exercises") or []
        logger.debug("Loaded %d catalog entries from %s", len(raw_entries), catalog_file)

    catalog = []
    for raw in raw_entries:
        exercise = Exercise.from_dict(raw)
        if not exercise.name:
            logger.warning("Skipping catalog entry without a name: %r", raw)
            continue
        catalog.append(exercise)
    return catalog


def normalize_injury(value):
    return str(value or "").strip().lower().replace(" ", "_").replace("-", "_")


def build_exercise_pool(catalog, equipment=None, constraints=None, vitals=None):
    """
    Filter the catalog and score each survivor.

    Args:
        catalog: iterable of Exercise
        equipment: allowed equipment tokens (defaults to DEFAULT_EQUIPMENT)
        constraints: {"avoidMuscles", "targetMuscles", "injuries"}
        vitals: {"sorenessByGroup": {group: 0..1}}

    Returns:
        List[Candidate] with score ``1 - 0.4 * soreness + target bonus``
    """
    constraints = constraints or {}
    vitals = vitals or {}
    allowed = {canonical_equipment(e) for e in (equipment if equipment is not None else DEFAULT_EQUIPMENT)}
    avoid = {canonical_muscle_group(m) for m in constraints.get("avoidMuscles") or []}
    target = {canonical_muscle_group(m) for m in constraints.get("targetMuscles") or []}

    excluded_patterns = set()
    for injury in constraints.get("injuries") or []:
        excluded_patterns |= INJURY_EXCLUSIONS.get(normalize_injury(injury), set())

    soreness = {}
    for group, value in (vitals.get("sorenessByGroup") or {}).items():
        soreness[canonical_muscle_group(group)] = min(1.0, coerce_finite_non_negative(value))

    pool = []
    for exercise in catalog or []:
        if exercise.equipment not in allowed:
            continue
        if exercise.muscle_group in avoid:
            continue
        if exercise.pattern in excluded_patterns:
            continue

        if target:
            bonus = TARGET_BONUS if exercise.muscle_group in target else OFF_TARGET_PENALTY
        else:
            bonus = 0.0
        score = 1 - SORENESS_WEIGHT * soreness.get(exercise.muscle_group, 0.0) + bonus
        pool.append(Candidate(exercise=exercise, score=score))
    return pool


def weighted_pick(candidates, rng):
    """Cumulative-weight pick using scores directly (floored at 0.01)."""
    if not candidates:
        return None
    weights = [max(MIN_PICK_WEIGHT, candidate.score) for candidate in candidates]
    remaining = rng.random() * sum(weights)
    for candidate, weight in zip(candidates, weights):
        remaining -= weight
        if remaining <= 0:
            return candidate
    return candidates[-1]


def choose_exercises(pool, priority_groups, rng, hinges_in_7d=0, max_heavy_hinges_7d=1):
    """
    Pick a balanced set of compounds and accessories.

    One compound per priority group, then any missing baseline pattern, then
    one accessory per priority group. Hinges are skipped once the 7-day
    hinge cap is reached. The result is cut to the first six picks.

    Returns:
        List[Exercise]
    """
    allow_hinge = hinges_in_7d < max_heavy_hinges_7d
    compounds = [c for c in pool if c.exercise.is_compound]
    accessories = [c for c in pool if not c.exercise.is_compound]

    compounds_by_group = {}
    for candidate in compounds:
        compounds_by_group.setdefault(candidate.exercise.muscle_group, []).append(candidate)
    accessories_by_group = {}
    for candidate in accessories:
        accessories_by_group.setdefault(candidate.exercise.muscle_group, []).append(candidate)

    picks = []
    chosen = set()

    def take(candidate):
        picks.append(candidate.exercise)
        chosen.add(candidate.exercise.key)

    for group in priority_groups:
        options = [
            c for c in compounds_by_group.get(group, [])
            if allow_hinge or c.exercise.pattern != "hinge"
        ]
        if not options:
            continue
        candidate = weighted_pick(options, rng)
        if candidate.exercise.key not in chosen:
            take(candidate)

    for pattern in BASELINE_PATTERNS:
        if pattern == "hinge" and not allow_hinge:
            continue
        if any(exercise.pattern == pattern for exercise in picks):
            continue
        options = [
            c for c in compounds
            if c.exercise.pattern == pattern and c.exercise.key not in chosen
        ]
        if options:
            take(weighted_pick(options, rng))

    for group in priority_groups:
        options = [c for c in accessories_by_group.get(group, []) if c.exercise.key not in chosen]
        if options:
            take(weighted_pick(options, rng))

    if len(picks) > MAX_EXERCISES:
        logger.debug("Dropping %d trailing picks over the cap", len(picks) - MAX_EXERCISES)
    return picks[:MAX_EXERCISES]


SPLIT_GROUPS = {
    "upper": ["Chest", "Back", "Shoulders", "Arms"],
    "lower": ["Legs", "Abs"],
    "push": ["Chest", "Shoulders", "Arms"],
    "pull": ["Back", "Arms"],
    "legs": ["Legs", "Abs"],
    "full": ["Chest", "Back", "Shoulders", "Arms", "Legs", "Abs"],
}


def pick_groups_for_split(split):
    """Priority muscle groups for a split; unknown splits train full body."""
    key = str(split or "full").strip().lower()
    return list(SPLIT_GROUPS.get(key, SPLIT_GROUPS["full"]))
