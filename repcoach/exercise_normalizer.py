"""
Canonical exercise descriptors and value coercion.

Single source of truth for exercise identity across the engine. Every
ingestion boundary (history records, the catalog, externally sourced plans)
goes through these helpers instead of ad-hoc string matching.
"""

import math
import re
from dataclasses import dataclass


MUSCLE_GROUPS = ["Chest", "Back", "Shoulders", "Arms", "Legs", "Abs"]

EQUIPMENT_TYPES = ["barbell", "dumbbell", "machine", "cable", "bodyweight", "kettlebell", "band"]

PATTERNS = [
    "squat",
    "hinge",
    "horizontal_press",
    "vertical_press",
    "horizontal_pull",
    "vertical_pull",
    "isolation",
    "lunge",
    "general",
]

# ---------------------------------------------------------------------------
# Alias tables (lowercased input -> canonical form)
# ---------------------------------------------------------------------------
MUSCLE_ALIASES = {
    "chest": "Chest",
    "pecs": "Chest",
    "back": "Back",
    "lats": "Back",
    "upper back": "Back",
    "shoulders": "Shoulders",
    "shoulder": "Shoulders",
    "delts": "Shoulders",
    "arms": "Arms",
    "biceps": "Arms",
    "triceps": "Arms",
    "forearms": "Arms",
    "legs": "Legs",
    "quads": "Legs",
    "hamstrings": "Legs",
    "glutes": "Legs",
    "calves": "Legs",
    "abs": "Abs",
    "core": "Abs",
    "obliques": "Abs",
}

EQUIPMENT_ALIASES = {
    "barbell": "barbell",
    "bb": "barbell",
    "ez-bar": "barbell",
    "dumbbell": "dumbbell",
    "dumbbells": "dumbbell",
    "db": "dumbbell",
    "machine": "machine",
    "smith machine": "machine",
    "cable": "cable",
    "cables": "cable",
    "bodyweight": "bodyweight",
    "body weight": "bodyweight",
    "none": "bodyweight",
    "kettlebell": "kettlebell",
    "kettlebells": "kettlebell",
    "kb": "kettlebell",
    "band": "band",
    "bands": "band",
    "resistance band": "band",
}

PATTERN_ALIASES = {
    "horizontal_press": "horizontal_press",
    "push_horizontal": "horizontal_press",
    "bench_press": "horizontal_press",
    "vertical_press": "vertical_press",
    "push_vertical": "vertical_press",
    "overhead_press": "vertical_press",
    "horizontal_pull": "horizontal_pull",
    "pull_horizontal": "horizontal_pull",
    "row": "horizontal_pull",
    "vertical_pull": "vertical_pull",
    "pull_vertical": "vertical_pull",
    "pulldown": "vertical_pull",
    "pullup": "vertical_pull",
    "squat": "squat",
    "hinge": "hinge",
    "deadlift": "hinge",
    "lunge": "lunge",
    "isolation": "isolation",
    "general": "general",
}

# Name tokens checked in order; first hit wins.
PATTERN_NAME_RULES = [
    (re.compile(r"deadlift|\brdl\b|hinge|good morning", re.IGNORECASE), "hinge"),
    (re.compile(r"squat|lunge|leg press", re.IGNORECASE), "squat"),
    (re.compile(r"\brows?\b", re.IGNORECASE), "horizontal_pull"),
    (re.compile(r"pulldown|pull-?ups?|chin-?ups?", re.IGNORECASE), "vertical_pull"),
]
PRESS_RE = re.compile(r"bench|press", re.IGNORECASE)
OVERHEAD_RE = re.compile(r"overhead|shoulder|military", re.IGNORECASE)


def _clean(value):
    return re.sub(r"\s+", " ", str(value or "").strip().lower())


def canonical_muscle_group(value):
    """Map a free-form muscle label onto one of MUSCLE_GROUPS.

    Unknown labels are title-cased and passed through; empty input becomes
    "Other".
    """
    key = _clean(value)
    if not key:
        return "Other"
    if key in MUSCLE_ALIASES:
        return MUSCLE_ALIASES[key]
    if key.endswith("s") and key[:-1] in MUSCLE_ALIASES:
        return MUSCLE_ALIASES[key[:-1]]
    return key[:1].upper() + key[1:]


def canonical_equipment(value):
    key = _clean(value)
    if not key:
        return "bodyweight"
    return EQUIPMENT_ALIASES.get(key, key)


def canonical_pattern(value):
    key = _clean(value).replace(" ", "_").replace("-", "_")
    if not key:
        return ""
    return PATTERN_ALIASES.get(key, key)


def infer_pattern(name):
    """Guess a movement pattern from an exercise name; defaults to isolation."""
    text = name or ""
    for pattern, label in PATTERN_NAME_RULES:
        if pattern.search(text):
            return label
    if PRESS_RE.search(text):
        if OVERHEAD_RE.search(text):
            return "vertical_press"
        return "horizontal_press"
    return "isolation"


def is_finite_number(value):
    """True for a real int or float that converts to a finite float."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def coerce_finite_non_negative(value, fallback=0.0):
    """
    Read a numeric field without ever raising.

    Strings are parsed, booleans and non-finite values fall back, and
    negatives clamp to zero.
    """
    if isinstance(value, bool) or value is None:
        return fallback
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return fallback
    if not math.isfinite(number):
        return fallback
    return max(0.0, number)


def set_weight(entry):
    return coerce_finite_non_negative((entry or {}).get("weight"))


def set_reps(entry):
    return coerce_finite_non_negative((entry or {}).get("reps"))


def is_valid_set(entry):
    """A set counts toward volume and metrics iff weight > 0 and reps > 0."""
    if not isinstance(entry, dict):
        return False
    return set_weight(entry) > 0 and set_reps(entry) > 0


def set_volume(entry):
    if not is_valid_set(entry):
        return 0.0
    return set_weight(entry) * set_reps(entry)


def valid_sets(block):
    sets = (block or {}).get("sets") if isinstance(block, dict) else None
    if not isinstance(sets, list):
        return []
    return [entry for entry in sets if is_valid_set(entry)]


def block_volume(block):
    return sum(set_volume(entry) for entry in valid_sets(block))


def exercise_key(exercise):
    """
    Identity key for grouping and deduplication: ``id or name``.

    Accepts an Exercise, a raw dict, or an already-computed key string. When
    both id and name are missing the key is the empty string, so such
    exercises group together rather than failing.
    """
    if exercise is None:
        return ""
    if isinstance(exercise, str):
        return exercise.strip()
    if isinstance(exercise, Exercise):
        return exercise.id or exercise.name or ""
    if isinstance(exercise, dict):
        return str(exercise.get("id") or exercise.get("name") or "")
    return ""


@dataclass(frozen=True)
class Exercise:
    """Canonical exercise descriptor. Build with ``Exercise.from_dict``."""

    id: str
    name: str
    muscle_group: str
    equipment: str
    pattern: str
    icon: str = ""

    @classmethod
    def from_dict(cls, raw):
        raw = raw if isinstance(raw, dict) else {}
        name = str(raw.get("name") or raw.get("title") or "").strip()
        pattern = canonical_pattern(raw.get("pattern")) or infer_pattern(name)
        return cls(
            id=str(raw.get("id") or "").strip(),
            name=name,
            muscle_group=canonical_muscle_group(raw.get("muscleGroup") or raw.get("muscle_group")),
            equipment=canonical_equipment(raw.get("equipment")),
            pattern=pattern,
            icon=str(raw.get("icon") or ""),
        )

    @property
    def key(self):
        return exercise_key(self)

    @property
    def is_compound(self):
        return self.pattern != "isolation"

    def to_dict(self):
        return {
            "id": self.id or self.name,
            "name": self.name,
            "muscleGroup": self.muscle_group,
            "equipment": self.equipment,
            "pattern": self.pattern,
        }


def block_exercise(block):
    """Canonical Exercise for a history block (tolerates missing fields)."""
    raw = block.get("exercise") if isinstance(block, dict) else None
    return Exercise.from_dict(raw)


def iter_blocks(workout):
    blocks = workout.get("blocks") if isinstance(workout, dict) else None
    if not isinstance(blocks, list):
        return []
    return [block for block in blocks if isinstance(block, dict)]
