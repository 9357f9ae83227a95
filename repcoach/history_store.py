"""
Read-only access to the workout history JSON file.
"""

import json
import logging
import os

from repcoach.exercise_normalizer import iter_blocks


logger = logging.getLogger(__name__)


def load_workouts(path):
    """
    Load all workout records from a JSON array file.

    Returns [] when the file is missing. Text that is not UTF-8, malformed
    JSON, or a top-level value that is not a list is logged and also yields [].

    """
    if not path or not os.path.exists(path):
        logger.debug("No history file at %s", path)
        return []

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = f.read()
    except UnicodeDecodeError as exc:
        logger.warning("Ignoring history file %s that is not valid UTF-8: %s", path, exc)
        return []
    if not raw.strip():
        return []

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning("Ignoring unparseable history file %s: %s", path, exc)
        return []

    if not isinstance(data, list):
        logger.warning("History file %s does not hold a list of workouts", path)
        return []
    return [w for w in data if isinstance(w, dict)]


def get_workout_by_id(workouts, workout_id):
    for workout in workouts:
        if workout.get("id") == workout_id:
            return workout
    return None


def find_exercise(workouts, name_or_id):
    """
    First exercise in history whose id or name matches, as its raw dict.

    Names match case-insensitively. Returns None when nothing matches.
    """
    wanted = str(name_or_id or "").strip()
    if not wanted:
        return None
    for workout in workouts:
        for block in iter_blocks(workout):
            exercise = block.get("exercise")
            if not isinstance(exercise, dict):
                continue
            if str(exercise.get("id") or "") == wanted:
                return exercise
            if str(exercise.get("name") or "").strip().lower() == wanted.lower():
                return exercise
    return None
