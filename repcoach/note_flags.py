"""
Keyword scan over free-form session, block and set notes.

Produces advisory coaching tips only; nothing here changes plan selection.
"""

import re

from repcoach.exercise_normalizer import (
    block_exercise,
    canonical_muscle_group,
    exercise_key,
    iter_blocks,
)


# (category, pattern, hits needed, tip). Order is the order tips are emitted.
NOTE_FLAG_RULES = [
    (
        "fail",
        re.compile(r"\bfail(?:ed|ing)?\b|\bmiss(?:ed)?\b", re.IGNORECASE),
        3,
        "Frequent failure notes detected. Consider leaving 1-2 reps in reserve to sustain progress.",
    ),
    (
        "rep4or5",
        re.compile(r"\breps?\s*(?:4|5)\b|\b4(?:th)?\b|\b5(?:th)?\b", re.IGNORECASE),
        2,
        "You often mention sticking around reps 4-5. Add triceps emphasis (e.g., close-grip bench) next block.",
    ),
    (
        "elbow",
        re.compile(r"\belbows?\b", re.IGNORECASE),
        2,
        "Elbow discomfort noted. Consider neutral-grip accessories and monitor volume.",
    ),
    (
        "shoulder",
        re.compile(r"\bshoulders?\b", re.IGNORECASE),
        2,
        "Shoulder discomfort noted. Prioritize scapula control and avoid deep stretch under load temporarily.",
    ),
    (
        "back",
        re.compile(r"\bback\b", re.IGNORECASE),
        2,
        "Back fatigue/pain noted. Check bracing and consider reducing axial load this week.",
    ),
    (
        "knee",
        re.compile(r"\bknees?\b", re.IGNORECASE),
        2,
        "Knee discomfort noted. Use slower eccentrics, ensure warm-up, and watch quad-dominant volume.",
    ),
    (
        "form",
        re.compile(r"\bform|technique|cue\b", re.IGNORECASE),
        2,
        "Form cues appear often. Consider adding light technique sets or filming top sets for review.",
    ),
]


def _note_text(item):
    if not isinstance(item, dict):
        return ""
    text = item.get("note")
    if text is None:
        text = item.get("notes")
    return text if isinstance(text, str) else ""


def _scan(text, hits):
    if not text:
        return
    for category, pattern, _threshold, _tip in NOTE_FLAG_RULES:
        if pattern.search(text):
            hits[category] += 1


def scan_notes(workouts, group=None, exercise=None):
    """
    Count keyword hits in notes and turn them into tips.

    Workout-level notes are always scanned; block and set notes only for
    blocks matching ``group`` (muscle group) and ``exercise`` (id-or-name)
    when those filters are given.

    Returns:
        dict with ``hits`` (category -> count) and ``tips`` (ordered list)
    """
    hits = {category: 0 for category, _p, _t, _m in NOTE_FLAG_RULES}
    target_group = canonical_muscle_group(group) if group else None
    target_key = exercise_key(exercise) if exercise is not None else None

    for workout in workouts or []:
        if not isinstance(workout, dict):
            continue
        _scan(_note_text(workout), hits)

        for block in iter_blocks(workout):
            ex = block_exercise(block)
            if target_group and ex.muscle_group != target_group:
                continue
            if target_key is not None and ex.key != target_key:
                continue

            _scan(_note_text(block), hits)
            sets = block.get("sets")
            for entry in sets if isinstance(sets, list) else []:
                _scan(_note_text(entry), hits)

    tips = [
        tip
        for category, _pattern, threshold, tip in NOTE_FLAG_RULES
        if hits[category] >= threshold
    ]
    return {"hits": hits, "tips": tips}
