"""
Build compact history context for plan generation and plan volume checks.
"""

import logging
from collections import defaultdict

from repcoach.analytics import infer_units
from repcoach.exercise_normalizer import (
    block_exercise,
    block_volume,
    canonical_equipment,
    coerce_finite_non_negative,
    iter_blocks,
    set_reps,
    set_weight,
    valid_sets,
)
from repcoach.exercise_pool import DEFAULT_EQUIPMENT, pick_groups_for_split
from repcoach.metrics import DAY_MS, day_key, e1rm, today_ms


logger = logging.getLogger(__name__)

HISTORY_LOOKBACK_DAYS = 28
RECENT_WEEKS = 3
VOLUME_BAND_PCT = 20
MAX_SEED_BLOCKS = 5
DEFAULT_SEED_LOAD = 95

INTENSITY_REPS = {
    "high": [8, 8, 6],
    "medium": [10, 10, 8],
    "low": [12, 12, 10],
}


def _session_time(workout):
    return coerce_finite_non_negative(workout.get("finishedAt")) or coerce_finite_non_negative(
        workout.get("startedAt")
    )


def build_history_rows(workouts, now_ms=None, lookback_days=HISTORY_LOOKBACK_DAYS):
    """One row per valid set performed in the lookback window, oldest first."""
    now = now_ms if now_ms is not None else today_ms()
    cutoff = now - lookback_days * DAY_MS
    dated = []
    for workout in workouts or []:
        if not isinstance(workout, dict):
            continue
        when = _session_time(workout)
        if not when or when < cutoff:
            continue
        dated.append((when, workout))
    dated.sort(key=lambda item: item[0])

    rows = []
    for when, workout in dated:
        units = "kg" if workout.get("units") == "kg" else "lb"
        for block in iter_blocks(workout):
            ex = block_exercise(block)
            for entry in valid_sets(block):
                rows.append(
                    {
                        "date": day_key(when).isoformat(),
                        "exercise": ex.name or "Unknown",
                        "exerciseId": ex.key,
                        "muscleGroup": ex.muscle_group,
                        "equipment": ex.equipment,
                        "pattern": ex.pattern,
                        "weight": set_weight(entry),
                        "reps": set_reps(entry),
                        "units": units,
                    }
                )
    return rows


def recent_avg_volume_by_muscle(workouts, now_ms=None, weeks=RECENT_WEEKS):
    """Average weekly tonnage per muscle group over the last ``weeks`` weeks."""
    now = now_ms if now_ms is not None else today_ms()
    cutoff = now - weeks * 7 * DAY_MS
    totals = defaultdict(float)
    for workout in workouts or []:
        if not isinstance(workout, dict):
            continue
        when = _session_time(workout)
        if not when or when < cutoff:
            continue
        for block in iter_blocks(workout):
            totals[block_exercise(block).muscle_group] += block_volume(block)
    return {group: total / weeks for group, total in totals.items()}


def group_rows_by_exercise(rows):
    by_exercise = {}
    for row in rows:
        by_exercise.setdefault(row["exerciseId"] or row["exercise"], []).append(row)
    return by_exercise


def exercise_progress(rows, weeks=RECENT_WEEKS):
    """Best e1RM, heaviest load, average weekly volume and last three session dates per exercise."""
    progress = {}
    for key, items in group_rows_by_exercise(rows).items():
        best = max(e1rm(r["weight"], r["reps"]) for r in items)
        heaviest = max(r["weight"] for r in items)
        volume = sum(r["weight"] * r["reps"] for r in items)
        dates = sorted({r["date"] for r in items})
        progress[key] = {
            "bestE1RM": round(best, 1),
            "heaviestLoad": heaviest,
            "avgWeeklyVolume": round(volume / weeks),
            "recentSessionsUsed": dates[-3:],
        }
    return progress


def _seed_sets(heaviest, intensity):
    base = max(0, round(heaviest * 0.9)) if heaviest else DEFAULT_SEED_LOAD
    reps = INTENSITY_REPS.get(intensity, INTENSITY_REPS["medium"])
    return [
        {"weight": max(0, round(base * (0.95 if index == 2 else 1))), "reps": rep}
        for index, rep in enumerate(reps)
    ]


def build_seed_blocks(prefs, rows, progress):
    """
    Familiar exercises from recent history for the requested split.

    Takes the most recent exercise per priority group (Back twice when a
    second back exercise exists), filtered by allowed equipment, up to five.
    """
    prefs = prefs or {}
    allowed = {canonical_equipment(e) for e in prefs.get("equipment") or DEFAULT_EQUIPMENT}
    groups = pick_groups_for_split(prefs.get("split"))

    latest = {}
    for row in rows:
        latest[row["exerciseId"] or row["exercise"]] = row

    by_group = defaultdict(list)
    for row in latest.values():
        if row["muscleGroup"] in groups and row["equipment"] in allowed:
            by_group[row["muscleGroup"]].append(row)
    for items in by_group.values():
        items.sort(key=lambda r: r["date"])

    ordered = []
    for group in groups:
        candidates = by_group.get(group, [])
        if candidates:
            ordered.append(candidates[-1])
        if group == "Back" and len(candidates) > 1:
            ordered.append(candidates[-2])

    blocks = []
    seen = set()
    for row in ordered:
        key = row["exerciseId"] or row["exercise"]
        if key in seen:
            continue
        seen.add(key)
        heaviest = (progress.get(key) or {}).get("heaviestLoad", 0)
        blocks.append(
            {
                "exercise": {
                    "id": key,
                    "name": row["exercise"],
                    "muscleGroup": row["muscleGroup"],
                    "equipment": row["equipment"],
                    "pattern": row["pattern"],
                },
                "sets": _seed_sets(heaviest, prefs.get("intensity")),
            }
        )
        if len(blocks) >= MAX_SEED_BLOCKS:
            break
    return blocks


def _plan_volume_by_group(blocks):
    totals = defaultdict(float)
    for block in blocks:
        totals[block["exercise"]["muscleGroup"]] += block_volume(block)
    return totals


def clamp_blocks_to_recent_volume(blocks, recent_avg, max_delta_pct=VOLUME_BAND_PCT):
    """Scale set weights so each group's tonnage stays within the band of its recent average."""
    today = _plan_volume_by_group(blocks)
    adjusted = []
    for block in blocks:
        group = block["exercise"]["muscleGroup"]
        sets = [dict(s) for s in block["sets"]]
        group_today = today.get(group, 0.0)
        recent = recent_avg.get(group, 0.0)
        if recent:
            delta = (group_today - recent) / max(1.0, recent) * 100
            if abs(delta) > max_delta_pct:
                direction = 1 if delta > 0 else -1
                capped = recent * (1 + direction * max_delta_pct / 100.0)
                factor = max(0.0, capped / max(1.0, group_today))
                for entry in sets:
                    entry["weight"] = max(0, round(coerce_finite_non_negative(entry.get("weight")) * factor))
        adjusted.append({**block, "sets": sets})
    return adjusted


def volume_check(blocks, recent_avg, max_delta_pct=VOLUME_BAND_PCT):
    """
    Compare each planned group's tonnage with its recent weekly average.

    Returns:
        List[dict] of group, todayVolume, recentAvg, deltaPct (None without a
        baseline), ok
    """
    checks = []
    for group, today in _plan_volume_by_group(blocks).items():
        recent = recent_avg.get(group, 0.0)
        if recent > 0:
            delta = (today - recent) / recent * 100
            ok = abs(delta) <= max_delta_pct
        else:
            delta = None
            ok = True
        checks.append(
            {
                "group": group,
                "todayVolume": round(today),
                "recentAvg": round(recent),
                "deltaPct": delta,
                "ok": ok,
            }
        )
    return checks


def build_planner_context(history, prefs=None, vitals=None, now_ms=None):
    """
    History-aware payload for an external planner.

    Returns:
        dict keyed PREFS, VITALS, RECENT_AVG_VOLUME_BY_MUSCLE, HISTORY_SUMMARY,
        EXERCISE_PROGRESS, LAST_3_WEEKS_BY_EXERCISE, SEED_BLOCKS
    """
    now = now_ms if now_ms is not None else today_ms()
    prefs = dict(prefs or {})
    prefs["units"] = prefs.get("units") or infer_units(history) or "lb"

    rows = build_history_rows(history, now)
    recent_avg = recent_avg_volume_by_muscle(history, now)
    progress = exercise_progress(rows)
    seed_blocks = clamp_blocks_to_recent_volume(build_seed_blocks(prefs, rows, progress), recent_avg)

    logger.debug(
        "Planner context: %d history rows, %d exercises, %d seed blocks",
        len(rows),
        len(progress),
        len(seed_blocks),
    )
    return {
        "PREFS": prefs,
        "VITALS": dict(vitals or {}),
        "RECENT_AVG_VOLUME_BY_MUSCLE": recent_avg,
        "HISTORY_SUMMARY": rows,
        "EXERCISE_PROGRESS": progress,
        "LAST_3_WEEKS_BY_EXERCISE": group_rows_by_exercise(rows),
        "SEED_BLOCKS": seed_blocks,
    }
