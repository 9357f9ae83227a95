"""
Analytics over workout history: per-muscle-group and per-exercise summaries.

All functions are pure over an in-memory list of workout records and never
raise on malformed records; bad numbers are coerced or ignored.
"""

import logging
from collections import defaultdict

from repcoach.exercise_normalizer import (
    MUSCLE_GROUPS,
    block_exercise,
    block_volume,
    canonical_muscle_group,
    coerce_finite_non_negative,
    exercise_key,
    iter_blocks,
    set_reps,
    set_weight,
    valid_sets,
)
from repcoach.metrics import (
    DAY_MS,
    compute_acwr,
    day_key,
    day_offset,
    detect_plateau,
    e1rm,
    e1rm_trend,
    today_ms,
)
from repcoach.note_flags import scan_notes


logger = logging.getLogger(__name__)

DEFAULT_RANGE_DAYS = 90
BALANCE_SKEWED = 0.6
BALANCE_DIVERSE = 0.3
NEVER_TRAINED_GAP = 999


def _started_at(workout):
    return coerce_finite_non_negative(workout.get("startedAt"))


def _workout_id(workout, index):
    return workout.get("id") or f"workout-{index}"


def infer_units(workouts):
    """First explicit ``lb``/``kg`` unit found in history, else None."""
    for workout in workouts or []:
        if isinstance(workout, dict) and workout.get("units") in ("lb", "kg"):
            return workout["units"]
    return None


def _better_set(candidate, current):
    """Heavier wins; on equal weight, more reps wins."""
    if current is None:
        return True
    if candidate["weight"] > current["weight"]:
        return True
    return candidate["weight"] == current["weight"] and candidate["reps"] > current["reps"]


def best_set(sets):
    """Heaviest-then-highest-rep valid set, or None."""
    best = None
    for entry in sets:
        candidate = {"weight": set_weight(entry), "reps": set_reps(entry)}
        if candidate["weight"] <= 0 or candidate["reps"] <= 0:
            continue
        if _better_set(candidate, best):
            best = candidate
    return best


def _group_blocks(workout, group):
    return [block for block in iter_blocks(workout) if block_exercise(block).muscle_group == group]


def _balance(top_exercises, total_volume):
    if not top_exercises:
        return None

    top = top_exercises[0]
    top_name = top["exercise"]["name"]
    top_share = top["volume"] / total_volume if total_volume > 0 else 0.0
    if top_share > BALANCE_SKEWED:
        status = "skewed"
        message = (
            f"Training is heavily concentrated on {top_name}. "
            "Consider prioritizing #2-3 for balance."
        )
    elif top_share < BALANCE_DIVERSE and len(top_exercises) >= 3:
        status = "diverse"
        message = "Nice variety across exercises. Keep rotating to cover weak links."
    else:
        status = "balanced"
        message = "Solid balance of exercise selection."
    return {"topName": top_name, "topShare": top_share, "status": status, "message": message}


def _period_volume_and_bests(workouts, group, start_ms, end_ms):
    """Group volume and per-exercise best e1RM for ``start_ms <= startedAt < end_ms``."""
    volume = 0.0
    bests = defaultdict(float)
    for workout in workouts:
        ts = _started_at(workout)
        if ts < start_ms or ts >= end_ms:
            continue
        for block in _group_blocks(workout, group):
            volume += block_volume(block)
            key = block_exercise(block).key
            for entry in valid_sets(block):
                bests[key] = max(bests[key], e1rm(set_weight(entry), set_reps(entry)))
    return volume, bests


def aggregate_group(workouts, group, range_days=None, now_ms=None):
    """
    Summarize one muscle group over the trailing ``range_days``.

    Args:
        workouts: list of workout records (unsorted is fine)
        group: muscle group label; canonicalized before matching
        range_days: trailing window in days, or None for all history
        now_ms: reference "now" as a millisecond timestamp

    Returns:
        dict with byDayVolume, totalVolume, workoutsCount, avgPerWeek,
        deltaPct, prs, topExercises, balance, e1rmTrend, acwr, noteTips
    """
    now = now_ms if now_ms is not None else today_ms()
    group = canonical_muscle_group(group)
    records = [w for w in workouts or [] if isinstance(w, dict)]
    has_range = isinstance(range_days, (int, float)) and not isinstance(range_days, bool)
    cutoff = now - range_days * DAY_MS if has_range else None

    filtered = [w for w in records if cutoff is None or _started_at(w) >= cutoff]

    by_day = defaultdict(float)
    by_exercise = {}
    sessions = []

    for index, workout in enumerate(filtered):
        hit = False
        workout_day = day_key(_started_at(workout) or now)
        for block in _group_blocks(workout, group):
            volume = block_volume(block)
            if volume <= 0:
                continue
            hit = True
            by_day[workout_day] += volume

            ex = block_exercise(block)
            entry = by_exercise.get(ex.key)
            if entry is None:
                entry = {"exercise": ex, "volume": 0.0, "sessions": set(), "bestSet": None}
                by_exercise[ex.key] = entry
            entry["volume"] += volume
            entry["sessions"].add(_workout_id(workout, index))
            candidate = best_set(valid_sets(block))
            if candidate and _better_set(candidate, entry["bestSet"]):
                entry["bestSet"] = candidate
        if hit:
            sessions.append(workout)

    total_volume = sum(by_day.values())
    workouts_count = len(sessions)
    weeks = max(1.0, (range_days if has_range else DEFAULT_RANGE_DAYS) / 7.0)
    avg_per_week = workouts_count / weeks

    delta_pct = None
    prs = 0
    if has_range:
        prev_volume, prev_bests = _period_volume_and_bests(records, group, cutoff - range_days * DAY_MS, cutoff)
        delta_pct = (total_volume - prev_volume) / prev_volume * 100 if prev_volume > 0 else None
        _cur_volume, cur_bests = _period_volume_and_bests(records, group, cutoff, float("inf"))
        prs = sum(1 for key, value in cur_bests.items() if value > 0 and value > prev_bests.get(key, 0.0))

    top_exercises = sorted(
        (
            {
                "exercise": item["exercise"].to_dict(),
                "volume": item["volume"],
                "sessions": len(item["sessions"]),
                "bestSet": item["bestSet"] or {"weight": 0.0, "reps": 0.0},
            }
            for item in by_exercise.values()
        ),
        key=lambda item: item["volume"],
        reverse=True,
    )

    points = []
    for workout in sessions:
        best = 0.0
        for block in _group_blocks(workout, group):
            for entry in valid_sets(block):
                best = max(best, e1rm(set_weight(entry), set_reps(entry)))
        if best > 0:
            points.append({"x": day_offset(_started_at(workout) or now, now), "y": best})

    units = infer_units(records) or "lb"
    logger.debug("aggregate_group %s: %d sessions, volume %.1f", group, workouts_count, total_volume)

    return {
        "group": group,
        "rangeDays": range_days if has_range else None,
        "byDayVolume": {day.isoformat(): by_day[day] for day in sorted(by_day)},
        "totalVolume": total_volume,
        "workoutsCount": workouts_count,
        "avgPerWeek": avg_per_week,
        "deltaPct": delta_pct,
        "prs": prs,
        "topExercises": top_exercises,
        "balance": _balance(top_exercises, total_volume),
        "e1rmTrend": e1rm_trend(points, units=units),
        "acwr": compute_acwr(by_day, now),
        "noteTips": scan_notes(filtered, group=group)["tips"],
    }


def aggregate_exercise(workouts, exercise, now_ms=None):
    """
    Session-by-session progression for one exercise (matched by id-or-name).

    Returns:
        dict with sessions, totalVolume, bestSet, e1rmTrend, plateau, acwr, noteTips
    """
    now = now_ms if now_ms is not None else today_ms()
    target = exercise_key(exercise)
    records = [w for w in workouts or [] if isinstance(w, dict)]

    sessions = []
    overall_best = None
    for index, workout in enumerate(records):
        matched = [b for b in iter_blocks(workout) if block_exercise(b).key == target]
        sets = [entry for block in matched for entry in valid_sets(block)]
        if not sets:
            continue

        volume = sum(set_weight(entry) * set_reps(entry) for entry in sets)
        max_weight = max(set_weight(entry) for entry in sets)
        max_e1 = max(e1rm(set_weight(entry), set_reps(entry)) for entry in sets)
        session_best = best_set(sets)
        if _better_set(session_best, overall_best):
            overall_best = session_best

        sessions.append(
            {
                "id": _workout_id(workout, index),
                "date": _started_at(workout) or now,
                "vol": volume,
                "maxW": max_weight,
                "maxE1": max_e1,
                "bestSet": session_best,
            }
        )

    sessions.sort(key=lambda s: s["date"])

    by_day = defaultdict(float)
    for session in sessions:
        by_day[day_key(session["date"])] += session["vol"]

    points = [{"x": day_offset(s["date"], now), "y": s["maxE1"]} for s in sessions]

    return {
        "exerciseKey": target,
        "sessions": sessions,
        "totalVolume": sum(s["vol"] for s in sessions),
        "bestSet": overall_best,
        "e1rmTrend": e1rm_trend(points, units=infer_units(records) or "lb"),
        "plateau": detect_plateau([s["maxE1"] for s in sessions]),
        "acwr": compute_acwr(by_day, now),
        "noteTips": scan_notes(records, exercise=target)["tips"],
    }


def compute_summary(workout, now_ms=None):
    """One-line session summary used by history lists."""
    now = now_ms if now_ms is not None else today_ms()
    started = _started_at(workout)
    finished = coerce_finite_non_negative(workout.get("finishedAt")) or now
    blocks = iter_blocks(workout)
    return {
        "id": workout.get("id"),
        "date": day_key(started or now).isoformat(),
        "durationMin": max(1, round((finished - started) / 60000)) if started else 1,
        "totalSets": sum(len(b.get("sets") or []) for b in blocks if isinstance(b.get("sets"), list)),
        "totalVolume": sum(block_volume(b) for b in blocks),
        "exercises": len(blocks),
    }


def summarize_history(history, now_ms=None):
    """
    Planner signals from completed sets (sets with ``completedAt``).

    Returns:
        dict with vol7 (group -> 7-day volume), gapDays (group -> days since
        last trained, 999 when never), lastPerf (exercise key -> best set by
        e1RM), lastUsed (exercise key -> ms), pattern7d (pattern -> set count)
    """
    now = now_ms if now_ms is not None else today_ms()
    vol7 = defaultdict(float)
    last_date = {}
    last_perf = {}
    last_used = {}
    pattern7d = defaultdict(int)

    for workout in history or []:
        if not isinstance(workout, dict):
            continue
        for block in iter_blocks(workout):
            ex = block_exercise(block)
            for entry in valid_sets(block):
                done = coerce_finite_non_negative(entry.get("completedAt"))
                if done <= 0:
                    continue
                weight = set_weight(entry)
                reps = set_reps(entry)
                if now - done <= 7 * DAY_MS:
                    vol7[ex.muscle_group] += weight * reps
                    if ex.pattern:
                        pattern7d[ex.pattern] += 1
                last_date[ex.muscle_group] = max(last_date.get(ex.muscle_group, 0), done)

                estimate = e1rm(weight, reps)
                current = last_perf.get(ex.key)
                if current is None or estimate > current["bestSet"]["e1RM"]:
                    last_perf[ex.key] = {
                        "bestSet": {"weight": weight, "reps": reps, "e1RM": estimate},
                        "at": done,
                    }
                last_used[ex.key] = max(last_used.get(ex.key, 0), done)

    gap_days = {}
    for group in MUSCLE_GROUPS:
        if group in last_date:
            gap_days[group] = int((now - last_date[group]) // DAY_MS)
        else:
            gap_days[group] = NEVER_TRAINED_GAP

    return {
        "vol7": dict(vol7),
        "gapDays": gap_days,
        "lastPerf": last_perf,
        "lastUsed": last_used,
        "pattern7d": dict(pattern7d),
    }
