import unittest
from datetime import datetime

from repcoach.analytics import (
    aggregate_exercise,
    aggregate_group,
    best_set,
    compute_summary,
    infer_units,
    summarize_history,
)
from repcoach.metrics import DAY_MS, PLATEAU_MESSAGE, day_key


NOW = int(datetime(2024, 6, 15, 12, 0).timestamp() * 1000)
HOUR_MS = 60 * 60 * 1000

BENCH = {
    "id": "bench",
    "name": "Bench Press",
    "muscleGroup": "Chest",
    "equipment": "barbell",
    "pattern": "horizontal_press",
}
FLY = {"id": "fly", "name": "Cable Fly", "muscleGroup": "Chest", "equipment": "cable", "pattern": "isolation"}
DIP = {"id": "dip", "name": "Chest Dip", "muscleGroup": "chest", "equipment": "bodyweight", "pattern": "horizontal_press"}
INCLINE = {"id": "incline", "name": "Incline Press", "muscleGroup": "Chest", "equipment": "dumbbell"}


def workout(workout_id, started_at, blocks, units="lb", note=None):
    record = {
        "id": workout_id,
        "startedAt": started_at,
        "finishedAt": started_at + HOUR_MS,
        "units": units,
        "blocks": blocks,
    }
    if note:
        record["note"] = note
    return record


def block(exercise, *sets):
    return {"exercise": dict(exercise), "sets": [{"weight": w, "reps": r} for w, r in sets]}


class AggregateGroupTests(unittest.TestCase):
    def _scenario_history(self):
        return [workout("w1", NOW - 2 * HOUR_MS, [block(BENCH, (135, 8), (135, 8), (135, 6))])]

    def test_single_bench_session(self):
        result = aggregate_group(self._scenario_history(), "Chest", 7, now_ms=NOW)
        self.assertEqual(result["totalVolume"], 2970)
        self.assertEqual(result["workoutsCount"], 1)
        self.assertAlmostEqual(result["avgPerWeek"], 1.0)
        self.assertEqual(result["balance"]["status"], "skewed")
        self.assertAlmostEqual(result["balance"]["topShare"], 1.0)
        self.assertEqual(result["byDayVolume"], {day_key(NOW).isoformat(): 2970})
        self.assertIsNone(result["deltaPct"])
        self.assertEqual(result["prs"], 1)

        top = result["topExercises"][0]
        self.assertEqual(top["exercise"]["name"], "Bench Press")
        self.assertEqual(top["sessions"], 1)
        self.assertEqual(top["bestSet"], {"weight": 135, "reps": 8})

    def test_invalid_sets_do_not_change_results(self):
        history = self._scenario_history()
        before = aggregate_group(history, "Chest", 30, now_ms=NOW)

        history[0]["blocks"][0]["sets"].append({"weight": 0, "reps": 10})
        history[0]["blocks"][0]["sets"].append({"weight": 135, "reps": 0})
        history.append(workout("w2", NOW - 3 * DAY_MS, [block(BENCH, (0, 5), (95, 0))]))
        after = aggregate_group(history, "Chest", 30, now_ms=NOW)

        for key in ("totalVolume", "topExercises", "acwr", "workoutsCount"):
            self.assertEqual(before[key], after[key], key)

    def test_delta_against_previous_period(self):
        history = self._scenario_history()
        history.append(workout("w0", NOW - 10 * DAY_MS, [block(BENCH, (100, 10))]))
        result = aggregate_group(history, "Chest", 7, now_ms=NOW)
        self.assertEqual(result["totalVolume"], 2970)
        self.assertAlmostEqual(result["deltaPct"], 197.0)
        self.assertEqual(result["prs"], 1)

    def test_no_pr_when_best_regressed(self):
        history = [
            workout("old", NOW - 10 * DAY_MS, [block(BENCH, (200, 5))]),
            workout("new", NOW - 1 * DAY_MS, [block(BENCH, (150, 5))]),
        ]
        result = aggregate_group(history, "Chest", 7, now_ms=NOW)
        self.assertEqual(result["prs"], 0)
        self.assertLess(result["deltaPct"], 0)

    def test_group_label_is_canonicalized(self):
        history = [workout("w1", NOW - DAY_MS, [block(DIP, (50, 10))])]
        result = aggregate_group(history, "chest", 7, now_ms=NOW)
        self.assertEqual(result["group"], "Chest")
        self.assertEqual(result["totalVolume"], 500)

    def test_range_excludes_older_sessions(self):
        history = self._scenario_history()
        history.append(workout("w0", NOW - 20 * DAY_MS, [block(BENCH, (100, 10))]))
        self.assertEqual(aggregate_group(history, "Chest", 7, now_ms=NOW)["totalVolume"], 2970)
        self.assertEqual(aggregate_group(history, "Chest", None, now_ms=NOW)["totalVolume"], 3970)

    def test_balanced_and_diverse_selection(self):
        balanced = [workout("w1", NOW - DAY_MS, [block(BENCH, (100, 10)), block(FLY, (50, 20))])]
        self.assertEqual(aggregate_group(balanced, "Chest", 7, now_ms=NOW)["balance"]["status"], "balanced")

        diverse = [
            workout(
                "w1",
                NOW - DAY_MS,
                [
                    block(BENCH, (100, 10)),
                    block(FLY, (50, 20)),
                    block(DIP, (100, 10)),
                    block(INCLINE, (50, 20)),
                ],
            )
        ]
        result = aggregate_group(diverse, "Chest", 7, now_ms=NOW)
        self.assertEqual(result["balance"]["status"], "diverse")
        self.assertEqual(len(result["topExercises"]), 4)

    def test_other_groups_are_ignored(self):
        squat = {"id": "squat", "name": "Back Squat", "muscleGroup": "Legs", "equipment": "barbell"}
        history = [workout("w1", NOW - DAY_MS, [block(squat, (225, 5))])]
        result = aggregate_group(history, "Chest", 7, now_ms=NOW)
        self.assertEqual(result["totalVolume"], 0)
        self.assertEqual(result["workoutsCount"], 0)
        self.assertIsNone(result["balance"])
        self.assertEqual(result["acwr"]["status"], "unknown")

    def test_malformed_records_do_not_raise(self):
        history = [
            None,
            "junk",
            {"startedAt": "soon", "blocks": "none"},
            {"startedAt": NOW - DAY_MS, "blocks": [None, {"exercise": None, "sets": None}]},
            workout("ok", NOW - DAY_MS, [block(BENCH, (100, "10"))]),
        ]
        result = aggregate_group(history, "Chest", 7, now_ms=NOW)
        self.assertEqual(result["totalVolume"], 1000)

    def test_out_of_range_start_time_does_not_raise(self):
        history = [{"id": "far", "startedAt": 1e300, "blocks": [block(BENCH, (100, 5))]}]
        result = aggregate_group(history, "Chest", None, now_ms=NOW)
        self.assertEqual(result["totalVolume"], 500)
        self.assertEqual(result["workoutsCount"], 1)
        self.assertEqual(len(aggregate_exercise(history, "bench", now_ms=NOW)["sessions"]), 1)
        self.assertEqual(compute_summary(history[0], now_ms=NOW)["totalVolume"], 500)


class AggregateExerciseTests(unittest.TestCase):
    def _plateau_history(self):
        # Reps of 30 make Epley e1RM exactly double the weight.
        weights_by_days_ago = {20: 100, 15: 101, 10: 99, 5: 100.5, 1: 99.5}
        return [
            workout(f"w{days}", NOW - days * DAY_MS, [block(BENCH, (weight, 30), (weight - 20, 10))])
            for days, weight in sorted(weights_by_days_ago.items())
        ]

    def test_plateau_flagged_for_flat_sessions(self):
        result = aggregate_exercise(self._plateau_history(), "bench", now_ms=NOW)
        self.assertEqual([round(s["maxE1"]) for s in result["sessions"]], [200, 202, 198, 201, 199])
        self.assertIsNotNone(result["plateau"])
        self.assertEqual(result["plateau"]["message"], PLATEAU_MESSAGE)

    def test_sessions_are_sorted_by_date(self):
        history = list(reversed(self._plateau_history()))
        result = aggregate_exercise(history, "bench", now_ms=NOW)
        dates = [s["date"] for s in result["sessions"]]
        self.assertEqual(dates, sorted(dates))
        self.assertEqual(result["sessions"][0]["id"], "w20")

    def test_best_set_and_totals(self):
        result = aggregate_exercise(self._plateau_history(), BENCH, now_ms=NOW)
        self.assertEqual(result["bestSet"], {"weight": 101, "reps": 30})
        self.assertEqual(result["e1rmTrend"]["points"], 5)
        first = result["sessions"][0]
        self.assertEqual(first["vol"], 100 * 30 + 80 * 10)
        self.assertEqual(first["maxW"], 100)

    def test_matches_by_name_when_id_missing(self):
        unnamed = {"name": "Goblet Squat", "muscleGroup": "Legs", "equipment": "dumbbell"}
        history = [workout("w1", NOW - DAY_MS, [block(unnamed, (50, 12))])]
        result = aggregate_exercise(history, "Goblet Squat", now_ms=NOW)
        self.assertEqual(len(result["sessions"]), 1)
        self.assertIsNone(result["plateau"])

    def test_unknown_exercise_is_empty(self):
        result = aggregate_exercise(self._plateau_history(), "curl", now_ms=NOW)
        self.assertEqual(result["sessions"], [])
        self.assertIsNone(result["bestSet"])
        self.assertEqual(result["e1rmTrend"]["status"], "unknown")


class SummaryTests(unittest.TestCase):
    def test_compute_summary(self):
        record = workout("w1", NOW - DAY_MS, [block(BENCH, (100, 10), (0, 10)), block(FLY, (30, 12))])
        summary = compute_summary(record, now_ms=NOW)
        self.assertEqual(summary["id"], "w1")
        self.assertEqual(summary["durationMin"], 60)
        self.assertEqual(summary["totalSets"], 3)
        self.assertEqual(summary["totalVolume"], 1000 + 360)
        self.assertEqual(summary["exercises"], 2)

    def test_unfinished_session_runs_to_now(self):
        record = {"id": "live", "startedAt": NOW - 10 * 60 * 1000, "blocks": []}
        self.assertEqual(compute_summary(record, now_ms=NOW)["durationMin"], 10)

    def test_infer_units(self):
        self.assertEqual(infer_units([{"units": "stone"}, {"units": "kg"}]), "kg")
        self.assertIsNone(infer_units([]))

    def test_best_set_prefers_weight_then_reps(self):
        sets = [{"weight": 100, "reps": 12}, {"weight": 110, "reps": 3}, {"weight": 110, "reps": 5}]
        self.assertEqual(best_set(sets), {"weight": 110, "reps": 5})
        self.assertIsNone(best_set([{"weight": 0, "reps": 5}]))


class SummarizeHistoryTests(unittest.TestCase):
    def test_planner_signals_use_completed_sets(self):
        deadlift = {"id": "dl", "name": "Deadlift", "muscleGroup": "Back", "equipment": "barbell", "pattern": "hinge"}
        history = [
            {
                "id": "recent",
                "startedAt": NOW - 2 * DAY_MS,
                "blocks": [
                    {
                        "exercise": BENCH,
                        "sets": [
                            {"weight": 100, "reps": 10, "completedAt": NOW - 2 * DAY_MS},
                            {"weight": 110, "reps": 8, "completedAt": NOW - 2 * DAY_MS},
                            {"weight": 200, "reps": 10},
                        ],
                    }
                ],
            },
            {
                "id": "older",
                "startedAt": NOW - 10 * DAY_MS,
                "blocks": [
                    {"exercise": deadlift, "sets": [{"weight": 300, "reps": 5, "completedAt": NOW - 10 * DAY_MS}]}
                ],
            },
        ]
        signals = summarize_history(history, now_ms=NOW)

        self.assertEqual(signals["vol7"], {"Chest": 1000 + 880})
        self.assertEqual(signals["gapDays"]["Chest"], 2)
        self.assertEqual(signals["gapDays"]["Back"], 10)
        self.assertEqual(signals["gapDays"]["Legs"], 999)
        self.assertEqual(signals["pattern7d"], {"horizontal_press": 2})
        self.assertEqual(signals["lastPerf"]["bench"]["bestSet"]["weight"], 110)
        self.assertEqual(signals["lastPerf"]["dl"]["at"], NOW - 10 * DAY_MS)
        self.assertEqual(signals["lastUsed"]["bench"], NOW - 2 * DAY_MS)


if __name__ == "__main__":
    unittest.main()
