import unittest

from repcoach.note_flags import NOTE_FLAG_RULES, scan_notes


TIPS = {category: tip for category, _pattern, _threshold, tip in NOTE_FLAG_RULES}

CHEST = {"id": "bench", "name": "Bench Press", "muscleGroup": "Chest"}
BACK = {"id": "row", "name": "Barbell Row", "muscleGroup": "Back"}


class NoteFlagTests(unittest.TestCase):
    def _history(self):
        return [
            {
                "note": "Failed the last rep",
                "blocks": [
                    {
                        "exercise": CHEST,
                        "note": "elbow felt cranky",
                        "sets": [{"weight": 100, "reps": 8, "note": "elbow again"}],
                    },
                    {"exercise": BACK, "sets": [{"weight": 80, "reps": 10}]},
                ],
            },
            {"note": "missed a rep on the top set", "blocks": []},
            {"notes": "fail on set three", "blocks": "not a list"},
        ]

    def test_tips_follow_rule_order(self):
        result = scan_notes(self._history())
        self.assertEqual(result["hits"]["fail"], 3)
        self.assertEqual(result["hits"]["elbow"], 2)
        self.assertEqual(result["tips"], [TIPS["fail"], TIPS["elbow"]])

    def test_group_filter_skips_other_blocks(self):
        result = scan_notes(self._history(), group="Back")
        self.assertEqual(result["hits"]["elbow"], 0)
        self.assertEqual(result["tips"], [TIPS["fail"]])

    def test_exercise_filter(self):
        result = scan_notes(self._history(), exercise="bench")
        self.assertEqual(result["hits"]["elbow"], 2)
        self.assertIn(TIPS["elbow"], result["tips"])

    def test_below_threshold_gives_no_tip(self):
        history = [{"note": "failed once"}, {"note": "missed one"}, {"note": "knee twinge"}]
        result = scan_notes(history)
        self.assertEqual(result["hits"]["fail"], 2)
        self.assertEqual(result["hits"]["knee"], 1)
        self.assertEqual(result["tips"], [])

    def test_several_categories_fire_together(self):
        history = [
            {"note": "shoulder tight, knee ok, watch form"},
            {"note": "shoulder better, knee sore, technique solid"},
        ]
        tips = scan_notes(history)["tips"]
        self.assertEqual(tips, [TIPS["shoulder"], TIPS["knee"], TIPS["form"]])

    def test_tolerates_junk(self):
        result = scan_notes([None, {"note": 42}, {"blocks": [None, {"sets": [None]}]}])
        self.assertEqual(result["tips"], [])


if __name__ == "__main__":
    unittest.main()
