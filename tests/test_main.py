import io
import json
import os
import tempfile
import time
import unittest
from unittest.mock import MagicMock, patch

import anthropic
import httpx

import main


DAY_MS = 24 * 60 * 60 * 1000


class CommandLineTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.history_path = os.path.join(self.tmpdir.name, "workouts.json")
        self.config_path = os.path.join(self.tmpdir.name, "missing.yaml")
        now = int(time.time() * 1000)
        history = [
            {
                "id": "w1",
                "startedAt": now - DAY_MS,
                "finishedAt": now - DAY_MS + 45 * 60 * 1000,
                "units": "lb",
                "blocks": [
                    {
                        "exercise": {"id": "ex_bb_bench", "name": "Barbell Bench Press", "muscleGroup": "Chest", "equipment": "barbell", "pattern": "horizontal_press"},
                        "sets": [{"weight": 135, "reps": 8, "completedAt": now - DAY_MS}],
                    }
                ],
            }
        ]
        with open(self.history_path, "w") as f:
            json.dump(history, f)

    def tearDown(self):
        self.tmpdir.cleanup()

    def _run(self, *args):
        argv = ["--config", self.config_path, "--history", self.history_path] + list(args)
        with patch("sys.stdout", new_callable=io.StringIO) as out:
            code = main.main(argv)
        return code, out.getvalue()

    def test_plan_json_is_reproducible(self):
        code, first = self._run("plan", "--seed", "5", "--json")
        self.assertEqual(code, 0)
        _code, second = self._run("plan", "--seed", "5", "--json")
        self.assertEqual(json.loads(first)["blocks"], json.loads(second)["blocks"])

    def test_plan_text(self):
        code, output = self._run("plan", "--seed", "5", "--split", "push", "--time", "30")
        self.assertEqual(code, 0)
        self.assertIn("PUSH – HYPERTROPHY", output)
        self.assertIn("Validation:", output)

    def test_group_report(self):
        code, output = self._run("group", "chest", "--range", "7")
        self.assertEqual(code, 0)
        self.assertIn("Total volume: 1080", output)

    def test_exercise_report_json(self):
        code, output = self._run("exercise", "ex_bb_bench", "--json")
        self.assertEqual(code, 0)
        self.assertEqual(len(json.loads(output)["sessions"]), 1)

    def test_exercise_report_by_name(self):
        code, output = self._run("exercise", "Barbell Bench Press", "--json")
        self.assertEqual(code, 0)
        result = json.loads(output)
        self.assertEqual(result["exerciseKey"], "ex_bb_bench")
        self.assertEqual(len(result["sessions"]), 1)

    def test_zero_time_budget_is_respected(self):
        code, output = self._run("plan", "--seed", "5", "--time", "0", "--json")
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(output)["meta"]["setBudget"], 8)

    def test_summary(self):
        code, output = self._run("summary")
        self.assertEqual(code, 0)
        self.assertIn("1 exercises, 1 sets, 1080 volume, 45 min", output)
        code, output = self._run("summary", "nope")
        self.assertEqual(code, 1)

    def test_llm_without_key(self):
        with patch.dict(os.environ, {}, clear=True), patch("main.load_dotenv"):
            code, output = self._run("plan", "--llm")
        self.assertEqual(code, 1)
        self.assertIn("ANTHROPIC_API_KEY", output)

    def test_llm_api_error_is_reported(self):
        client = MagicMock()
        client.messages.create.side_effect = anthropic.APIConnectionError(
            request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        )
        with patch.dict(os.environ, {"ANTHROPIC_API_KEY": "test-key"}), patch("main.load_dotenv"), patch(
            "repcoach.llm_planner.anthropic.Anthropic", return_value=client
        ):
            code, output = self._run("plan", "--llm")
        self.assertEqual(code, 1)
        self.assertIn("❌ Failed to generate workout plan", output)

    def test_bad_config(self):
        with open(self.config_path, "w") as f:
            f.write("planner: [broken\n")
        code, output = self._run("summary")
        self.assertEqual(code, 1)
        self.assertIn("Error:", output)


if __name__ == "__main__":
    unittest.main()
