import os
import tempfile
import unittest

from repcoach.config import DEFAULT_CONFIG, ConfigError, load_config, planner_settings


class ConfigTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmpdir.name, "config.yaml")

    def tearDown(self):
        self.tmpdir.cleanup()

    def _write(self, text):
        with open(self.path, "w") as f:
            f.write(text)

    def test_missing_file_gives_defaults(self):
        config = load_config(os.path.join(self.tmpdir.name, "absent.yaml"))
        self.assertEqual(config, DEFAULT_CONFIG)
        config["planner"]["goals"] = "strength"
        self.assertEqual(DEFAULT_CONFIG["planner"]["goals"], "hypertrophy")

    def test_partial_override_is_merged(self):
        self._write("planner:\n  goals: strength\n  units: kg\nclaude:\n  model: claude-test\n")
        config = load_config(self.path)
        self.assertEqual(config["planner"]["goals"], "strength")
        self.assertEqual(config["planner"]["split"], "full")
        self.assertEqual(config["claude"]["model"], "claude-test")
        self.assertEqual(config["claude"]["api_key_env"], "ANTHROPIC_API_KEY")

    def test_plate_increments_are_clamped(self):
        self._write("planner:\n  plate_increment_lb: 50\n  plate_increment_kg: 0.1\n")
        planner = load_config(self.path)["planner"]
        self.assertEqual(planner["plate_increment_lb"], 10)
        self.assertEqual(planner["plate_increment_kg"], 0.5)

    def test_empty_file_gives_defaults(self):
        self._write("")
        self.assertEqual(load_config(self.path), DEFAULT_CONFIG)

    def test_malformed_yaml_raises(self):
        self._write("planner: [unclosed\n")
        with self.assertRaises(ConfigError):
            load_config(self.path)

    def test_wrong_shapes_raise(self):
        self._write("- just\n- a list\n")
        with self.assertRaises(ConfigError):
            load_config(self.path)
        self._write("planner: fast\n")
        with self.assertRaises(ConfigError):
            load_config(self.path)
        self._write("planner:\n  plate_increment_lb: heavy\n")
        with self.assertRaises(ConfigError):
            load_config(self.path)

    def test_planner_settings(self):
        settings = planner_settings(DEFAULT_CONFIG)
        self.assertEqual(
            settings,
            {"units": None, "plateIncrementLb": 5, "plateIncrementKg": 2.5, "maxHeavyHingesPer7d": 1},
        )


if __name__ == "__main__":
    unittest.main()
