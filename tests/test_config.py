import os
import sys
import unittest

import yaml

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
import library_data
from config import DEFAULT_CATALOG_DIR, YamlConfig, catalog_dir
from settings_schema import validate_settings


class YamlConfigTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.path = "test_config_settings.yaml"
        if os.path.exists(self.path):
            os.remove(self.path)
        self._env = {k: os.environ.pop(k, None) for k in YamlConfig.ENV_OVERRIDES}

    def tearDown(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)
        for key, value in self._env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value

    def test_defaults_without_file(self) -> None:
        settings = YamlConfig(self.path).settings()
        self.assertEqual(settings.body_weight, 80.0)
        self.assertEqual(settings.suggestion_limit, 5)
        self.assertEqual(settings.log_level, "INFO")
        self.assertEqual(catalog_dir(settings), DEFAULT_CATALOG_DIR)

    def test_bundled_catalog_lives_in_package(self) -> None:
        self.assertEqual(
            DEFAULT_CATALOG_DIR, os.path.dirname(os.path.abspath(library_data.__file__))
        )
        for relative in (
            ("exercise_index", "exercise_library.json"),
            ("exercise_index", "metadata.json"),
            ("exercise_library", "bodyparts.json"),
        ):
            self.assertTrue(os.path.isfile(os.path.join(DEFAULT_CATALOG_DIR, *relative)))

    def test_save_and_load(self) -> None:
        config = YamlConfig(self.path)
        config.save({"body_weight": 90.0, "weight_unit": "lb"})
        with open(self.path, "r", encoding="utf-8") as f:
            self.assertEqual(yaml.safe_load(f)["weight_unit"], "lb")
        self.assertEqual(config.settings().body_weight, 90.0)

    def test_environment_overrides(self) -> None:
        config = YamlConfig(self.path)
        config.save({"log_level": "INFO"})
        os.environ["LIFTLOG_LOG_LEVEL"] = "DEBUG"
        os.environ["LIFTLOG_CATALOG_DIR"] = "/tmp/catalog"
        settings = config.settings()
        self.assertEqual(settings.log_level, "DEBUG")
        self.assertEqual(catalog_dir(settings), "/tmp/catalog")

    def test_invalid_values(self) -> None:
        with self.assertRaises(ValueError):
            validate_settings({"body_weight": 0})
        with self.assertRaises(ValueError):
            validate_settings({"timezone": "Mars/Olympus"})
        with self.assertRaises(ValueError):
            validate_settings({"weight_unit": "stone"})
        with self.assertRaises(ValueError):
            YamlConfig(self.path).save({"suggestion_limit": -1})

    def test_non_mapping_file(self) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            f.write("- just\n- a list\n")
        with self.assertRaises(ValueError):
            YamlConfig(self.path).load()


if __name__ == "__main__":
    unittest.main()
