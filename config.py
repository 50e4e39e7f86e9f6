import os
import yaml

from library_data import CATALOG_DIR
from settings_schema import SettingsSchema, validate_settings

APP_VERSION = "1.0.0"

DEFAULT_CATALOG_DIR = CATALOG_DIR


class YamlConfig:
    """Load and save settings to a YAML file with environment overrides."""

    ENV_OVERRIDES = {
        "LIFTLOG_CATALOG_DIR": "catalog_dir",
        "LIFTLOG_LOG_LEVEL": "log_level",
    }

    def __init__(self, path: str = "settings.yaml") -> None:
        self.path = path

    def load(self) -> dict:
        data: dict = {}
        if os.path.exists(self.path):
            with open(self.path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} must contain a mapping")
        for env, key in self.ENV_OVERRIDES.items():
            value = os.environ.get(env)
            if value:
                data[key] = value
        return data

    def settings(self) -> SettingsSchema:
        return validate_settings(self.load())

    def save(self, data: dict) -> None:
        validate_settings(data)
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(dict(data), f)


def catalog_dir(settings: SettingsSchema) -> str:
    return settings.catalog_dir or DEFAULT_CATALOG_DIR
