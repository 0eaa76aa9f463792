"""Settings for the guardrails collaborators, loaded from YAML and the environment.

Precedence, highest first: DIETGUARD_* environment variables, values
passed in (e.g. from a settings YAML), then the defaults below.
"""

import logging
from pathlib import Path
from typing import Literal

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

from dietguard.rules.guard_rules import HOUSEHOLD_RULE_PRIORITY


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class GuardrailsSettings(BaseSettings):
    """Runtime settings.

    Attributes:
        data_dir: Directory holding the JSON rule tables
        locale: Locale used for text atoms and matching
        mode: Default evaluation mode
        household_rule_priority: Priority given to household avoid rules
        log_level: Logging level name
    """

    model_config = SettingsConfigDict(
        env_prefix="DIETGUARD_",
        env_ignore_empty=True,
        extra="ignore",
    )

    data_dir: str = "data/rules"
    locale: str = "nl"
    mode: Literal["meal_planner", "plan_chat", "recipe_adaptation"] = "plan_chat"
    household_rule_priority: int = HOUSEHOLD_RULE_PRIORITY
    log_level: str = "WARNING"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @classmethod
    def from_yaml(cls, yaml_path: str) -> "GuardrailsSettings":
        """Load settings from a YAML file with a top-level `guardrails` mapping.

        Raises:
            FileNotFoundError: If the file doesn't exist
            pydantic.ValidationError: If a value has the wrong type
        """
        with open(Path(yaml_path), "r") as f:
            data = yaml.safe_load(f) or {}
        section = data.get("guardrails", data)
        return cls(**{key: value for key, value in section.items() if value is not None})


def configure_logging(level: str = "WARNING") -> None:
    """Configure root logging for the CLI."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.WARNING), format=LOG_FORMAT)
