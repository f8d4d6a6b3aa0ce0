"""
CareBundle Settings

Runtime configuration resolved from environment variables.

Environment variables:
    CB_CONFIG_DIR   Directory holding the definition documents
                    (default: the package's bundled config/)
    CB_LOG_LEVEL    Logging level name (default: INFO)
    CB_LOG_FORMAT   "json" or "text" (default: text)

Expected layout of CB_CONFIG_DIR:
    algorithms/<name>.json
    cap_triggers/{functional,clinical,cognition,social}/<name>.yaml
    service_categories.json
    service_intensity_matrix.json
    scenario_templates.json
    substitution_rules.json
    service_types.yaml
    axis_selection.yaml
    cost_reference.yaml
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


DEFAULT_CONFIG_DIR = Path(__file__).resolve().parent / "config"

LOG_FORMATS = ("json", "text")


@dataclass(frozen=True)
class Settings:
    config_dir: Path = DEFAULT_CONFIG_DIR
    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Settings:
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read instead of os.environ (for tests)

        Raises:
            ValueError: If CB_LOG_FORMAT is not a known format
        """
        env = os.environ if environ is None else environ
        config_dir = env.get("CB_CONFIG_DIR")
        log_format = env.get("CB_LOG_FORMAT", "text").lower()
        if log_format not in LOG_FORMATS:
            raise ValueError(
                f"CB_LOG_FORMAT must be one of {', '.join(LOG_FORMATS)}, got '{log_format}'"
            )
        return cls(
            config_dir=Path(config_dir).expanduser() if config_dir else DEFAULT_CONFIG_DIR,
            log_level=env.get("CB_LOG_LEVEL", "INFO").upper(),
            log_format=log_format,
        )

    @property
    def algorithms_dir(self) -> Path:
        return self.config_dir / "algorithms"

    @property
    def cap_triggers_dir(self) -> Path:
        return self.config_dir / "cap_triggers"

    @property
    def service_categories_path(self) -> Path:
        return self.config_dir / "service_categories.json"

    @property
    def intensity_matrix_path(self) -> Path:
        return self.config_dir / "service_intensity_matrix.json"

    @property
    def scenario_templates_path(self) -> Path:
        return self.config_dir / "scenario_templates.json"

    @property
    def substitution_rules_path(self) -> Path:
        return self.config_dir / "substitution_rules.json"

    @property
    def service_types_path(self) -> Path:
        return self.config_dir / "service_types.yaml"

    @property
    def axis_selection_path(self) -> Path:
        return self.config_dir / "axis_selection.yaml"

    @property
    def cost_reference_path(self) -> Path:
        return self.config_dir / "cost_reference.yaml"


def get_settings() -> Settings:
    """Settings for the current process environment."""
    return Settings.from_env()
