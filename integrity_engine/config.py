"""
Configuration Service - Proctoring configuration management.

This module provides the ProctoringConfig settings object and the
ConfigurationService that loads it from a JSON file and environment
variables.
"""

import json
import os
import logging
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, Any, Optional

from shared_utils.validation import validate_proctoring_configuration


class ConfigurationError(Exception):
    """Exception raised for configuration-related errors."""
    pass


@dataclass
class ScreeningConfig:
    """Resume screening fallback constants; demo defaults, not business rules."""
    high_match_threshold: int = 85
    potential_threshold: int = 70
    base_score: int = 65
    per_skill_points: int = 4
    score_cap: int = 98


@dataclass
class ProctoringConfig:
    """Settings for capture, detection and violation handling."""
    camera_index: int = 0
    camera_width: int = 1280
    camera_height: int = 720
    model_path: str = "yolov8n.pt"
    confidence_threshold: float = 0.5
    tick_interval_seconds: float = 1.0 / 30
    screen_check_interval_seconds: float = 1.0
    debounce_window_seconds: float = 1.0
    notice_ttl_seconds: float = 4.0
    max_violations: int = 3
    sessions_dir: str = "sessions"
    screening: ScreeningConfig = field(default_factory=ScreeningConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, config_data: Dict[str, Any]) -> 'ProctoringConfig':
        """Build a configuration from a (validated) dictionary; unknown keys are ignored."""
        defaults = cls()
        screening_data = config_data.get("screening", {}) or {}
        screening_defaults = ScreeningConfig()

        return cls(
            camera_index=int(config_data.get("camera_index", defaults.camera_index)),
            camera_width=int(config_data.get("camera_width", defaults.camera_width)),
            camera_height=int(config_data.get("camera_height", defaults.camera_height)),
            model_path=str(config_data.get("model_path", defaults.model_path)),
            confidence_threshold=float(config_data.get("confidence_threshold", defaults.confidence_threshold)),
            tick_interval_seconds=float(config_data.get("tick_interval_seconds", defaults.tick_interval_seconds)),
            screen_check_interval_seconds=float(config_data.get("screen_check_interval_seconds", defaults.screen_check_interval_seconds)),
            debounce_window_seconds=float(config_data.get("debounce_window_seconds", defaults.debounce_window_seconds)),
            notice_ttl_seconds=float(config_data.get("notice_ttl_seconds", defaults.notice_ttl_seconds)),
            max_violations=int(config_data.get("max_violations", defaults.max_violations)),
            sessions_dir=str(config_data.get("sessions_dir", defaults.sessions_dir)),
            screening=ScreeningConfig(
                high_match_threshold=int(screening_data.get("high_match_threshold", screening_defaults.high_match_threshold)),
                potential_threshold=int(screening_data.get("potential_threshold", screening_defaults.potential_threshold)),
                base_score=int(screening_data.get("base_score", screening_defaults.base_score)),
                per_skill_points=int(screening_data.get("per_skill_points", screening_defaults.per_skill_points)),
                score_cap=int(screening_data.get("score_cap", screening_defaults.score_cap))
            )
        )


class ConfigurationService:
    """
    Service for loading the proctoring configuration.

    Values come from defaults, then ``<config_dir>/default.json`` when it
    exists, then ``PROCTORING_*`` environment variables.
    """

    ENV_MAPPINGS = {
        "PROCTORING_CAMERA_INDEX": ("camera_index", int),
        "PROCTORING_CAMERA_WIDTH": ("camera_width", int),
        "PROCTORING_CAMERA_HEIGHT": ("camera_height", int),
        "PROCTORING_MODEL_PATH": ("model_path", str),
        "PROCTORING_CONFIDENCE_THRESHOLD": ("confidence_threshold", float),
        "PROCTORING_TICK_INTERVAL": ("tick_interval_seconds", float),
        "PROCTORING_SCREEN_CHECK_INTERVAL": ("screen_check_interval_seconds", float),
        "PROCTORING_DEBOUNCE_WINDOW": ("debounce_window_seconds", float),
        "PROCTORING_NOTICE_TTL": ("notice_ttl_seconds", float),
        "PROCTORING_MAX_VIOLATIONS": ("max_violations", int),
        "PROCTORING_SESSIONS_DIR": ("sessions_dir", str),
    }

    SCREENING_ENV_MAPPINGS = {
        "PROCTORING_SCREENING_HIGH_MATCH": "high_match_threshold",
        "PROCTORING_SCREENING_POTENTIAL": "potential_threshold",
    }

    def __init__(self, config_dir: Optional[str] = None, environ: Optional[Dict[str, str]] = None):
        """
        Initialize configuration service.

        Args:
            config_dir: Directory containing default.json
            environ: Environment mapping, defaults to os.environ
        """
        self.logger = logging.getLogger(__name__)
        self.environ = os.environ if environ is None else environ

        if config_dir:
            self.config_dir = Path(config_dir)
        else:
            # Default to config directory relative to project root
            self.config_dir = Path(__file__).parent.parent / "config"

        self.config_file = self.config_dir / "default.json"

    def load_configuration(self) -> ProctoringConfig:
        """
        Load, override and validate the configuration.

        Raises:
            ConfigurationError: if the file is unreadable or values are invalid
        """
        config_data = ProctoringConfig().to_dict()

        if self.config_file.exists():
            file_config = self._load_from_file(self.config_file)
            screening = file_config.pop("screening", None)
            config_data.update(file_config)
            if isinstance(screening, dict):
                config_data["screening"].update(screening)
            elif screening is not None:
                config_data["screening"] = screening
            self.logger.info(f"Loaded configuration from {self.config_file}")
        else:
            self.logger.info(f"Config file {self.config_file} not found, using defaults")

        config_data = self._apply_environment_overrides(config_data)

        is_valid, errors = validate_proctoring_configuration(config_data)
        if not is_valid:
            raise ConfigurationError(f"Invalid configuration: {', '.join(errors)}")

        return ProctoringConfig.from_dict(config_data)

    def _load_from_file(self, config_file: Path) -> Dict[str, Any]:
        """Load configuration from JSON file."""
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in configuration file {config_file}: {e}")
        except IOError as e:
            raise ConfigurationError(f"Failed to read configuration file {config_file}: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file {config_file} must contain an object")
        return data

    def _apply_environment_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration."""
        for env_var, (config_key, converter) in self.ENV_MAPPINGS.items():
            env_value = self.environ.get(env_var)
            if env_value is not None:
                try:
                    config_data[config_key] = converter(env_value)
                    self.logger.info(f"Applied environment override: {config_key} = {config_data[config_key]}")
                except (ValueError, TypeError) as e:
                    self.logger.warning(f"Invalid environment variable {env_var}={env_value}: {e}")

        for env_var, config_key in self.SCREENING_ENV_MAPPINGS.items():
            env_value = self.environ.get(env_var)
            if env_value is not None and isinstance(config_data.get("screening"), dict):
                try:
                    config_data["screening"][config_key] = int(env_value)
                except ValueError as e:
                    self.logger.warning(f"Invalid environment variable {env_var}={env_value}: {e}")

        return config_data
