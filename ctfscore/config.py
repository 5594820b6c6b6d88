"""
Configuration management for the CTF scoring service.
Supports both JSON file configuration and environment variable overrides.
"""

import copy
import json
import logging
import os
import secrets
from pathlib import Path
from typing import Dict, Any

logger = logging.getLogger(__name__)


class CTFConfig:
    """Configuration management for the CTF scoring service."""

    DEFAULT_CONFIG = {
        "ctf_name": "SOC Challenge",
        "competition": {
            "problem_statement_count": 6,
            "questions_per_problem_statement": 12,
        },
        "scoring": {
            "first_blood_score": 45,
            "standard_score": 30,
            "wrong_answer_penalty": -5,
        },
        "features": {
            "first_blood": True,
            "wrong_answer_penalty": True,
            "public_settings": True,
        },
        "submission": {
            "max_answer_length": 1000,
        },
        "auth": {
            "secret_key": "",
            "token_max_age": 86400,  # 24 hours
            "bcrypt_rounds": 12,
        },
        "database": {
            "path": "ctfscore.db",
            "busy_timeout": 5.0,
        },
        "initial_settings": {
            "allow_ps_access": False,
            "show_results_to_users": False,
        },
    }

    def __init__(
        self,
        config_path: str = "ctf_config.json",
    ) -> None:
        """Initialize configuration from file, environment variables, or defaults."""
        self.config_path = Path(config_path)
        self.config = self._load_config()
        self._apply_env_overrides()
        self._validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """
        Load configuration from JSON file or create default.

        @return: Dictionary containing the loaded configuration
        """
        if self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    loaded_config = json.load(f)

                # Merge with defaults to ensure all keys exist
                config = copy.deepcopy(self.DEFAULT_CONFIG)
                self._deep_merge(config, loaded_config)
                return config

            except (json.JSONDecodeError, IOError) as e:
                logger.error("Error loading config from %s: %s", self.config_path, e)
                logger.warning("Using default configuration")
                return copy.deepcopy(self.DEFAULT_CONFIG)
        else:
            self._create_default_config()
            return copy.deepcopy(self.DEFAULT_CONFIG)

    def _deep_merge(
        self,
        base_dict: Dict[str, Any],
        update_dict: Dict[str, Any],
    ) -> None:
        """
        Recursively merge dictionaries.

        @param base_dict: Base dictionary to merge into
        @param update_dict: Dictionary with updates to merge
        """
        for key, value in update_dict.items():
            if (
                key in base_dict
                and isinstance(base_dict[key], dict)
                and isinstance(value, dict)
            ):
                self._deep_merge(base_dict[key], value)
            else:
                base_dict[key] = value

    def _apply_env_overrides(self) -> None:
        """
        Apply environment variable overrides to configuration.

        Environment variables follow the pattern: SECTION_KEY (e.g., CTF_NAME, FIRST_BLOOD_SCORE)
        """
        env_mappings = {
            "CTF_NAME": ("ctf_name",),

            # Competition shape
            "PS_COUNT": ("competition", "problem_statement_count"),
            "QUESTIONS_PER_PS": ("competition", "questions_per_problem_statement"),

            # Scoring constants
            "FIRST_BLOOD_SCORE": ("scoring", "first_blood_score"),
            "STANDARD_SCORE": ("scoring", "standard_score"),
            "WRONG_ANSWER_PENALTY": ("scoring", "wrong_answer_penalty"),

            # Features
            "FIRST_BLOOD_ENABLED": ("features", "first_blood"),
            "PENALTY_ENABLED": ("features", "wrong_answer_penalty"),
            "PUBLIC_SETTINGS": ("features", "public_settings"),

            "MAX_ANSWER_LENGTH": ("submission", "max_answer_length"),

            # Auth
            "SECRET_KEY": ("auth", "secret_key"),
            "TOKEN_MAX_AGE": ("auth", "token_max_age"),
            "BCRYPT_ROUNDS": ("auth", "bcrypt_rounds"),

            # Storage
            "DB_PATH": ("database", "path"),
            "DB_BUSY_TIMEOUT": ("database", "busy_timeout"),

            "ALLOW_PS_ACCESS": ("initial_settings", "allow_ps_access"),
            "SHOW_RESULTS_TO_USERS": ("initial_settings", "show_results_to_users"),
        }

        for env_var, config_path in env_mappings.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                converted_value = self._convert_env_value(env_value)
                self._set_nested_config(config_path, converted_value)

    def _convert_env_value(self, value: str) -> Any:
        """
        Convert environment variable string to appropriate type.

        @param value: String value from environment variable
        @return: Converted value (bool, int, float, or string)
        """
        if value.lower() in ("true", "yes", "on"):
            return True
        elif value.lower() in ("false", "no", "off"):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        return value

    def _set_nested_config(self, path: tuple, value: Any) -> None:
        """
        Set a nested configuration value using a path tuple.

        @param path: Tuple representing the nested path (e.g., ("scoring", "standard_score"))
        @param value: Value to set
        """
        current = self.config
        for key in path[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]
        current[path[-1]] = value

    def _create_default_config(self) -> None:
        """
        Create a default configuration file.

        Writes the default configuration to the configured file path.
        """
        try:
            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(self.DEFAULT_CONFIG, f, indent=2)
            logger.info("Created default configuration file: %s", self.config_path)
        except IOError as e:
            logger.warning("Could not create config file %s: %s", self.config_path, e)

    def _reset_invalid(self, section: str, key: str, reason: str) -> None:
        default = self.DEFAULT_CONFIG[section][key]
        logger.warning("Invalid %s.%s (%s), using %r", section, key, reason, default)
        self.config[section][key] = default

    def _validate_config(self) -> None:
        """
        Validate configuration values.

        Checks configuration values for validity and resets invalid values to defaults.
        """
        for key in ("problem_statement_count", "questions_per_problem_statement"):
            value = self.config["competition"][key]
            if not isinstance(value, int) or value <= 0:
                self._reset_invalid("competition", key, "must be a positive integer")

        scoring = self.config["scoring"]
        for key in ("first_blood_score", "standard_score", "wrong_answer_penalty"):
            if not isinstance(scoring[key], int) or isinstance(scoring[key], bool):
                self._reset_invalid("scoring", key, "must be an integer")

        if scoring["standard_score"] < 0:
            self._reset_invalid("scoring", "standard_score", "must not be negative")

        if scoring["first_blood_score"] < scoring["standard_score"]:
            self._reset_invalid(
                "scoring", "first_blood_score", "must not be below standard_score"
            )
            if scoring["first_blood_score"] < scoring["standard_score"]:
                self._reset_invalid("scoring", "standard_score", "above first_blood_score")

        if scoring["wrong_answer_penalty"] > 0:
            self._reset_invalid("scoring", "wrong_answer_penalty", "must be zero or negative")

        max_length = self.config["submission"]["max_answer_length"]
        if not isinstance(max_length, int) or max_length <= 0:
            self._reset_invalid("submission", "max_answer_length", "must be positive")

        max_age = self.config["auth"]["token_max_age"]
        if not isinstance(max_age, int) or isinstance(max_age, bool) or max_age <= 0:
            self._reset_invalid("auth", "token_max_age", "must be a positive integer")

        rounds = self.config["auth"]["bcrypt_rounds"]
        if not isinstance(rounds, int) or isinstance(rounds, bool) or not 4 <= rounds <= 31:
            self._reset_invalid("auth", "bcrypt_rounds", "must be an integer from 4 to 31")

        busy_timeout = self.config["database"]["busy_timeout"]
        if (
            not isinstance(busy_timeout, (int, float))
            or isinstance(busy_timeout, bool)
            or busy_timeout <= 0
        ):
            self._reset_invalid("database", "busy_timeout", "must be a positive number")

        if not self.config["auth"]["secret_key"]:
            logger.warning(
                "No auth.secret_key configured; generating a per-process key. "
                "Issued tokens will not survive a restart."
            )
            self.config["auth"]["secret_key"] = secrets.token_urlsafe(48)

    def get(
        self,
        *keys: str,
    ) -> Any:
        """
        Get nested configuration value using dot notation.

        @param keys: Variable arguments representing nested keys to traverse
        @return: Configuration value at the specified path, None if not found
        """
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return None
        return value

    def is_feature_enabled(
        self,
        feature_name: str,
    ) -> bool:
        """
        Check if a feature is enabled.

        @param feature_name: Name of the feature to check
        @return: True if feature is enabled, False otherwise
        """
        return self.get("features", feature_name) is True

    @property
    def ps_count(self) -> int:
        return self.get("competition", "problem_statement_count")

    @property
    def questions_per_ps(self) -> int:
        return self.get("competition", "questions_per_problem_statement")
