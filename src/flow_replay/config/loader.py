"""
Config Loader - Layer defaults, a YAML file, the environment and overrides.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from dotenv import load_dotenv

from flow_replay.config.settings import Settings, deep_merge
from flow_replay.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Names a project directory may use for its replay config
CONFIG_NAMES = ("flow-replay.yaml", "flow-replay.yml", "config.yaml", "config/default.yaml")

# Points at a config file, taking priority over the search
CONFIG_ENV_VAR = "FLOW_REPLAY_CONFIG"


class ConfigLoader:
    """
    Builds Settings from layered sources.

    Later layers win:
    1. Field defaults
    2. The first config file found
    3. ``FLOW_REPLAY__*`` environment variables (after reading a .env file)
    4. Overrides passed to ``load()``
    """

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        self.config_path = Path(config_path) if config_path else None
        self.source: Optional[Path] = None

    def candidate_paths(self) -> List[Path]:
        """Where to look for a config file, in order."""
        if self.config_path:
            return [self.config_path]
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if env_path:
            return [Path(env_path)]
        home = Path.home() / ".config" / "flow-replay" / "config.yaml"
        return [Path(name) for name in CONFIG_NAMES] + [home]

    def find_config_file(self) -> Optional[Path]:
        paths = self.candidate_paths()
        explicit = self.config_path is not None or CONFIG_ENV_VAR in os.environ
        if explicit:
            if not paths[0].exists():
                raise ConfigurationError(f"Config file not found: {paths[0]}")
            return paths[0]
        return next((path for path in paths if path.exists()), None)

    @staticmethod
    def read_file(path: Path) -> Dict[str, Any]:
        """Parse a YAML config file into a mapping; an empty file is ``{}``."""
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}", {"error": str(e)}) from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping", {"type": type(data).__name__})
        return data

    @staticmethod
    def read_env_file(env_file: Optional[Union[str, Path]] = None) -> None:
        if env_file:
            load_dotenv(env_file)
            return
        for candidate in (Path(".env"), Path(".env.local")):
            if candidate.exists():
                load_dotenv(candidate)
                return

    def load(
        self,
        env_file: Optional[Union[str, Path]] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> Settings:
        """
        Resolve settings from every layer.

        Args:
            env_file: .env file to read before the environment layer
            overrides: Nested values applied last
        """
        self.read_env_file(env_file)

        file_values: Dict[str, Any] = {}
        self.source = self.find_config_file()
        if self.source:
            file_values = self.read_file(self.source)
            logger.debug(f"Loaded config from {self.source}")

        env_values = Settings().model_dump(exclude_unset=True)
        settings = Settings(**deep_merge(file_values, env_values))
        if overrides:
            settings = settings.merge_with(overrides)
        return settings


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    env_file: Optional[Union[str, Path]] = None,
    **overrides: Any,
) -> Settings:
    """
    Load settings in one call.

    Example:
        >>> settings = load_config(execution={"mode": "hybrid"})
    """
    return ConfigLoader(config_path).load(env_file=env_file, overrides=overrides or None)
