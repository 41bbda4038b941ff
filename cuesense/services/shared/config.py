"""Configuration for CueSense.

Engine settings come from one YAML file (the packaged ``settings.yaml`` unless
the caller names another). Provider credentials come from the environment,
layered from .env files:
  1. Global ~/.cuesense/.env  (lowest priority)
  2. Local cuesense/.env      (overrides global)
  3. Environment variables    (highest priority)
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from dotenv import load_dotenv

#: Settings shipped with the package; used when no explicit path is given.
DEFAULT_SETTINGS_PATH = Path(__file__).parent.parent.parent / "config" / "settings.yaml"


class Config:
    """Read-only YAML settings with dot-notation access."""

    def __init__(self, config_path: str):
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        with open(path, encoding="utf-8") as f:
            self._data: dict = yaml.safe_load(f)
        if not isinstance(self._data, dict):
            raise ValueError(f"Config file must be a YAML mapping, got: {type(self._data)}")
        self.path = path
        self._load_env()

    def _load_env(self) -> None:
        """Load .env files in priority order (global → local)."""
        global_env = Path.home() / ".cuesense" / ".env"
        local_env = Path(__file__).parent.parent.parent / ".env"
        if global_env.exists():
            load_dotenv(global_env, override=False)
        if local_env.exists():
            load_dotenv(local_env, override=True)

    def get(self, key: str, default: Any = None) -> Any:
        """Dot-notation access into the YAML tree.

        Example::

            config.get("llm.cache_ttl_sec")          # 300
            config.get("emotion.rule_weight")        # 0.3
            config.get("missing.key", "fallback")    # "fallback"
        """
        val: Any = self._data
        for k in key.split("."):
            if isinstance(val, dict) and k in val:
                val = val[k]
            else:
                return default
        return val

    def get_env(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Return an environment variable value (after the .env layering)."""
        return os.environ.get(name, default)


def load_config(config_path: Optional[Union[str, Path]] = None) -> Config:
    """Load ``config_path``, or the packaged settings when it is None."""
    return Config(str(config_path or DEFAULT_SETTINGS_PATH))
