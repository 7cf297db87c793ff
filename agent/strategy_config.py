"""
Strategy tuning data.

Game-content names (priority targets, defensive cards, threat values,
aliases) and numeric thresholds live in a JSON file instead of the code:

    configs/production.json      default
    $STRATEGY_CONFIG             override path

Sections read by the agent:
    fast_path       critical_hp, defensive_cards, high_value_targets,
                    priority_targets, priority_kill_threshold,
                    single_attack_aggressiveness, move_attack_threshold
    target_values   threats{name: value}, hero, ranged_bonus, low_hp_cap, kill_bonus
    roles           support_keywords, tank_min_hp, sniper_min_range
    aliases         {canonical: [alias, ...]} merged into the default registry
    resolver        max_ids, strict, min_confidence
    candidates      per_intent_limit

A missing or unreadable file is logged and every lookup falls back to the
caller's default.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

logger = logging.getLogger(__name__)

DEFAULT_STRATEGY_FILE = Path(__file__).resolve().parent.parent / "configs" / "production.json"
ENV_VAR = 'STRATEGY_CONFIG'


def _resolve_path(config_path: Optional[str]) -> Path:
    if config_path:
        return Path(config_path)
    override = os.environ.get(ENV_VAR)
    return Path(override) if override else DEFAULT_STRATEGY_FILE


def read_strategy_file(path: Path) -> Optional[Dict[str, Any]]:
    """Parsed JSON object from ``path``, or None (logged) if unusable."""
    if not path.exists():
        logger.warning(f"Strategy file {path} not found, using built-in defaults")
        return None
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Strategy file {path} is not valid JSON: {e}")
        return None
    except OSError as e:
        logger.error(f"Could not read strategy file {path}: {e}")
        return None
    if not isinstance(data, dict):
        logger.error(f"Strategy file {path} must hold a JSON object, got {type(data).__name__}")
        return None
    return data


class StrategyConfig:
    """
    Read-only view over one strategy file.

    Args:
        config_path: Explicit file; otherwise $STRATEGY_CONFIG or the default
    """

    def __init__(self, config_path: Optional[str] = None):
        self.path = _resolve_path(config_path)
        self._data: Dict[str, Any] = {}
        self.reload()

    def reload(self):
        data = read_strategy_file(self.path)
        self._data = data or {}
        self._loaded = data is not None
        if self._loaded:
            logger.info(f"🎛️ Strategy '{self.name}' v{self.version} from {self.path}")
            self._log_summary()

    def _log_summary(self):
        for section, value in self._data.items():
            if isinstance(value, dict):
                logger.debug(f"  [{section}] {sorted(value)}")
        bad = [s for s in ('fast_path', 'target_values', 'roles', 'aliases', 'resolver', 'candidates')
               if s in self._data and not isinstance(self._data[s], dict)]
        if bad:
            logger.warning(f"Ignoring non-object strategy sections: {bad}")

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def name(self) -> str:
        return self._data.get('name', 'default')

    @property
    def version(self) -> str:
        return self._data.get('version', '0.0.0')

    def get_section(self, section: str) -> Dict[str, Any]:
        """A whole section; empty dict when missing or malformed."""
        value = self._data.get(section)
        return value if isinstance(value, dict) else {}

    def get(self, section: str, key: str, default: Any = None) -> Any:
        return self.get_section(section).get(key, default)

    def get_names(self, section: str, key: str, default: Iterable[str] = ()) -> frozenset:
        """A list of content names, lowercased for substring matching."""
        values = self.get(section, key)
        if not isinstance(values, (list, tuple)):
            values = default
        return frozenset(str(v).lower() for v in values)


_config: Optional[StrategyConfig] = None


def get_config() -> StrategyConfig:
    """Process-wide StrategyConfig, loaded on first use."""
    global _config
    if _config is None:
        _config = StrategyConfig()
    return _config


def set_config_path(path: str):
    """Switch to another strategy file (runner flag, tests)."""
    global _config
    _config = StrategyConfig(path)
