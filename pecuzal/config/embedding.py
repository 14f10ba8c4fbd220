"""
PECUZAL Embedding Configuration Loader
======================================

Loads embedding parameters from config/defaults.yaml (shipped with the
package) or from a user YAML file with the same layout.

Usage:
    from pecuzal.config import load_embedding_config

    # Packaged defaults
    config = load_embedding_config()

    # Named profile plus keyword overrides
    config = load_embedding_config(profile='fast', theiler=5)
    print(config.horizon)  # 20
"""

import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import numpy as np
import yaml

from pecuzal.dynamics.distances import resolve_norm
from pecuzal.validation import EmbeddingInputError

logger = logging.getLogger(__name__)


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class EmbeddingConfig:
    """Parameters of one embedding run."""
    sample_fraction: float = 1.0
    theiler: int = 1
    alpha: float = 0.05
    p: float = 0.5
    max_neighbors: int = 13
    k: int = 3
    horizon_factor: int = 4
    max_cycles: int = 10
    norm: str = 'euclidean'
    random_state: Optional[int] = 0
    n_jobs: int = 1

    @property
    def horizon(self) -> int:
        """Prediction horizon of the L-statistic (samples)."""
        return self.horizon_factor * self.theiler

    def validate(self) -> 'EmbeddingConfig':
        """Raise EmbeddingInputError on any out-of-range value; returns self."""
        for name in ('sample_fraction', 'alpha', 'p'):
            value = getattr(self, name)
            if not _is_number(value) or not 0 < value <= 1:
                raise EmbeddingInputError(f"{name} must be in (0, 1], got {value!r}")

        minimums = {
            'theiler': 1,
            'max_neighbors': 8,
            'k': 1,
            'horizon_factor': 1,
            'max_cycles': 1,
        }
        for name, minimum in minimums.items():
            value = getattr(self, name)
            if not _is_integer(value) or value < minimum:
                raise EmbeddingInputError(f"{name} must be an integer >= {minimum}, got {value!r}")

        if self.random_state is not None and not _is_integer(self.random_state):
            raise EmbeddingInputError(f"random_state must be an integer or None, got {self.random_state!r}")

        if not _is_integer(self.n_jobs) or self.n_jobs == 0:
            raise EmbeddingInputError(f"n_jobs must be a non-zero integer, got {self.n_jobs!r}")

        # unknown selectors warn and fall back rather than fail
        self.norm = resolve_norm(self.norm)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EmbeddingConfig':
        """Build from a mapping; unknown keys raise KeyError."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise KeyError(f"Unknown embedding option(s): {', '.join(unknown)}. Available: {', '.join(sorted(known))}")
        return cls(**data).validate()

    def __repr__(self) -> str:
        return (
            f"EmbeddingConfig(theiler={self.theiler}, horizon={self.horizon}, "
            f"k={self.k}, max_neighbors={self.max_neighbors}, max_cycles={self.max_cycles}, "
            f"sample_fraction={self.sample_fraction}, norm={self.norm})"
        )


def _is_integer(value: Any) -> bool:
    return isinstance(value, (int, np.integer)) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, np.integer, np.floating)) and not isinstance(value, bool)


# =============================================================================
# CONFIG LOADING
# =============================================================================

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

_raw_cache: Dict[Path, Dict[str, Any]] = {}


def _read_yaml(path: Path, force_reload: bool = False) -> Dict[str, Any]:
    """Read and cache a configuration file."""
    path = Path(path).resolve()

    if path in _raw_cache and not force_reload:
        return _raw_cache[path]

    if not path.exists():
        raise FileNotFoundError(f"Could not find embedding config: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise EmbeddingInputError(f"Embedding config must be a mapping: {path}")

    logger.debug(f"Loaded embedding config from {path}")
    _raw_cache[path] = raw
    return raw


def list_profiles(path: Optional[Union[str, Path]] = None) -> Dict[str, str]:
    """Profile names mapped to their descriptions."""
    raw = _read_yaml(Path(path) if path else DEFAULT_CONFIG_PATH)
    return {
        name: (profile or {}).get('description', '')
        for name, profile in (raw.get('profiles') or {}).items()
    }


def load_embedding_config(
    path: Optional[Union[str, Path]] = None,
    profile: Optional[str] = None,
    force_reload: bool = False,
    **overrides,
) -> EmbeddingConfig:
    """
    Load embedding parameters.

    Resolution order (later wins): dataclass defaults, the file's
    `defaults` section, the selected profile, keyword overrides.
    Overrides equal to None are ignored.

    Args:
        path: YAML file (default: packaged defaults.yaml)
        profile: Optional profile name (e.g. 'fast')
        force_reload: If True, re-read the file even if cached
        **overrides: Individual option values

    Returns:
        Validated EmbeddingConfig
    """
    raw = _read_yaml(Path(path) if path else DEFAULT_CONFIG_PATH, force_reload)

    values: Dict[str, Any] = dict(raw.get('defaults') or {})

    if profile is not None:
        profiles = raw.get('profiles') or {}
        if profile not in profiles:
            available = ', '.join(profiles.keys())
            raise KeyError(f"Unknown profile: {profile}. Available: {available}")
        profile_values = dict(profiles[profile] or {})
        profile_values.pop('description', None)
        values.update(profile_values)
        logger.info(f"Applied embedding profile '{profile}'")

    values.update({key: value for key, value in overrides.items() if value is not None})

    return EmbeddingConfig.from_dict(values)
