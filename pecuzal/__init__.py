"""
PECUZAL - Automated Phase Space Reconstruction
==============================================

Delay embedding of univariate and multivariate time series: delays and
channels are chosen cycle by cycle from the continuity statistic, and the
search stops when Uzal's L-statistic no longer decreases.

Architecture:
    - dynamics/:      statistics and reconstruction primitives
    - engine.py:      PecuzalEngine (embedding-cycle search)
    - config/:        YAML defaults and profiles
    - cli.py:         Command line interface

Usage:
    # CLI
    python -m pecuzal embed data.csv -o trajectory.parquet
    python -m pecuzal config

    # Python
    from pecuzal import pecuzal_embedding
    result = pecuzal_embedding(x, delays=range(0, 51))
    print(result.summary())
"""

__version__ = "1.0.0"

# Lazy imports to avoid circular dependencies
__all__ = [
    'pecuzal_embedding',
    'embed_observations',
    'PecuzalEngine',
    'EmbeddingResult',
    'EmbeddingConfig',
    'EmbeddingInputError',
    'load_embedding_config',
    '__version__',
]

_ENGINE_NAMES = {'pecuzal_embedding', 'embed_observations', 'PecuzalEngine', 'EmbeddingResult'}
_CONFIG_NAMES = {'EmbeddingConfig', 'load_embedding_config'}


def __getattr__(name):
    """Lazy import of the public API."""
    if name in _ENGINE_NAMES:
        from . import engine
        return getattr(engine, name)
    elif name in _CONFIG_NAMES:
        from . import config
        return getattr(config, name)
    elif name == 'EmbeddingInputError':
        from .validation import EmbeddingInputError
        return EmbeddingInputError
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
