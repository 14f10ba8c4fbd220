"""
PECUZAL configuration.
"""

from .embedding import (
    DEFAULT_CONFIG_PATH,
    EmbeddingConfig,
    list_profiles,
    load_embedding_config,
)

__all__ = [
    'DEFAULT_CONFIG_PATH',
    'EmbeddingConfig',
    'list_profiles',
    'load_embedding_config',
]
