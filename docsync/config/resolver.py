"""
Config Resolver
===============

Resolves an incoming document path to the collection configuration that
owns it, and extracts the wildcard-captured parent id.

Resolution is by configuration order: the first config with any matching
pattern wins. There is no specificity ranking between overlapping patterns.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from docsync.config.collection_config import CollectionConfig
from docsync.config.paths import split_path
from docsync.errors import NoMatchingConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedPath:
    config: CollectionConfig
    parent_id: Optional[str] = None


class ConfigResolver:
    """Matches document paths against the loaded, compiled configurations."""

    def __init__(self, configs: Sequence[CollectionConfig]):
        self._configs = tuple(configs)

    @property
    def configs(self):
        return self._configs

    def find(self, path: str) -> Optional[CollectionConfig]:
        segments = split_path(path)
        for config in self._configs:
            if any(pattern.matches(segments) for pattern in config.path_patterns):
                return config
        return None

    @staticmethod
    def extract_parent_id(config: CollectionConfig, path: str) -> Optional[str]:
        """
        Value captured by the first wildcard of the first pattern (in
        configuration order) whose wildcard position exists in the path.
        """
        segments = split_path(path)
        for pattern in config.path_patterns:
            index = pattern.first_wildcard_index
            if index is not None and index < len(segments):
                return segments[index]
        return None

    def resolve(self, path: str) -> ResolvedPath:
        """
        Resolve a document path.

        Raises:
            NoMatchingConfig: when no configuration owns the path
        """
        config = self.find(path)
        if config is None:
            raise NoMatchingConfig(path)
        parent_id = self.extract_parent_id(config, path)
        logger.debug(f"Resolved {path} -> {config.id} (parentId={parent_id})")
        return ResolvedPath(config=config, parent_id=parent_id)
