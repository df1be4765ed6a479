"""Named registry of repositories."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Union

from .errors import RepositoryConfigError
from .repository import Repository, RepositoryOptions

logger = logging.getLogger(__name__)


class RepositoryFactory:
    def __init__(self) -> None:
        self._repositories: Dict[str, Repository] = {}

    def create(self, name: str, options: Union[RepositoryOptions, Mapping[str, Any], None] = None) -> Repository:
        """Build a repository and register it under ``name``, replacing any previous one."""
        repo = Repository(name, options)
        if name in self._repositories:
            logger.warning(f"Repository {name} re-created; previous cache discarded")
        self._repositories[name] = repo
        return repo

    def get(self, name: str) -> Repository:
        if name not in self._repositories:
            raise RepositoryConfigError(f"no repository named {name!r}")
        return self._repositories[name]

    def __contains__(self, name: str) -> bool:
        return name in self._repositories

    def names(self) -> List[str]:
        return sorted(self._repositories)

    def flush_all(self) -> None:
        for repo in self._repositories.values():
            repo.flush_cache()
