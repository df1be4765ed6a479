"""Exception taxonomy for the repository cache."""

from __future__ import annotations

from typing import Any, Optional


class RepoCacheError(Exception):
    """Base class for every error raised by repocache."""


class RepositoryConfigError(RepoCacheError):
    """Repository misconfigured or misused. Raised before any remote call."""


class DetachedObjectError(RepositoryConfigError):
    """save() was handed a copy of a record the repository already tracks."""

    def __init__(self, repo_name: str, key: Any) -> None:
        self.repo_name = repo_name
        self.key = key
        super().__init__(
            f"{repo_name}.save(obj) method has been called with an object other than "
            f"the one loaded by the repository (key={key!r})"
        )


class RemoteError(RepoCacheError):
    """Failure outcome of a remote operation."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        method: Optional[str] = None,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.method = method
        self.url = url


class ItemNotFoundError(RemoteError):
    """The requested key was absent from the collection loaded to find it."""


class HandleStateError(RepoCacheError):
    """A pending handle was settled more than once."""


class ConfigError(RepoCacheError):
    """Configuration document failed validation."""
