"""
Repository Cache
Client-side caching and identity reconciliation in front of remote collections
"""

from .errors import (
    ConfigError, DetachedObjectError, HandleStateError, ItemNotFoundError,
    RemoteError, RepoCacheError, RepositoryConfigError,
)
from .factory import RepositoryFactory
from .key_generator import DEFAULT_SCOPE, ScopeKeyGenerator
from .pending import Collection, Item, Pending
from .repository import Repository, RepositoryOptions
from .resource import RequestQueue, Resource, RestResource
from .store import CacheStore

__all__ = [
    'Repository', 'RepositoryOptions', 'RepositoryFactory',
    'CacheStore', 'ScopeKeyGenerator', 'DEFAULT_SCOPE',
    'Pending', 'Item', 'Collection',
    'Resource', 'RestResource', 'RequestQueue',
    'RepoCacheError', 'RepositoryConfigError', 'DetachedObjectError',
    'RemoteError', 'ItemNotFoundError', 'HandleStateError', 'ConfigError',
]
