#!/usr/bin/env python3
"""
Caching Repository — identity-preserving front for remote collections

Implements:
- get_all(params) -> Collection   (single-flight per scope)
- get(params) -> Item             (cache, cross-scope scan, item or collection fetch)
- add(obj) -> Item                (create through the collection resource)
- save(obj) -> obj                (update in place through the item resource)
- delete(obj) -> Item             (remote delete, cache removal up front)
- search(query) -> Collection     (pass-through, never cached)
- cache() / flush_cache() / get_stats()

Records handed out by a repository stay the same objects for as long as
they are cached. A reload of a collection copies fresh field values onto
the records callers already hold instead of handing out new ones.
"""

import logging
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, Mapping, MutableMapping, Optional, Tuple, Union

from .errors import DetachedObjectError, ItemNotFoundError, RepositoryConfigError
from .key_generator import MAX_COLLECTION_KEYS, ScopeKeyGenerator, ScopeParams, keys_match, normalize_params
from .pending import Collection, Item, Pending
from .resource import Resource
from .store import CacheStore

logger = logging.getLogger(__name__)

Decorator = Callable[[Any], Any]


@dataclass
class RepositoryOptions:
    """Per-repository configuration. Every option is optional."""
    collection_resource: Optional[Resource] = None
    collection_key_name: Optional[str] = None
    collection_key2_name: Optional[str] = None
    collection_key3_name: Optional[str] = None
    collection_key4_name: Optional[str] = None
    collection_key_decorator: Optional[Decorator] = None
    item_resource: Optional[Resource] = None
    item_key_name: Optional[str] = None
    item_key_decorator: Optional[Decorator] = None
    item_decorator: Optional[Callable[[Item], None]] = None
    search_resource: Optional[Resource] = None
    compare_key_name: Optional[str] = None
    no_cache: bool = False
    uses_save_for_new_item: bool = False

    @property
    def collection_key_names(self) -> Tuple[str, ...]:
        names = (self.collection_key_name, self.collection_key2_name,
                 self.collection_key3_name, self.collection_key4_name)
        return tuple(n for n in names if n)

    @property
    def sort_key_name(self) -> Optional[str]:
        if self.compare_key_name:
            return self.compare_key_name
        return "name" if self.collection_resource else self.item_key_name

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RepositoryOptions":
        data = dict(data)
        names = data.pop("collection_key_names", None)
        if names:
            if len(names) > MAX_COLLECTION_KEYS:
                raise RepositoryConfigError(f"at most {MAX_COLLECTION_KEYS} collection keys are supported")
            slots = ["collection_key_name", "collection_key2_name",
                     "collection_key3_name", "collection_key4_name"]
            data.update(zip(slots, names))

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise RepositoryConfigError(f"unknown repository options: {', '.join(unknown)}")
        return cls(**data)


class Repository:
    """
    Operation orchestrator over a CacheStore and up to three remote resources.

    A collection that is not parameterized has one cached list. A
    parameterized one has a cached list per collection key combination.
    Only lists loaded by get_all() answer get_all(); records fetched or
    created one at a time land in a scope's list but never make it
    authoritative.
    """

    def __init__(self, name: str, options: Union[RepositoryOptions, Mapping[str, Any], None] = None):
        if options is None:
            options = RepositoryOptions()
        elif not isinstance(options, RepositoryOptions):
            options = RepositoryOptions.from_dict(options)

        if options.item_resource and not options.item_key_name:
            raise RepositoryConfigError(f"{name}: options.item_key_name is undefined")

        self.name = name
        self.options = options
        self.scope_keys = ScopeKeyGenerator(options.collection_key_names, options.collection_key_decorator)
        self.store = CacheStore(
            item_key_name=options.item_key_name,
            compare_key_name=options.sort_key_name,
            enabled=not options.no_cache,
            name=name,
        )
        self.remote_calls = {"query": 0, "get": 0, "add": 0, "save": 0, "delete": 0, "search": 0}

        logger.info(
            f"Repository {name} created (collection_keys={list(options.collection_key_names)}, "
            f"item_key={options.item_key_name}, no_cache={options.no_cache})"
        )

    # ------------------------------------------------------------------
    # introspection

    def cache(self) -> Dict[str, Collection]:
        return self.store.as_dict()

    def flush_cache(self) -> None:
        self.store.flush()

    def get_stats(self) -> Dict[str, Any]:
        stats = self.store.get_stats()
        stats["repository"] = self.name
        stats["remote_calls"] = dict(self.remote_calls)
        return stats

    # ------------------------------------------------------------------
    # operations

    def get_all(self, params: ScopeParams = None, refresh: bool = False) -> Collection:
        """
        Return the full collection for the scope named by params.

        An authoritative list already cached for the scope is returned as
        is, even while its load is still in flight, so concurrent callers
        share one remote query. ``refresh`` reloads a settled list; records
        callers already hold are updated in place.
        """
        opts = self.options
        if params and not opts.collection_key_name:
            logger.warning(
                f"{self.name}.get_all(params) called with params but no collection_key_name "
                f"has been specified for the repo"
            )
        if isinstance(params, (str, int, float)) and opts.collection_key2_name:
            logger.warning(
                f"{self.name}.get_all(params) called with a simple parameter, but "
                f"collection_key2_name is configured for this repo"
            )

        params = normalize_params(params, opts.collection_key_name)
        scope = self._scope(params, "get_all")

        entry = self.store.lookup(scope)
        if entry is not None and entry.loaded_by_get_all and not (refresh and entry.done):
            logger.debug(f"{self.name}.get_all: reusing {'loaded' if entry.resolved else 'in-flight'} list for {scope}")
            return entry

        return self._load_collection(scope, params)

    def get(self, params: ScopeParams) -> Item:
        """
        Return the record for the item key in params.

        Cached records are returned as the same object every time. Unknown
        records come from the item resource, or from a full collection load
        when no item resource is configured.
        """
        opts = self.options
        if not opts.item_key_name:
            raise RepositoryConfigError(
                f"{self.name}.get(params) method has been called but no item_key_name "
                f"has been specified for the repo"
            )

        params = normalize_params(params, opts.item_key_name)
        found = self._get_existing(params)
        if found is not None:
            return found

        if not opts.item_resource:
            logger.warning(
                f"{self.name}.get(params) called but item_resource has not been specified; "
                f"loading full list from collection_resource instead"
            )
            return self._get_from_collection(params)

        item = self._remote("get", opts.item_resource, "get", params,
                            opts.item_key_decorator, opts.item_key_name)
        item.add_callbacks(lambda _: self._on_item_loaded(item))
        return item

    def add(self, obj: Mapping[str, Any]) -> Item:
        """Create a record by posting it to the collection resource."""
        opts = self.options
        if opts.uses_save_for_new_item:
            raise RepositoryConfigError(
                f"{self.name}.add(obj) method has been called but this repo should use save() for new items"
            )
        self._require(opts.collection_resource, "add", "collection_resource")
        self._scope(obj, "add")

        created = self._remote("add", opts.collection_resource, "save", obj,
                               opts.collection_key_decorator, opts.collection_key_name)
        created.add_callbacks(lambda _: self._on_item_loaded(created))
        return created

    def save(self, obj: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
        """
        Save ``obj`` through the item resource and return ``obj`` itself.

        Server fields are copied onto ``obj`` when the save resolves and
        ``obj`` itself is cached. An ``Item`` passed in also becomes pending
        again and settles with the save; a plain dict carries no state.
        """
        opts = self.options
        if not opts.uses_save_for_new_item:
            self._assert_not_saving_copy(obj)
        self._require(opts.item_resource, "save", "item_resource")

        saved = self._remote("save", opts.item_resource, "save", obj,
                             opts.item_key_decorator, opts.item_key_name)

        def on_saved(_):
            obj.update(saved)
            self._decorate(obj)
            self._cache_item(obj)

        saved.add_callbacks(on_saved)
        if isinstance(obj, Pending):
            obj.reopen().follow(saved)
        return obj

    def delete(self, obj: ScopeParams) -> Item:
        """Delete remotely; the cached record is dropped without waiting."""
        opts = self.options
        self._require(opts.item_resource, "delete", "item_resource")
        params = normalize_params(obj, opts.item_key_name)

        result = self._remote("delete", opts.item_resource, "delete", params,
                              opts.item_key_decorator, opts.item_key_name)
        removed = self.store.remove(self.scope_keys.scope_key(params), params.get(opts.item_key_name))
        if removed is not None:
            logger.debug(f"{self.name}.delete: dropped {opts.item_key_name}={params.get(opts.item_key_name)!r} from cache")
        return result

    def search(self, query: str) -> Collection:
        """Query the search resource with ``q``. Results are not cached."""
        self._require(self.options.search_resource, "search", "search_resource")
        results = self._remote("search", self.options.search_resource, "query", {"q": query})
        results.add_callbacks(lambda _: self._decorate_all(results))
        return results

    # ------------------------------------------------------------------
    # collection loading and merge-on-reload

    def _load_collection(self, scope: Optional[str], params: Dict[str, Any]) -> Collection:
        opts = self.options
        self._require(opts.collection_resource, "get_all", "collection_resource")

        entry = self._remote("query", opts.collection_resource, "query", params,
                             opts.collection_key_decorator, opts.collection_key_name)
        entry.loaded_by_get_all = True
        prior = self.store.replace(scope, entry)
        entry.add_callbacks(
            lambda _: self._on_collection_loaded(entry, prior),
            lambda _: self.store.restore(scope, entry, prior),
        )
        return entry

    def _on_collection_loaded(self, entry: Collection, prior: Optional[Collection]) -> None:
        self._decorate_all(entry)
        self._collapse_duplicates(entry)
        if prior:
            self._merge_prior(entry, prior)
        self.store.sort(entry)

    def _collapse_duplicates(self, entry: Collection) -> None:
        """
        Records cached into the list while its query was in flight come
        before the query results; keep those objects, refreshed.
        """
        key_name = self.options.item_key_name
        if not key_name:
            return
        kept = []
        for item in entry:
            existing = next((k for k in kept if keys_match(k.get(key_name), item.get(key_name))), None)
            if existing is None:
                kept.append(item)
            else:
                existing.update(item)
        entry[:] = kept

    def _merge_prior(self, entry: Collection, prior: Collection) -> None:
        """
        Put previously cached records back in place of their fresh copies.

        Prior records with no fresh counterpart were removed server-side
        and are dropped along with the prior list.
        """
        key_name = self.options.item_key_name
        if not key_name:
            return
        merged = 0
        for prior_item in prior:
            fresh = self.store.find_in(entry, prior_item.get(key_name))
            if fresh is None or fresh is prior_item:
                continue
            prior_item.update(fresh)
            entry[entry.index_of(fresh)] = prior_item
            merged += 1
        logger.debug(f"{self.name}: merged {merged} of {len(prior)} prior records into reloaded list")

    # ------------------------------------------------------------------
    # single records

    def _get_existing(self, params: Mapping[str, Any]) -> Optional[Item]:
        key = params.get(self.options.item_key_name)
        scope = self.scope_keys.scope_key(params)
        if self.store.lookup(scope) is not None:
            return self.store.find(scope, key)
        # scope unknown or not cached: the record may live in any list
        return self.store.find_across_all_scopes(key)

    def _get_from_collection(self, params: Dict[str, Any]) -> Item:
        key_name = self.options.item_key_name
        key = params.get(key_name)
        scope_params = self.scope_keys.scope_params(params) if self.scope_keys.parameterized else None

        handle = Item()
        collection = self.get_all(scope_params)

        def extract(_):
            found = self.store.find_in(collection, key)
            if found is None:
                handle.fail(ItemNotFoundError(f"{self.name}: no record with {key_name}={key!r} in collection"))
                return
            handle.resolve(found)

        collection.add_callbacks(extract, handle.fail)
        return handle

    def _on_item_loaded(self, item: Item) -> None:
        self._decorate(item)
        self._cache_item(item)

    def _cache_item(self, item: Mapping[str, Any]) -> None:
        self.store.insert(self.scope_keys.scope_key(item), item)

    def _assert_not_saving_copy(self, obj: Mapping[str, Any]) -> None:
        if self.options.no_cache:
            return
        entry = self.store.lookup(self.scope_keys.scope_key(obj))
        if entry is None:
            return
        key = obj.get(self.options.item_key_name)
        existing = self.store.find_in(entry, key)
        if existing is not None and existing is not obj:
            raise DetachedObjectError(self.name, key)

    # ------------------------------------------------------------------
    # helpers

    def _scope(self, params: Mapping[str, Any], operation: str) -> Optional[str]:
        scope = self.scope_keys.scope_key(params)
        if scope is None and params:
            logger.warning(
                f"{self.name}.{operation}() called without a value for collection key "
                f"{self.options.collection_key_name!r}; nothing will be cached"
            )
        return scope

    def _require(self, resource: Optional[Resource], operation: str, option: str) -> None:
        if resource is None:
            raise RepositoryConfigError(f"{self.name}.{operation}() requires options.{option}")

    def _remote(self, operation: str, resource: Resource, method: str, params: Mapping[str, Any],
                decorator: Optional[Decorator] = None, key_name: Optional[str] = None) -> Any:
        """Call ``resource.method`` with a copy of params, decorating the key field."""
        outgoing = dict(params or {})
        if decorator and key_name and key_name in outgoing:
            outgoing[key_name] = decorator(outgoing[key_name])
        self.remote_calls[operation] += 1
        return getattr(resource, method)(outgoing)

    def _decorate(self, item: Mapping[str, Any]) -> None:
        if self.options.item_decorator:
            self.options.item_decorator(item)

    def _decorate_all(self, records: Collection) -> None:
        if self.options.item_decorator:
            for record in records:
                self.options.item_decorator(record)
