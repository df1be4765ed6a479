"""
Pending-result handles.

A handle is returned immediately by every remote operation and settles
exactly once, later, when the request queue delivers the outcome:

    pending -> resolved   (payload absorbed into the handle in place)
    pending -> failed     (error recorded, errbacks invoked)

The handles double as the cached objects themselves: an ``Item`` is a
dict record and a ``Collection`` is the list stored in the cache, so
holders of a handle observe the data arriving in place.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple

from .errors import HandleStateError


Callback = Callable[[Any], None]


class Pending:
    """Single-transition handle with any number of observers."""

    def __init__(self) -> None:
        self.resolved = False
        self.failed = False
        self.error: Optional[BaseException] = None
        self._observers: List[Tuple[Optional[Callback], Optional[Callback]]] = []

    @property
    def done(self) -> bool:
        return self.resolved or self.failed

    def add_callbacks(self, callback: Optional[Callback] = None,
                      errback: Optional[Callback] = None) -> "Pending":
        """
        Register observers. ``callback`` receives the handle on resolution,
        ``errback`` receives the error on failure. Observers added after the
        handle has settled run immediately.
        """
        if self.resolved:
            if callback:
                callback(self)
        elif self.failed:
            if errback:
                errback(self.error)
        else:
            self._observers.append((callback, errback))
        return self

    def resolve(self, payload: Any = None) -> "Pending":
        if self.done:
            raise HandleStateError(f"handle already {'resolved' if self.resolved else 'failed'}")
        if payload is not None:
            self._absorb(payload)
        self.resolved = True
        observers, self._observers = self._observers, []
        for callback, _ in observers:
            if callback:
                callback(self)
        return self

    def fail(self, error: BaseException) -> "Pending":
        if self.done:
            raise HandleStateError(f"handle already {'resolved' if self.resolved else 'failed'}")
        self.failed = True
        self.error = error
        observers, self._observers = self._observers, []
        for _, errback in observers:
            if errback:
                errback(error)
        return self

    def follow(self, other: "Pending") -> "Pending":
        """Settle this handle the same way ``other`` settles, without copying data."""
        other.add_callbacks(
            lambda _: None if self.done else self.resolve(),
            lambda error: None if self.done else self.fail(error),
        )
        return self

    def reopen(self) -> "Pending":
        """Return a settled handle to pending so it can track a new operation."""
        if self.done:
            self.resolved = False
            self.failed = False
            self.error = None
        return self

    def result(self) -> Any:
        """Return the handle once resolved; raise the error if it failed."""
        if self.failed:
            raise self.error
        if not self.resolved:
            raise HandleStateError("handle is still pending")
        return self

    def _absorb(self, payload: Any) -> None:
        raise NotImplementedError


class Item(dict, Pending):
    """A record (field name -> value) that is also its own pending handle."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        dict.__init__(self, *args, **kwargs)
        Pending.__init__(self)

    # dicts compare by content; records are tracked by identity
    __hash__ = object.__hash__

    @classmethod
    def loaded(cls, record: Mapping[str, Any]) -> "Item":
        if isinstance(record, Item):
            return record
        item = cls(record)
        item.resolved = True
        return item

    def _absorb(self, payload: Any) -> None:
        self.update(payload)

    def __repr__(self) -> str:
        state = "resolved" if self.resolved else "failed" if self.failed else "pending"
        return f"Item({dict.__repr__(self)}, {state})"


class Collection(list, Pending):
    """Ordered sequence of records; the value stored per scope in the cache."""

    def __init__(self, items: Iterable[Mapping[str, Any]] = ()) -> None:
        list.__init__(self, (Item.loaded(i) for i in items))
        Pending.__init__(self)
        self.loaded_by_get_all = False

    __hash__ = object.__hash__

    def _absorb(self, payload: Any) -> None:
        self.extend(Item.loaded(record) for record in payload)

    def index_of(self, obj: Any) -> int:
        """Position of ``obj`` by identity, -1 when absent."""
        for i, candidate in enumerate(self):
            if candidate is obj:
                return i
        return -1

    def __repr__(self) -> str:
        state = "resolved" if self.resolved else "failed" if self.failed else "pending"
        return f"Collection({list.__repr__(self)}, {state}, loaded_by_get_all={self.loaded_by_get_all})"
