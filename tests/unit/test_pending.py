#!/usr/bin/env python3
"""
Unit tests for pending-result handles
"""

import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from repocache.errors import HandleStateError, RemoteError
from repocache.pending import Collection, Item


class TestTransitions:
    """Test: a handle settles exactly once and notifies every observer."""

    def test_starts_pending(self):
        item = Item()
        assert not item.resolved
        assert not item.failed
        assert not item.done

    def test_resolve_notifies_all_observers_in_order(self):
        item = Item()
        seen = []
        item.add_callbacks(lambda h: seen.append(("first", h)))
        item.add_callbacks(lambda h: seen.append(("second", h)))

        item.resolve({"id": 1})

        assert [s[0] for s in seen] == ["first", "second"]
        assert all(h is item for _, h in seen)

    def test_observer_added_after_resolution_runs_immediately(self):
        item = Item().resolve({"id": 1})
        seen = []
        item.add_callbacks(seen.append)
        assert seen == [item]

    def test_fail_calls_errbacks_only(self):
        item = Item()
        hits, errors = [], []
        item.add_callbacks(hits.append, errors.append)
        error = RemoteError("boom", status_code=500)

        item.fail(error)

        assert item.failed
        assert item.error is error
        assert hits == []
        assert errors == [error]

    def test_errback_added_after_failure_runs_immediately(self):
        error = RemoteError("boom")
        item = Item().fail(error)
        errors = []
        item.add_callbacks(None, errors.append)
        assert errors == [error]

    def test_second_settlement_raises(self):
        item = Item().resolve({"id": 1})
        with pytest.raises(HandleStateError):
            item.resolve({"id": 2})
        with pytest.raises(HandleStateError):
            item.fail(RemoteError("late"))

    def test_callback_exception_propagates(self):
        item = Item()

        def broken(_):
            raise ValueError("decorator failed")

        item.add_callbacks(broken)
        with pytest.raises(ValueError):
            item.resolve({"id": 1})

    def test_result(self):
        pending = Item()
        with pytest.raises(HandleStateError):
            pending.result()

        assert pending.resolve({"id": 1}).result() is pending

        failed = Item().fail(RemoteError("nope"))
        with pytest.raises(RemoteError):
            failed.result()


class TestItem:
    """Test: Item absorbs the payload into the same dict."""

    def test_payload_fields_copied_in_place(self):
        item = Item({"id": 5, "local": True})
        item.resolve({"id": 5, "name": "Bob"})
        assert item == {"id": 5, "name": "Bob", "local": True}

    def test_resolve_without_payload(self):
        item = Item({"id": 5})
        item.resolve()
        assert item.resolved
        assert item == {"id": 5}

    def test_loaded_wraps_plain_dict_as_resolved(self):
        item = Item.loaded({"id": 1})
        assert isinstance(item, Item)
        assert item.resolved

    def test_loaded_keeps_existing_item(self):
        item = Item({"id": 1})
        assert Item.loaded(item) is item

    def test_items_are_hashable_by_identity(self):
        a, b = Item({"id": 1}), Item({"id": 1})
        assert a == b
        assert len({a, b}) == 2

    def test_follow_mirrors_outcome(self):
        obj = Item({"id": 1}).resolve()
        other = Item()

        obj.reopen().follow(other)
        assert not obj.done

        other.resolve({"id": 1, "name": "saved"})
        assert obj.resolved
        # follow mirrors state only, not data
        assert "name" not in obj

    def test_follow_mirrors_failure(self):
        obj = Item()
        other = Item()
        obj.follow(other)
        error = RemoteError("down")
        other.fail(error)
        assert obj.failed
        assert obj.error is error


class TestCollection:
    """Test: Collection fills in place with resolved Items."""

    def test_resolve_appends_records_as_items(self):
        entry = Collection()
        entry.resolve([{"id": 1}, {"id": 2}])

        assert entry.resolved
        assert len(entry) == 2
        assert all(isinstance(i, Item) and i.resolved for i in entry)

    def test_not_authoritative_by_default(self):
        assert Collection().loaded_by_get_all is False

    def test_index_of_uses_identity(self):
        a, b = Item({"id": 1}), Item({"id": 1})
        entry = Collection([a])
        assert entry.index_of(a) == 0
        assert entry.index_of(b) == -1
